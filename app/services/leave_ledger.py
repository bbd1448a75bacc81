"""
Leave Balance Ledger

The only code path allowed to mutate `LeaveBalance` rows. Every write is a
compare-and-swap on `LeaveBalance.version`:

    UPDATE leave_balances SET ... , version = :seen + 1
    WHERE id = :id AND version = :seen

A write that matches zero rows lost a race against another transaction; the
ledger re-reads the row, re-checks the business condition and tries again,
up to `settings.policy.ledger_max_retries` attempts, before surfacing a
`StateConflictError`.

Ledger methods flush but never commit. The caller owns the transaction so
that, for example, an approval and its deduction commit or roll back
together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import AbstractSet, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models.comp_off_credit import CompOffCredit
from app.models.leave_balance import LeaveBalance
from app.services.audit import AuditService
from app.services.directory import EmployeeRecord
from app.services.leave_catalog import (
    LEAVE_CATALOG,
    LeaveTypeCode,
    get_leave_type,
    initial_allocation,
)
from app.services.work_calendar import is_working_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceRow:
    """Point-in-time read of a balance row, including its CAS token."""
    id: int
    allocated_days: float
    used_days: float
    carried_forward_days: float
    remaining_days: float
    version: int

    @property
    def entitlement(self) -> float:
        return self.allocated_days + self.carried_forward_days


def _days(value: float) -> float:
    # Leave is counted in half-day steps; keep float drift out of the ledger
    return round(value, 2)


class LeaveLedger:
    def __init__(self, db: Session, max_retries: Optional[int] = None):
        self.db = db
        self.max_retries = max_retries or settings.policy.ledger_max_retries

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def read(self, employee_id: int, leave_type, year: int) -> Optional[BalanceRow]:
        code = LeaveTypeCode(leave_type).value
        row = self.db.execute(
            select(
                LeaveBalance.id,
                LeaveBalance.allocated_days,
                LeaveBalance.used_days,
                LeaveBalance.carried_forward_days,
                LeaveBalance.remaining_days,
                LeaveBalance.version,
            ).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == code,
                LeaveBalance.year == year,
            )
        ).one_or_none()
        if row is None:
            return None
        return BalanceRow(*row)

    def _require(self, employee_id: int, leave_type, year: int) -> BalanceRow:
        row = self.read(employee_id, leave_type, year)
        if row is None:
            raise NotFoundError("Leave balance", f"{employee_id}/{LeaveTypeCode(leave_type).value}/{year}")
        return row

    def list_balances(self, employee_id: int, year: Optional[int] = None) -> List[LeaveBalance]:
        query = self.db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee_id)
        if year is not None:
            query = query.filter(LeaveBalance.year == year)
        return query.order_by(LeaveBalance.year, LeaveBalance.leave_type).all()

    # ------------------------------------------------------------------
    # Compare-and-swap primitive
    # ------------------------------------------------------------------
    def _compare_and_swap(self, row: BalanceRow, **values) -> bool:
        result = self.db.execute(
            update(LeaveBalance)
            .where(LeaveBalance.id == row.id, LeaveBalance.version == row.version)
            .values(version=row.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _load(self, balance_id: int) -> LeaveBalance:
        balance = self.db.get(LeaveBalance, balance_id)
        self.db.refresh(balance)
        return balance

    def _conflict(self, employee_id: int, leave_type, year: int) -> StateConflictError:
        logger.warning(
            "Leave balance write lost the race on every attempt",
            extra={"employee_id": employee_id, "leave_type": LeaveTypeCode(leave_type).value, "year": year}
        )
        return StateConflictError(
            f"Leave balance for employee {employee_id} was modified concurrently; retry the operation",
            details={"employee_id": employee_id, "leave_type": LeaveTypeCode(leave_type).value, "year": year},
        )

    # ------------------------------------------------------------------
    # Deduct / restore
    # ------------------------------------------------------------------
    def deduct(self, employee_id: int, leave_type, year: int, days: float) -> LeaveBalance:
        """Consume `days` from the balance; never lets remaining go below zero."""
        if days <= 0:
            raise ValidationError("Days to deduct must be positive", details={"days": days})

        for attempt in range(1, self.max_retries + 1):
            row = self._require(employee_id, leave_type, year)
            if _days(row.remaining_days - days) < 0:
                raise InsufficientBalanceError(requested=days, remaining=row.remaining_days)

            new_used = _days(row.used_days + days)
            if self._compare_and_swap(
                row,
                used_days=new_used,
                remaining_days=_days(row.entitlement - new_used),
            ):
                logger.info(
                    f"Deducted {days} day(s) of {LeaveTypeCode(leave_type).value} for employee {employee_id}",
                    extra={"attempt": attempt, "year": year}
                )
                if LeaveTypeCode(leave_type) == LeaveTypeCode.COMP_OFF:
                    self._consume_comp_off(employee_id, year, days)
                return self._load(row.id)

            logger.info(f"Balance CAS lost on deduct (attempt {attempt}/{self.max_retries})")

        raise self._conflict(employee_id, leave_type, year)

    def restore(self, employee_id: int, leave_type, year: int, days: float) -> LeaveBalance:
        """Return `days` to the balance, capped at allocated + carried forward."""
        if days <= 0:
            raise ValidationError("Days to restore must be positive", details={"days": days})

        for attempt in range(1, self.max_retries + 1):
            row = self._require(employee_id, leave_type, year)
            if days > row.used_days:
                logger.warning(
                    f"Restore of {days} day(s) exceeds used days {row.used_days}; capping at entitlement",
                    extra={"employee_id": employee_id, "year": year}
                )
            new_used = _days(max(row.used_days - days, 0.0))
            if self._compare_and_swap(
                row,
                used_days=new_used,
                remaining_days=_days(row.entitlement - new_used),
            ):
                if LeaveTypeCode(leave_type) == LeaveTypeCode.COMP_OFF:
                    self._release_comp_off(employee_id, year, days)
                return self._load(row.id)

            logger.info(f"Balance CAS lost on restore (attempt {attempt}/{self.max_retries})")

        raise self._conflict(employee_id, leave_type, year)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------
    def seed_balances(self, employee: EmployeeRecord, year: int, reset: bool = False) -> List[LeaveBalance]:
        """
        Allocate every leave type the employee's status makes available.
        Existing rows are left alone unless `reset` is set, in which case they
        are re-initialized from scratch.
        """
        seeded: List[LeaveBalance] = []
        for leave_type in LEAVE_CATALOG.values():
            allocation = initial_allocation(leave_type, employee.employment_status)
            if allocation is None:
                continue

            existing = self.read(employee.employee_id, leave_type.code, year)
            if existing is None:
                balance = LeaveBalance(
                    employee_id=employee.employee_id,
                    leave_type=leave_type.code.value,
                    year=year,
                    allocated_days=allocation,
                    used_days=0.0,
                    carried_forward_days=0.0,
                    remaining_days=allocation,
                    version=0,
                )
                self.db.add(balance)
                self.db.flush()
                seeded.append(balance)
            elif reset:
                # Comp-off allocation is earned, not granted; a re-seed keeps it
                if leave_type.code == LeaveTypeCode.COMP_OFF:
                    allocation = existing.allocated_days
                if not self._compare_and_swap(
                    existing,
                    allocated_days=allocation,
                    used_days=0.0,
                    carried_forward_days=0.0,
                    remaining_days=allocation,
                ):
                    raise self._conflict(employee.employee_id, leave_type.code, year)
                seeded.append(self._load(existing.id))

        AuditService.log(
            self.db,
            action="reseed_leave_balances" if reset else "seed_leave_balances",
            entity_type="leave_balance",
            entity_id=None,
            actor_id=None,
            details={
                "employee_id": employee.employee_id,
                "year": year,
                "employment_status": employee.employment_status,
                "leave_types": [b.leave_type for b in seeded],
            },
        )
        return seeded

    def rollover_year(self, employee: EmployeeRecord, from_year: int) -> List[LeaveBalance]:
        """Open next year's balances, carrying forward unused days where allowed."""
        to_year = from_year + 1
        created: List[LeaveBalance] = []
        for leave_type in LEAVE_CATALOG.values():
            allocation = initial_allocation(leave_type, employee.employment_status)
            if allocation is None:
                continue
            if self.read(employee.employee_id, leave_type.code, to_year) is not None:
                continue

            carried = 0.0
            prior = self.read(employee.employee_id, leave_type.code, from_year)
            if prior is not None and leave_type.carry_forward:
                carried = prior.remaining_days
                if leave_type.carry_forward_limit is not None:
                    carried = min(carried, leave_type.carry_forward_limit)

            balance = LeaveBalance(
                employee_id=employee.employee_id,
                leave_type=leave_type.code.value,
                year=to_year,
                allocated_days=allocation,
                used_days=0.0,
                carried_forward_days=_days(carried),
                remaining_days=_days(allocation + carried),
                version=0,
            )
            self.db.add(balance)
            created.append(balance)

        self.db.flush()
        logger.info(f"Rolled over {len(created)} balance(s) for employee {employee.employee_id} into {to_year}")
        return created

    # ------------------------------------------------------------------
    # Compensatory off
    # ------------------------------------------------------------------
    def credit_comp_off(
        self,
        employee: EmployeeRecord,
        worked_on: date,
        days: float = 1.0,
        holidays: AbstractSet[date] = frozenset(),
    ) -> CompOffCredit:
        comp_off = get_leave_type(LeaveTypeCode.COMP_OFF)
        if not comp_off.is_available_to(employee.employment_status):
            raise ValidationError(
                f"{comp_off.name} is not available to {employee.employment_status.value} employees"
            )
        if is_working_day(worked_on, holidays):
            raise ValidationError(
                "Compensatory off can only be earned for work on a weekend or holiday",
                details={"worked_on": worked_on.isoformat()},
            )
        if days <= 0:
            raise ValidationError("Days to credit must be positive", details={"days": days})

        year = worked_on.year
        if self.read(employee.employee_id, comp_off.code, year) is None:
            self.seed_balances(employee, year)

        for _ in range(self.max_retries):
            row = self._require(employee.employee_id, comp_off.code, year)
            if row.allocated_days + days > comp_off.max_days_per_year:
                raise ValidationError(
                    f"Compensatory off is capped at {comp_off.max_days_per_year:g} days per year"
                )
            if self._compare_and_swap(
                row,
                allocated_days=_days(row.allocated_days + days),
                remaining_days=_days(row.remaining_days + days),
            ):
                break
        else:
            raise self._conflict(employee.employee_id, comp_off.code, year)

        credit = CompOffCredit(
            employee_id=employee.employee_id,
            worked_on=worked_on,
            days=days,
            expires_on=worked_on + timedelta(days=comp_off.expiry_days),
            used_days=0.0,
            is_expired=False,
        )
        self.db.add(credit)
        self.db.flush()
        return credit

    def active_comp_off_expiries(self, employee_id: int, as_of: date) -> tuple:
        rows = self.db.query(CompOffCredit.expires_on).filter(
            CompOffCredit.employee_id == employee_id,
            CompOffCredit.is_expired.is_(False),
            CompOffCredit.used_days < CompOffCredit.days,
            CompOffCredit.expires_on >= as_of
        ).all()
        return tuple(sorted(r[0] for r in rows))

    def _open_credits(self, employee_id: int, year: int):
        return self.db.query(CompOffCredit).filter(
            CompOffCredit.employee_id == employee_id,
            CompOffCredit.is_expired.is_(False),
            CompOffCredit.worked_on >= date(year, 1, 1),
            CompOffCredit.worked_on <= date(year, 12, 31),
        )

    def _consume_comp_off(self, employee_id: int, year: int, days: float) -> None:
        """Draw `days` from the year's credits, soonest expiry first."""
        left = days
        credits = self._open_credits(employee_id, year).order_by(CompOffCredit.expires_on, CompOffCredit.id)
        for credit in credits:
            if left <= 0:
                break
            take = _days(min(credit.days - credit.used_days, left))
            if take <= 0:
                continue
            credit.used_days = _days(credit.used_days + take)
            left = _days(left - take)
        self.db.flush()

    def _release_comp_off(self, employee_id: int, year: int, days: float) -> None:
        """Hand `days` back to the year's credits, latest expiry first."""
        left = days
        credits = self._open_credits(employee_id, year).order_by(
            CompOffCredit.expires_on.desc(), CompOffCredit.id.desc()
        )
        for credit in credits:
            if left <= 0:
                break
            give = _days(min(credit.used_days, left))
            if give <= 0:
                continue
            credit.used_days = _days(credit.used_days - give)
            left = _days(left - give)
        self.db.flush()

    def expire_comp_off(self, employee_id: int, today: date) -> float:
        """
        Retire credits past their expiry. Only the unused part of each credit
        leaves the allocation; days drawn by approved leave stay consumed.
        """
        credits = self.db.query(CompOffCredit).filter(
            CompOffCredit.employee_id == employee_id,
            CompOffCredit.is_expired.is_(False),
            CompOffCredit.expires_on < today
        ).all()
        if not credits:
            return 0.0

        by_year: Dict[int, float] = {}
        for credit in credits:
            unused = _days(credit.days - credit.used_days)
            by_year[credit.worked_on.year] = by_year.get(credit.worked_on.year, 0.0) + unused
            credit.is_expired = True

        total_removed = 0.0
        for year, expired_days in by_year.items():
            for _ in range(self.max_retries):
                row = self.read(employee_id, LeaveTypeCode.COMP_OFF, year)
                if row is None:
                    break
                removable = _days(min(expired_days, row.remaining_days))
                if removable <= 0:
                    break
                if self._compare_and_swap(
                    row,
                    allocated_days=_days(row.allocated_days - removable),
                    remaining_days=_days(row.remaining_days - removable),
                ):
                    total_removed += removable
                    break
            else:
                raise self._conflict(employee_id, LeaveTypeCode.COMP_OFF, year)

        self.db.flush()
        logger.info(f"Expired {total_removed} comp-off day(s) for employee {employee_id}")
        return total_removed
