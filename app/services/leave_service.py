"""
Leave Service Layer

Business logic for the leave application lifecycle. Routers stay focused on
HTTP; every rule about who may take leave and how balances move lives here,
in the eligibility evaluator, or in the ledger.

Architecture:
- Router -> Service (this module) -> Evaluator (pure) / Ledger (writes)
- Each public mutation is one transaction: commit on success, rollback on
  any failure, so an application is never left approved without its
  deduction (or cancelled without its restore).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.exceptions import (
    EligibilityRejected,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models.leave_application import LeaveApplication, LeaveStatus
from app.models.onboarding_policy import OnboardingPolicyState
from app.services.audit import AuditService
from app.services.directory import EmployeeDirectory, EmployeeRecord
from app.services.leave_catalog import LeaveTypeCode, get_leave_type
from app.services.leave_eligibility import (
    BalanceSnapshot,
    EligibilityDecision,
    EmployeeSnapshot,
    UsageSnapshot,
    evaluate,
    recheck_usage_rules,
)
from app.services.leave_ledger import LeaveLedger
from app.services.leave_state_machine import LeaveStateMachine
from app.services.work_calendar import load_holidays, month_bounds

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Snapshot loading
# ----------------------------------------------------------------------
def load_employee_snapshot(db: Session, employee_id: int) -> Tuple[EmployeeRecord, EmployeeSnapshot]:
    record = EmployeeDirectory(db).get_employee(employee_id)
    onboarding = db.query(OnboardingPolicyState).filter(
        OnboardingPolicyState.employee_id == employee_id
    ).first()
    snapshot = EmployeeSnapshot(
        employee_id=record.employee_id,
        employment_status=record.employment_status,
        gender=record.gender,
        date_of_joining=record.date_of_joining,
        first_month_end_date=onboarding.first_month_end_date if onboarding else None,
    )
    return record, snapshot


def load_usage(db: Session, employee_id: int, leave_type: LeaveTypeCode, start: date, today: date) -> UsageSnapshot:
    month_start, month_end = month_bounds(start)
    approved = db.query(LeaveApplication).filter(
        LeaveApplication.employee_id == employee_id,
        LeaveApplication.leave_type == leave_type.value,
        LeaveApplication.status == LeaveStatus.APPROVED.value,
    )

    in_month = approved.filter(
        LeaveApplication.start_date >= month_start,
        LeaveApplication.start_date <= month_end,
    ).with_entities(func.coalesce(func.sum(LeaveApplication.total_days), 0.0)).scalar()

    lifetime = approved.count()

    expiries: tuple = ()
    if leave_type == LeaveTypeCode.COMP_OFF:
        expiries = LeaveLedger(db).active_comp_off_expiries(employee_id, as_of=min(start, today))

    return UsageSnapshot(
        approved_days_in_month=float(in_month or 0.0),
        lifetime_count=lifetime,
        comp_off_expiries=expiries,
    )


def load_balance_snapshot(db: Session, employee_id: int, leave_type: LeaveTypeCode, year: int) -> Optional[BalanceSnapshot]:
    row = LeaveLedger(db).read(employee_id, leave_type, year)
    if row is None:
        return None
    return BalanceSnapshot(
        allocated_days=row.allocated_days,
        used_days=row.used_days,
        carried_forward_days=row.carried_forward_days,
        remaining_days=row.remaining_days,
    )


def _validate_dates(start: Optional[date], end: Optional[date], is_half_day: bool) -> None:
    if start is None or end is None:
        raise ValidationError("Both start_date and end_date are required")
    if end < start:
        raise ValidationError(
            "end_date cannot be before start_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    if is_half_day and start != end:
        raise ValidationError("A half-day leave must start and end on the same date")


def check_eligibility(
    db: Session,
    employee_id: int,
    leave_type: str,
    start: date,
    end: date,
    is_half_day: bool = False,
    is_emergency: bool = False,
    event_date: Optional[date] = None,
    today: Optional[date] = None,
) -> EligibilityDecision:
    """Evaluate a prospective request without persisting anything."""
    _validate_dates(start, end, is_half_day)
    today = today or date.today()
    definition = get_leave_type(leave_type)
    _, employee = load_employee_snapshot(db, employee_id)

    return evaluate(
        employee=employee,
        leave_type=definition,
        balance=load_balance_snapshot(db, employee_id, definition.code, start.year),
        start=start,
        end=end,
        is_half_day=is_half_day,
        today=today,
        usage=load_usage(db, employee_id, definition.code, start, today),
        holidays=load_holidays(db, start, end),
        is_emergency=is_emergency,
        event_date=event_date,
    )


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------
def _state(application: LeaveApplication) -> Dict[str, Any]:
    return {
        "status": application.status,
        "decided_by": application.decided_by,
        "decided_date": application.decided_date.isoformat() if application.decided_date else None,
    }


def get_leave_application(db: Session, application_id: int) -> LeaveApplication:
    application = db.get(LeaveApplication, application_id)
    if application is None:
        raise NotFoundError("Leave application", application_id)
    return application


def list_leave_applications(
    db: Session,
    employee_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[LeaveApplication]:
    query = db.query(LeaveApplication)
    if employee_id is not None:
        query = query.filter(LeaveApplication.employee_id == employee_id)
    if status:
        query = query.filter(LeaveApplication.status == LeaveStatus(status).value)
    return query.order_by(LeaveApplication.start_date.desc(), LeaveApplication.id.desc()).all()


def submit_leave_application(
    db: Session,
    employee_id: int,
    leave_type: str,
    start_date: date,
    end_date: date,
    reason: Optional[str] = None,
    is_half_day: bool = False,
    is_emergency: bool = False,
    event_date: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[LeaveApplication, EligibilityDecision]:
    """
    Create a pending application with its eligibility verdict attached.
    Failing eligibility does not block creation; the restrictions travel with
    the application for manual review.
    """
    today = today or date.today()
    decision = check_eligibility(
        db, employee_id, leave_type, start_date, end_date,
        is_half_day=is_half_day,
        is_emergency=is_emergency,
        event_date=event_date,
        today=today,
    )
    code = get_leave_type(leave_type).code

    application = LeaveApplication(
        employee_id=employee_id,
        leave_type=code.value,
        start_date=start_date,
        end_date=end_date,
        total_days=decision.requested_days,
        reason=reason,
        status=LeaveStatus.PENDING.value,
        is_half_day=is_half_day,
        is_emergency=is_emergency,
        event_date=event_date,
        applied_date=today,
        restrictions=list(decision.restrictions),
    )
    try:
        db.add(application)
        db.flush()
        AuditService.log(
            db,
            action="submit_leave",
            entity_type="leave_application",
            entity_id=application.id,
            actor_id=employee_id,
            details={
                "leave_type": code.value,
                "requested_days": decision.requested_days,
                "can_approve": decision.can_approve,
                "restrictions": decision.restrictions,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(application)

    logger.info(
        f"Leave application {application.id} submitted",
        extra={"employee_id": employee_id, "leave_type": code.value, "can_approve": decision.can_approve}
    )
    return application, decision


def _conditional_status_update(
    db: Session,
    application: LeaveApplication,
    expected: LeaveStatus,
    **values,
) -> None:
    result = db.execute(
        update(LeaveApplication)
        .where(LeaveApplication.id == application.id, LeaveApplication.status == expected.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StateConflictError(
            f"Leave application {application.id} changed status concurrently",
            details={"application_id": application.id, "expected": expected.value},
        )
    db.refresh(application)


def _current_restrictions(db: Session, application: LeaveApplication) -> List[str]:
    """Stored restrictions plus any that approvals since submission have triggered."""
    definition = get_leave_type(application.leave_type)
    _, employee = load_employee_snapshot(db, application.employee_id)
    fresh = recheck_usage_rules(
        employee=employee,
        leave_type=definition,
        start=application.start_date,
        end=application.end_date,
        requested_days=application.total_days,
        today=application.applied_date,
        usage=load_usage(db, application.employee_id, definition.code, application.start_date, application.applied_date),
        is_emergency=application.is_emergency,
        event_date=application.event_date,
    )
    restrictions = list(application.restrictions or [])
    restrictions.extend(reason for reason in fresh if reason not in restrictions)
    return restrictions


def approve_leave_application(
    db: Session,
    application_id: int,
    approver_id: int,
    override: bool = False,
) -> LeaveApplication:
    """
    Deduct the balance and mark the application approved, atomically.
    Any failure leaves the application pending and the balance untouched.
    """
    application = get_leave_application(db, application_id)
    LeaveStateMachine.validate_transition(application.id, application.status, LeaveStatus.APPROVED)

    restrictions = _current_restrictions(db, application)
    if restrictions and not override:
        raise EligibilityRejected(restrictions)

    before_state = _state(application)
    try:
        balance = LeaveLedger(db).deduct(
            application.employee_id,
            application.leave_type,
            application.year,
            application.total_days,
        )
        _conditional_status_update(
            db, application, LeaveStatus.PENDING,
            status=LeaveStatus.APPROVED.value,
            decided_by=approver_id,
            decided_date=datetime.now(timezone.utc),
        )
        AuditService.log(
            db,
            action="approve_leave_override" if restrictions else "approve_leave",
            entity_type="leave_application",
            entity_id=application.id,
            actor_id=approver_id,
            details={
                "employee_id": application.employee_id,
                "leave_type": application.leave_type,
                "days": application.total_days,
                "remaining_days": balance.remaining_days,
                "overridden_restrictions": restrictions,
            },
            before_state=before_state,
            after_state=_state(application),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    logger.info(f"Leave application {application.id} approved by {approver_id}")
    return application


def reject_leave_application(
    db: Session,
    application_id: int,
    approver_id: int,
    reason: str,
) -> LeaveApplication:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")

    application = get_leave_application(db, application_id)
    LeaveStateMachine.validate_transition(application.id, application.status, LeaveStatus.REJECTED)

    before_state = _state(application)
    try:
        _conditional_status_update(
            db, application, LeaveStatus.PENDING,
            status=LeaveStatus.REJECTED.value,
            decided_by=approver_id,
            decided_date=datetime.now(timezone.utc),
            rejection_reason=reason.strip(),
        )
        AuditService.log(
            db,
            action="reject_leave",
            entity_type="leave_application",
            entity_id=application.id,
            actor_id=approver_id,
            details={"employee_id": application.employee_id, "reason": reason.strip()},
            before_state=before_state,
            after_state=_state(application),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    return application


def cancel_leave_application(
    db: Session,
    application_id: int,
    cancelled_by: Optional[int] = None,
) -> LeaveApplication:
    """Cancel an approved application and give its days back to the balance."""
    application = get_leave_application(db, application_id)
    LeaveStateMachine.validate_transition(application.id, application.status, LeaveStatus.CANCELLED)

    before_state = _state(application)
    try:
        balance = LeaveLedger(db).restore(
            application.employee_id,
            application.leave_type,
            application.year,
            application.total_days,
        )
        _conditional_status_update(
            db, application, LeaveStatus.APPROVED,
            status=LeaveStatus.CANCELLED.value,
            cancelled_by=cancelled_by,
            cancelled_date=datetime.now(timezone.utc),
        )
        AuditService.log(
            db,
            action="cancel_leave",
            entity_type="leave_application",
            entity_id=application.id,
            actor_id=cancelled_by,
            details={
                "employee_id": application.employee_id,
                "restored_days": application.total_days,
                "remaining_days": balance.remaining_days,
            },
            before_state=before_state,
            after_state={"status": application.status},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    return application
