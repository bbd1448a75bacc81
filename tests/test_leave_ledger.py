import itertools
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from threading import Barrier

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.database import Base
from app.models.comp_off_credit import CompOffCredit
from app.models.employee import Employee
from app.models.leave_application import LeaveApplication, LeaveStatus
from app.models.leave_balance import LeaveBalance
from app.services import leave_service
from app.services.directory import EmployeeDirectory
from app.services.leave_catalog import LeaveTypeCode
from app.services.leave_ledger import LeaveLedger


def _balance(db, employee_id, leave_type, year=2025):
    return db.query(LeaveBalance).filter(
        LeaveBalance.employee_id == employee_id,
        LeaveBalance.leave_type == LeaveTypeCode(leave_type).value,
        LeaveBalance.year == year
    ).one()


def _assert_invariant(row):
    assert row.remaining_days == pytest.approx(row.allocated_days + row.carried_forward_days - row.used_days)
    assert row.remaining_days >= 0


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

def test_seed_permanent_allocates_every_type(db_session, permanent_employee):
    types = {b.leave_type for b in LeaveLedger(db_session).list_balances(permanent_employee.id, 2025)}
    assert types == {code.value for code in LeaveTypeCode}

    casual = _balance(db_session, permanent_employee.id, LeaveTypeCode.CASUAL)
    assert (casual.allocated_days, casual.used_days, casual.remaining_days) == (12, 0, 12)
    assert _balance(db_session, permanent_employee.id, LeaveTypeCode.COMP_OFF).allocated_days == 0


def test_seed_probation_skips_permanent_only_types(db_session, make_employee, seed_balances):
    employee = make_employee(status="probation")
    seed_balances(employee, 2025)

    types = {b.leave_type for b in LeaveLedger(db_session).list_balances(employee.id, 2025)}
    assert types == {"CL", "SL", "BL", "LWP"}


def test_seed_is_idempotent_without_reset(db_session, permanent_employee, seed_balances):
    ledger = LeaveLedger(db_session)
    ledger.deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, 2)
    db_session.commit()

    seed_balances(permanent_employee, 2025)
    assert _balance(db_session, permanent_employee.id, LeaveTypeCode.CASUAL).remaining_days == 10


# ---------------------------------------------------------------------------
# Deduct / restore
# ---------------------------------------------------------------------------

def test_deduct_and_restore(db_session, permanent_employee):
    ledger = LeaveLedger(db_session)

    row = ledger.deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, 3)
    assert (row.used_days, row.remaining_days, row.version) == (3, 9, 1)

    row = ledger.restore(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, 3)
    assert (row.used_days, row.remaining_days, row.version) == (0, 12, 2)


def test_deduct_rejects_overdraw(db_session, permanent_employee):
    ledger = LeaveLedger(db_session)
    with pytest.raises(InsufficientBalanceError) as exc:
        ledger.deduct(permanent_employee.id, LeaveTypeCode.MARRIAGE, 2025, 6)
    assert exc.value.error_code == "INSUFFICIENT_BALANCE"
    assert _balance(db_session, permanent_employee.id, LeaveTypeCode.MARRIAGE).remaining_days == 5


def test_restore_never_exceeds_entitlement(db_session, permanent_employee):
    ledger = LeaveLedger(db_session)
    ledger.deduct(permanent_employee.id, LeaveTypeCode.SICK, 2025, 1)

    row = ledger.restore(permanent_employee.id, LeaveTypeCode.SICK, 2025, 5)
    assert row.used_days == 0
    assert row.remaining_days == row.allocated_days + row.carried_forward_days


def test_missing_balance_is_not_found(db_session, permanent_employee):
    with pytest.raises(NotFoundError):
        LeaveLedger(db_session).deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2030, 1)


@pytest.mark.parametrize("days", [0, -1])
def test_non_positive_days_rejected(db_session, permanent_employee, days):
    with pytest.raises(ValidationError):
        LeaveLedger(db_session).deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, days)


# ---------------------------------------------------------------------------
# Compare-and-swap
# ---------------------------------------------------------------------------

def test_stale_version_loses_the_swap(db_session, permanent_employee):
    ledger = LeaveLedger(db_session)
    stale = ledger.read(permanent_employee.id, LeaveTypeCode.CASUAL, 2025)

    ledger.deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, 1)
    assert ledger._compare_and_swap(stale, used_days=5, remaining_days=7) is False
    assert _balance(db_session, permanent_employee.id, LeaveTypeCode.CASUAL).remaining_days == 11


def test_lost_swap_rereads_and_rechecks(db_session, permanent_employee, monkeypatch):
    ledger = LeaveLedger(db_session)
    stale = ledger.read(permanent_employee.id, LeaveTypeCode.MARRIAGE, 2025)
    # Another approval consumes 3 of 5 days after this one has read the row
    ledger.deduct(permanent_employee.id, LeaveTypeCode.MARRIAGE, 2025, 3)

    real_read = LeaveLedger.read
    reads = []

    def read_stale_first(self, *args):
        reads.append(args)
        if len(reads) == 1:
            return stale
        return real_read(self, *args)

    monkeypatch.setattr(LeaveLedger, "read", read_stale_first)

    with pytest.raises(InsufficientBalanceError):
        ledger.deduct(permanent_employee.id, LeaveTypeCode.MARRIAGE, 2025, 3)
    assert len(reads) == 2
    assert _balance(db_session, permanent_employee.id, LeaveTypeCode.MARRIAGE).remaining_days == 2


def test_persistent_conflict_surfaces_after_retries(db_session, permanent_employee, monkeypatch):
    attempts = []

    def always_lose(self, row, **values):
        attempts.append(row.version)
        return False

    monkeypatch.setattr(LeaveLedger, "_compare_and_swap", always_lose)

    with pytest.raises(StateConflictError) as exc:
        LeaveLedger(db_session, max_retries=3).deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, 1)
    assert exc.value.error_code == "STATE_CONFLICT"
    assert len(attempts) == 3


_employee_ids = itertools.count(10_000)


@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(st.lists(
    st.tuples(st.sampled_from(["deduct", "restore"]), st.sampled_from([0.5, 1.0, 2.0, 3.5])),
    max_size=25,
))
def test_balance_invariant_holds_for_any_sequence(db_session, operations):
    employee_id = next(_employee_ids)
    db_session.add(LeaveBalance(
        employee_id=employee_id, leave_type="SL", year=2025,
        allocated_days=12, used_days=0, carried_forward_days=2.5, remaining_days=14.5, version=0,
    ))
    db_session.flush()

    ledger = LeaveLedger(db_session)
    for op, days in operations:
        try:
            if op == "deduct":
                ledger.deduct(employee_id, LeaveTypeCode.SICK, 2025, days)
            else:
                ledger.restore(employee_id, LeaveTypeCode.SICK, 2025, days)
        except InsufficientBalanceError:
            pass
        _assert_invariant(_balance(db_session, employee_id, LeaveTypeCode.SICK))


def test_concurrent_approvals_never_double_deduct(tmp_path):
    """Two 3-day approvals against a 5-day balance: exactly one wins."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with Session() as setup:
        employee = Employee(
            full_name="Racer", gender="female", employment_status="permanent",
            date_of_joining=date(2022, 1, 3), base_salary=60000,
        )
        setup.add(employee)
        setup.flush()
        setup.add(LeaveBalance(
            employee_id=employee.id, leave_type="SL", year=2025,
            allocated_days=5, used_days=0, carried_forward_days=0, remaining_days=5, version=0,
        ))
        applications = [
            LeaveApplication(
                employee_id=employee.id, leave_type="SL", start_date=start, end_date=end,
                total_days=3, status="pending", applied_date=date(2025, 2, 1), restrictions=[],
            )
            for start, end in [(date(2025, 3, 3), date(2025, 3, 5)), (date(2025, 3, 10), date(2025, 3, 12))]
        ]
        setup.add_all(applications)
        setup.commit()
        employee_id = employee.id
        application_ids = [a.id for a in applications]

    barrier = Barrier(2)

    def approve(application_id):
        session = Session()
        try:
            barrier.wait()
            leave_service.approve_leave_application(session, application_id, approver_id=99)
            return "approved"
        except (InsufficientBalanceError, StateConflictError) as e:
            return e.error_code
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(approve, application_ids))

    assert outcomes.count("approved") == 1
    assert set(outcomes) - {"approved"} <= {"INSUFFICIENT_BALANCE", "STATE_CONFLICT"}

    with Session() as check:
        row = _balance(check, employee_id, LeaveTypeCode.SICK)
        assert (row.used_days, row.remaining_days) == (3, 2)
        statuses = sorted(check.get(LeaveApplication, i).status for i in application_ids)
        assert statuses == [LeaveStatus.APPROVED.value, LeaveStatus.PENDING.value]

    engine.dispose()


# ---------------------------------------------------------------------------
# Rollover and comp-off
# ---------------------------------------------------------------------------

def test_rollover_carries_forward_capped_sick_leave(db_session, permanent_employee):
    ledger = LeaveLedger(db_session)
    ledger.deduct(permanent_employee.id, LeaveTypeCode.SICK, 2025, 2)
    ledger.deduct(permanent_employee.id, LeaveTypeCode.CASUAL, 2025, 2)

    record = EmployeeDirectory(db_session).get_employee(permanent_employee.id)
    ledger.rollover_year(record, 2025)

    sick = _balance(db_session, permanent_employee.id, LeaveTypeCode.SICK, 2026)
    assert (sick.allocated_days, sick.carried_forward_days, sick.remaining_days) == (12, 6, 18)
    casual = _balance(db_session, permanent_employee.id, LeaveTypeCode.CASUAL, 2026)
    assert (casual.carried_forward_days, casual.remaining_days) == (0, 12)

    # A second rollover leaves existing rows alone
    assert ledger.rollover_year(record, 2025) == []


def test_comp_off_credit_requires_non_working_day(db_session, permanent_employee):
    record = EmployeeDirectory(db_session).get_employee(permanent_employee.id)
    with pytest.raises(ValidationError):
        LeaveLedger(db_session).credit_comp_off(record, date(2025, 3, 3))


def test_comp_off_credit_grows_allocation(db_session, permanent_employee):
    record = EmployeeDirectory(db_session).get_employee(permanent_employee.id)
    ledger = LeaveLedger(db_session)

    credit = ledger.credit_comp_off(record, date(2025, 3, 8))  # Saturday
    assert credit.expires_on == date(2025, 5, 3)

    holiday_credit = ledger.credit_comp_off(record, date(2025, 3, 4), holidays=frozenset({date(2025, 3, 4)}))
    assert holiday_credit.days == 1

    row = _balance(db_session, permanent_employee.id, LeaveTypeCode.COMP_OFF)
    assert (row.allocated_days, row.remaining_days) == (2, 2)
    assert ledger.active_comp_off_expiries(permanent_employee.id, date(2025, 3, 10)) == (
        date(2025, 4, 29), date(2025, 5, 3)
    )


def test_comp_off_not_available_on_probation(db_session, make_employee):
    employee = make_employee(status="probation")
    record = EmployeeDirectory(db_session).get_employee(employee.id)
    with pytest.raises(ValidationError):
        LeaveLedger(db_session).credit_comp_off(record, date(2025, 3, 8))


def test_expired_comp_off_leaves_the_allocation(db_session, permanent_employee):
    record = EmployeeDirectory(db_session).get_employee(permanent_employee.id)
    ledger = LeaveLedger(db_session)
    ledger.credit_comp_off(record, date(2025, 3, 8))
    ledger.credit_comp_off(record, date(2025, 3, 9))
    ledger.deduct(permanent_employee.id, LeaveTypeCode.COMP_OFF, 2025, 1)

    removed = ledger.expire_comp_off(permanent_employee.id, today=date(2025, 6, 1))

    assert removed == 1
    row = _balance(db_session, permanent_employee.id, LeaveTypeCode.COMP_OFF)
    _assert_invariant(row)
    assert (row.allocated_days, row.used_days, row.remaining_days) == (1, 1, 0)
    assert db_session.query(CompOffCredit).filter(CompOffCredit.is_expired.is_(True)).count() == 2


def test_expiry_spares_credit_days_already_taken(db_session, permanent_employee):
    record = EmployeeDirectory(db_session).get_employee(permanent_employee.id)
    ledger = LeaveLedger(db_session)
    early = ledger.credit_comp_off(record, date(2025, 3, 8))   # expires 2025-05-03
    ledger.deduct(permanent_employee.id, LeaveTypeCode.COMP_OFF, 2025, 1)
    late = ledger.credit_comp_off(record, date(2025, 4, 26))   # expires 2025-06-21

    assert (early.used_days, late.used_days) == (1, 0)

    removed = ledger.expire_comp_off(permanent_employee.id, today=date(2025, 5, 10))

    assert removed == 0
    row = _balance(db_session, permanent_employee.id, LeaveTypeCode.COMP_OFF)
    _assert_invariant(row)
    assert (row.allocated_days, row.used_days, row.remaining_days) == (2, 1, 1)
    assert ledger.active_comp_off_expiries(permanent_employee.id, date(2025, 5, 10)) == (date(2025, 6, 21),)


def test_comp_off_restore_returns_days_to_the_credit(db_session, permanent_employee):
    record = EmployeeDirectory(db_session).get_employee(permanent_employee.id)
    ledger = LeaveLedger(db_session)
    first = ledger.credit_comp_off(record, date(2025, 3, 8))
    second = ledger.credit_comp_off(record, date(2025, 3, 15))

    ledger.deduct(permanent_employee.id, LeaveTypeCode.COMP_OFF, 2025, 1.5)
    assert (first.used_days, second.used_days) == (1, 0.5)
    # Fully drawn credits no longer count toward eligibility
    assert ledger.active_comp_off_expiries(permanent_employee.id, date(2025, 3, 20)) == (date(2025, 5, 10),)

    ledger.restore(permanent_employee.id, LeaveTypeCode.COMP_OFF, 2025, 1)
    assert (first.used_days, second.used_days) == (0.5, 0)
