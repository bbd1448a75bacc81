"""
Onboarding Policy Service

Training, first-month and probation timers for new hires, the first-month
sales penalty, and the probation-to-permanent transition.

The penalty is applied at most once per employee. Recomputing payroll for
the period that first applied it returns the recorded amount again; any
other period gets nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.employee import EmploymentStatus, Gender
from app.models.onboarding_policy import OnboardingPolicyState
from app.services.audit import AuditService
from app.services.directory import EmployeeDirectory, EmployeeRecord
from app.services.leave_ledger import LeaveLedger
from app.services.money import round_currency
from app.services.work_calendar import add_months

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OnboardingStatus:
    employee_id: int
    in_training: bool
    in_first_month: bool
    probation_due: bool
    bond_active: bool
    is_probation_complete: bool
    first_month_penalty_applied: bool


def get_state(db: Session, employee_id: int) -> Optional[OnboardingPolicyState]:
    return db.query(OnboardingPolicyState).filter(
        OnboardingPolicyState.employee_id == employee_id
    ).first()


def require_state(db: Session, employee_id: int) -> OnboardingPolicyState:
    state = get_state(db, employee_id)
    if state is None:
        raise NotFoundError("Onboarding policy", employee_id)
    return state


def create_onboarding_state(
    db: Session,
    employee_id: int,
    training_start_date: date,
    first_month_sales_target: float = 0.0,
) -> OnboardingPolicyState:
    """
    Derive every onboarding timer from the policy constants.

    Args:
        db: Database session
        employee_id: Employee being onboarded
        training_start_date: First day of training
        first_month_sales_target: Informational target for the first month

    Returns:
        The persisted OnboardingPolicyState
    """
    policy = settings.policy
    employee = EmployeeDirectory(db).get_employee(employee_id)
    if get_state(db, employee_id) is not None:
        raise StateConflictError(
            f"Onboarding policy already exists for employee {employee_id}",
            details={"employee_id": employee_id},
        )
    if first_month_sales_target < 0:
        raise ValidationError("Sales target cannot be negative")

    training_end = training_start_date + timedelta(days=policy.training_period_days)
    state = OnboardingPolicyState(
        employee_id=employee_id,
        training_start_date=training_start_date,
        training_end_date=training_end,
        first_month_end_date=training_end + timedelta(days=policy.first_month_days),
        first_month_sales_target=first_month_sales_target,
        first_month_sales_achieved=0.0,
        first_month_penalty_applied=False,
        first_month_penalty_amount=0.0,
        probation_end_date=add_months(training_start_date, policy.probation_period_months),
        is_probation_complete=False,
        bond_months=policy.bond_months,
        bond_amount=round_currency(employee.base_salary * policy.bond_months),
    )
    try:
        db.add(state)
        db.flush()
        AuditService.log(
            db,
            action="create_onboarding_policy",
            entity_type="onboarding_policy",
            entity_id=state.id,
            actor_id=None,
            details={
                "employee_id": employee_id,
                "first_month_end_date": state.first_month_end_date,
                "probation_end_date": state.probation_end_date,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(state)
    return state


def record_first_month_sales(db: Session, employee_id: int, amount: float) -> OnboardingPolicyState:
    if amount < 0:
        raise ValidationError("Sales amount cannot be negative", details={"amount": amount})

    state = require_state(db, employee_id)
    if state.is_probation_complete:
        raise StateConflictError(
            f"Onboarding policy for employee {employee_id} is frozen after probation",
            details={"employee_id": employee_id},
        )

    before = {"first_month_sales_achieved": state.first_month_sales_achieved}
    state.first_month_sales_achieved = amount
    try:
        AuditService.log(
            db,
            action="record_first_month_sales",
            entity_type="onboarding_policy",
            entity_id=state.id,
            actor_id=None,
            details={"employee_id": employee_id, "amount": amount},
            before_state=before,
            after_state={"first_month_sales_achieved": amount},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(state)
    return state


def evaluate_onboarding_status(state: OnboardingPolicyState, today: date) -> OnboardingStatus:
    bond_end = add_months(state.training_start_date, state.bond_months)
    return OnboardingStatus(
        employee_id=state.employee_id,
        in_training=state.training_start_date <= today < state.training_end_date,
        in_first_month=state.training_end_date <= today <= state.first_month_end_date,
        probation_due=not state.is_probation_complete and today >= state.probation_end_date,
        bond_active=today < bond_end,
        is_probation_complete=state.is_probation_complete,
        first_month_penalty_applied=state.first_month_penalty_applied,
    )


def first_month_penalty_due(state: Optional[OnboardingPolicyState], period_end_date: date, base_salary: float) -> float:
    """Penalty this period would carry, without recording anything."""
    if state is None:
        return 0.0
    if state.first_month_penalty_applied:
        if state.first_month_penalty_period_end == period_end_date:
            return state.first_month_penalty_amount
        return 0.0
    if period_end_date < state.first_month_end_date:
        return 0.0
    if state.first_month_sales_achieved > 0:
        return 0.0
    return round_currency(base_salary * settings.policy.first_month_penalty_rate)


def apply_first_month_penalty_if_due(db: Session, employee_id: int, period_end_date: date) -> float:
    """
    Record the first-month penalty if it is due for this period.
    Flushes only; the payroll transaction that uses the amount commits it.
    """
    state = get_state(db, employee_id)
    if state is None:
        return 0.0

    employee = EmployeeDirectory(db).get_employee(employee_id)
    amount = first_month_penalty_due(state, period_end_date, employee.base_salary)
    if amount <= 0 or state.first_month_penalty_applied:
        return amount

    state.first_month_penalty_applied = True
    state.first_month_penalty_amount = amount
    state.first_month_penalty_period_end = period_end_date
    db.flush()
    AuditService.log(
        db,
        action="apply_first_month_penalty",
        entity_type="onboarding_policy",
        entity_id=state.id,
        actor_id=None,
        details={"employee_id": employee_id, "amount": amount, "period_end": period_end_date},
    )
    logger.info(
        f"First-month penalty of {amount:.0f} applied to employee {employee_id}",
        extra={"period_end": period_end_date.isoformat()}
    )
    return amount


def complete_probation(db: Session, employee_id: int, today: Optional[date] = None) -> OnboardingPolicyState:
    """
    Promote the employee to permanent, freeze the onboarding state and
    re-seed leave balances for the permanent policy set.
    """
    today = today or date.today()
    state = require_state(db, employee_id)
    if state.is_probation_complete:
        raise StateConflictError(
            f"Probation already completed for employee {employee_id}",
            error_code="ALREADY_TERMINAL",
            details={"employee_id": employee_id, "completed_on": state.probation_completed_on},
        )

    employee = EmployeeDirectory(db).get_model(employee_id)
    if today < state.probation_end_date:
        logger.info(f"Completing probation for employee {employee_id} before {state.probation_end_date}")

    previous_status = employee.employment_status
    try:
        employee.employment_status = EmploymentStatus.PERMANENT.value
        state.is_probation_complete = True
        state.probation_completed_on = today
        db.flush()

        record = EmployeeRecord(
            employee_id=employee.id,
            employment_status=EmploymentStatus.PERMANENT,
            gender=Gender(employee.gender),
            date_of_joining=employee.date_of_joining,
            base_salary=float(employee.base_salary or 0.0),
        )
        LeaveLedger(db).seed_balances(record, today.year, reset=True)
        AuditService.log(
            db,
            action="complete_probation",
            entity_type="onboarding_policy",
            entity_id=state.id,
            actor_id=None,
            details={"employee_id": employee_id, "completed_on": today},
            before_state={"employment_status": previous_status},
            after_state={"employment_status": EmploymentStatus.PERMANENT.value},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(state)
    logger.info(f"Employee {employee_id} is now permanent")
    return state
