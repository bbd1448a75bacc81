import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.onboarding import (
    CompleteProbationRequest,
    FirstMonthSalesUpdate,
    OnboardingPolicyCreate,
    OnboardingPolicyDetail,
    OnboardingPolicyResponse,
    OnboardingStatusResponse,
)
from app.services import onboarding_policy_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


def _detail(state, today: date) -> OnboardingPolicyDetail:
    return OnboardingPolicyDetail(
        policy=OnboardingPolicyResponse.model_validate(state),
        status=OnboardingStatusResponse.model_validate(
            onboarding_policy_service.evaluate_onboarding_status(state, today)
        ),
    )


@router.post("/policy", response_model=OnboardingPolicyResponse, status_code=status.HTTP_201_CREATED)
def create_onboarding_policy(payload: OnboardingPolicyCreate, db: Session = Depends(get_db)):
    """Start training, first-month and probation timers for a new hire."""
    return onboarding_policy_service.create_onboarding_state(
        db,
        employee_id=payload.employee_id,
        training_start_date=payload.training_start_date,
        first_month_sales_target=payload.first_month_sales_target,
    )


@router.get("/policy/{employee_id}", response_model=OnboardingPolicyDetail)
def get_onboarding_policy(employee_id: int, as_of: Optional[date] = None, db: Session = Depends(get_db)):
    state = onboarding_policy_service.require_state(db, employee_id)
    return _detail(state, as_of or date.today())


@router.post("/policy/{employee_id}/sales", response_model=OnboardingPolicyResponse)
def record_first_month_sales(employee_id: int, payload: FirstMonthSalesUpdate, db: Session = Depends(get_db)):
    return onboarding_policy_service.record_first_month_sales(db, employee_id, payload.amount)


@router.post("/policy/{employee_id}/complete-probation", response_model=OnboardingPolicyDetail)
def complete_probation(
    employee_id: int,
    payload: Optional[CompleteProbationRequest] = None,
    db: Session = Depends(get_db)
):
    """Promote to permanent and re-seed leave balances for the permanent policy."""
    today = (payload.completed_on if payload else None) or date.today()
    state = onboarding_policy_service.complete_probation(db, employee_id, today=today)
    logger.info(f"Probation completed via API for employee {employee_id}")
    return _detail(state, today)
