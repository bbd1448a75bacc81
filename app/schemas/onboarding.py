from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import Optional


class OnboardingPolicyCreate(BaseModel):
    employee_id: int
    training_start_date: date
    first_month_sales_target: float = Field(0.0, ge=0)


class FirstMonthSalesUpdate(BaseModel):
    amount: float = Field(..., ge=0)


class CompleteProbationRequest(BaseModel):
    completed_on: Optional[date] = None


class OnboardingPolicyResponse(BaseModel):
    id: int
    employee_id: int
    training_start_date: date
    training_end_date: date
    first_month_end_date: date
    first_month_sales_target: float
    first_month_sales_achieved: float
    first_month_penalty_applied: bool
    first_month_penalty_amount: float
    first_month_penalty_period_end: Optional[date] = None
    probation_end_date: date
    is_probation_complete: bool
    probation_completed_on: Optional[date] = None
    bond_months: int
    bond_amount: float

    model_config = ConfigDict(from_attributes=True)


class OnboardingStatusResponse(BaseModel):
    employee_id: int
    in_training: bool
    in_first_month: bool
    probation_due: bool
    bond_active: bool
    is_probation_complete: bool
    first_month_penalty_applied: bool

    model_config = ConfigDict(from_attributes=True)


class OnboardingPolicyDetail(BaseModel):
    policy: OnboardingPolicyResponse
    status: OnboardingStatusResponse
