from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Dict, List, Optional


class LeaveImpactLineResponse(BaseModel):
    days: float
    is_paid: bool
    deduction: float


class LeaveImpactResponse(BaseModel):
    employee_id: int
    period_start: date
    period_end: date
    paid_leave_days: float
    unpaid_leave_days: float
    leave_deduction_amount: float
    performance_penalty_amount: float
    total_leave_impact: float
    breakdown: Dict[str, LeaveImpactLineResponse] = {}


class PayslipRequest(BaseModel):
    employee_id: int
    period_start: date
    period_end: date


class SalaryComponentResponse(BaseModel):
    id: int
    component_type: str
    name: str
    amount: float
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PayslipResponse(BaseModel):
    id: int
    employee_id: int
    period_start: date
    period_end: date
    base_salary: float
    gross_salary: float
    total_allowances: float
    total_deductions: float
    net_salary: float
    paid_leave_days: float
    unpaid_leave_days: float
    status: str
    created_at: Optional[datetime] = None
    components: List[SalaryComponentResponse] = []

    model_config = ConfigDict(from_attributes=True)


PayslipResponse.model_rebuild()
