from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional

from app.models.employee import Gender
from app.services.leave_catalog import LeaveTypeCode


class LeaveApplicationCreate(BaseModel):
    employee_id: int
    leave_type: LeaveTypeCode
    start_date: date
    end_date: date
    reason: Optional[str] = None
    is_half_day: bool = False
    is_emergency: bool = False
    event_date: Optional[date] = None


class LeaveEligibilityRequest(BaseModel):
    employee_id: int
    leave_type: LeaveTypeCode
    start_date: date
    end_date: date
    is_half_day: bool = False
    is_emergency: bool = False
    event_date: Optional[date] = None


class EligibilityVerdict(BaseModel):
    can_approve: bool
    requested_days: float
    restrictions: List[str] = []
    available_balance: float = 0.0
    failed_rule: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveApplicationResponse(BaseModel):
    id: int
    employee_id: int
    leave_type: str
    start_date: date
    end_date: date
    total_days: float
    status: str
    reason: Optional[str] = None
    is_half_day: bool
    is_emergency: bool
    event_date: Optional[date] = None
    applied_date: date
    restrictions: List[str] = []
    can_approve: bool
    decided_by: Optional[int] = None
    decided_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    cancelled_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveSubmissionResponse(BaseModel):
    application: LeaveApplicationResponse
    verdict: EligibilityVerdict


class LeaveApproveRequest(BaseModel):
    approver_id: int
    override: bool = False


class LeaveRejectRequest(BaseModel):
    approver_id: int
    reason: str = Field(..., min_length=1)


class LeaveCancelRequest(BaseModel):
    cancelled_by: Optional[int] = None


class LeaveTypeResponse(BaseModel):
    code: LeaveTypeCode
    name: str
    max_days_per_year: float
    max_days_per_month: Optional[float] = None
    carry_forward: bool
    carry_forward_limit: Optional[float] = None
    expiry_days: Optional[int] = None
    gender_restriction: Optional[Gender] = None
    documentation_required: bool
    is_paid: bool
    approval_levels: List[str]

    model_config = ConfigDict(from_attributes=True)


class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: int
    leave_type: str
    year: int
    allocated_days: float
    used_days: float
    carried_forward_days: float
    remaining_days: float
    version: int

    model_config = ConfigDict(from_attributes=True)


class BalanceSeedRequest(BaseModel):
    year: int
    reset: bool = False


class BalanceRolloverRequest(BaseModel):
    from_year: int


class CompOffCreditRequest(BaseModel):
    employee_id: int
    worked_on: date
    days: float = Field(1.0, gt=0)


class CompOffCreditResponse(BaseModel):
    id: int
    employee_id: int
    worked_on: date
    days: float
    used_days: float
    expires_on: date
    is_expired: bool

    model_config = ConfigDict(from_attributes=True)


# Resolve forward references for Pydantic V2
LeaveApplicationResponse.model_rebuild()
LeaveSubmissionResponse.model_rebuild()
LeaveBalanceResponse.model_rebuild()
