"""
Leave Policy Catalog

Closed set of leave types and their policy constants. Seeded once at
configuration time and never mutated at runtime; every leave-type lookup in
the engine goes through `get_leave_type`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from app.core.exceptions import NotFoundError
from app.models.employee import EmploymentStatus, Gender


class LeaveTypeCode(str, enum.Enum):
    CASUAL = "CL"
    EMERGENCY = "EL"
    SICK = "SL"
    MATERNITY = "ML"
    MARRIAGE = "MAR"
    PATERNITY = "PL"
    COMP_OFF = "CO"
    BEREAVEMENT = "BL"
    LEAVE_WITHOUT_PAY = "LWP"


_BOTH = frozenset({EmploymentStatus.PROBATION, EmploymentStatus.PERMANENT})
_PERMANENT = frozenset({EmploymentStatus.PERMANENT})


@dataclass(frozen=True)
class EligibilityRules:
    allowed_employment_status: FrozenSet[EmploymentStatus] = _BOTH
    min_service_months: Optional[int] = None
    max_event_count: Optional[int] = None
    one_time_only: bool = False
    within_weeks_of_event: Optional[int] = None
    work_on_holiday_required: bool = False


@dataclass(frozen=True)
class LeaveTypeDefinition:
    code: LeaveTypeCode
    name: str
    max_days_per_year: float
    max_days_per_month: Optional[float] = None
    carry_forward: bool = False
    carry_forward_limit: Optional[float] = None
    expiry_days: Optional[int] = None
    gender_restriction: Optional[Gender] = None
    eligibility: EligibilityRules = field(default_factory=EligibilityRules)
    documentation_required: bool = False
    is_paid: bool = True
    approval_levels: Tuple[str, ...] = ("hr",)

    def is_available_to(self, status: EmploymentStatus) -> bool:
        return status in self.eligibility.allowed_employment_status


LEAVE_CATALOG: Dict[LeaveTypeCode, LeaveTypeDefinition] = {
    LeaveTypeCode.CASUAL: LeaveTypeDefinition(
        code=LeaveTypeCode.CASUAL,
        name="Casual Leave",
        max_days_per_year=12,
        approval_levels=("department_head", "hr"),
    ),
    LeaveTypeCode.EMERGENCY: LeaveTypeDefinition(
        code=LeaveTypeCode.EMERGENCY,
        name="Emergency Leave",
        max_days_per_year=12,
        max_days_per_month=1,
        eligibility=EligibilityRules(allowed_employment_status=_PERMANENT),
        documentation_required=True,
        approval_levels=("department_head", "hr", "director"),
    ),
    LeaveTypeCode.SICK: LeaveTypeDefinition(
        code=LeaveTypeCode.SICK,
        name="Sick Leave",
        max_days_per_year=12,
        carry_forward=True,
        carry_forward_limit=6,
        documentation_required=True,
        approval_levels=("department_head", "hr", "director"),
    ),
    LeaveTypeCode.MATERNITY: LeaveTypeDefinition(
        code=LeaveTypeCode.MATERNITY,
        name="Maternity Leave",
        max_days_per_year=182,  # 26 weeks
        gender_restriction=Gender.FEMALE,
        eligibility=EligibilityRules(
            allowed_employment_status=_PERMANENT,
            min_service_months=12,
            max_event_count=2,
        ),
        documentation_required=True,
        approval_levels=("hr", "director"),
    ),
    LeaveTypeCode.MARRIAGE: LeaveTypeDefinition(
        code=LeaveTypeCode.MARRIAGE,
        name="Marriage Leave",
        max_days_per_year=5,
        eligibility=EligibilityRules(allowed_employment_status=_PERMANENT, one_time_only=True),
        documentation_required=True,
    ),
    LeaveTypeCode.PATERNITY: LeaveTypeDefinition(
        code=LeaveTypeCode.PATERNITY,
        name="Paternity Leave",
        max_days_per_year=14,
        gender_restriction=Gender.MALE,
        eligibility=EligibilityRules(allowed_employment_status=_PERMANENT, within_weeks_of_event=8),
        documentation_required=True,
    ),
    LeaveTypeCode.COMP_OFF: LeaveTypeDefinition(
        code=LeaveTypeCode.COMP_OFF,
        name="Compensatory Off",
        max_days_per_year=24,
        expiry_days=56,  # 8 weeks
        eligibility=EligibilityRules(allowed_employment_status=_PERMANENT, work_on_holiday_required=True),
        approval_levels=("immediate_manager", "hr"),
    ),
    LeaveTypeCode.BEREAVEMENT: LeaveTypeDefinition(
        code=LeaveTypeCode.BEREAVEMENT,
        name="Bereavement Leave",
        max_days_per_year=5,
        documentation_required=True,
        approval_levels=("department_head", "hr"),
    ),
    LeaveTypeCode.LEAVE_WITHOUT_PAY: LeaveTypeDefinition(
        code=LeaveTypeCode.LEAVE_WITHOUT_PAY,
        name="Leave Without Pay",
        max_days_per_year=30,
        is_paid=False,
        approval_levels=("department_head", "hr"),
    ),
}


def get_leave_type(code) -> LeaveTypeDefinition:
    """Resolve a leave type by enum member or raw code string."""
    try:
        return LEAVE_CATALOG[LeaveTypeCode(code)]
    except (ValueError, KeyError):
        raise NotFoundError("Leave type", str(code))


def initial_allocation(leave_type: LeaveTypeDefinition, status: EmploymentStatus) -> Optional[float]:
    """
    Days allocated when a balance row is seeded, or None when the employee's
    status makes the type unavailable. Comp-off starts empty and grows with
    credits.
    """
    if not leave_type.is_available_to(status):
        return None
    if leave_type.code == LeaveTypeCode.COMP_OFF:
        return 0.0
    return float(leave_type.max_days_per_year)
