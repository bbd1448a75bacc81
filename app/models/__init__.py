# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    employee, holiday, attendance,
    leave_application, leave_balance, comp_off_credit,
    onboarding_policy,
    payroll, salary_component,
    audit_log
)

# Explicit class exports for cleaner imports
from .employee import Employee, EmploymentStatus, Gender
from .leave_application import LeaveApplication, LeaveStatus
from .leave_balance import LeaveBalance
from .onboarding_policy import OnboardingPolicyState
from .payroll import Payroll, PayrollStatus

__all__ = [
    "Employee",
    "EmploymentStatus",
    "Gender",
    "LeaveApplication",
    "LeaveStatus",
    "LeaveBalance",
    "OnboardingPolicyState",
    "Payroll",
    "PayrollStatus",
]
