"""
Leave Eligibility Evaluator

Pure decision function over pre-fetched snapshots. The rules run in the
order of `ELIGIBILITY_RULES` and the first failing rule aborts the
evaluation with its reason; the order is what applicants see, so it is part
of the contract.

No database access happens here. `app.services.leave_service` loads the
snapshots and persists the outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import AbstractSet, Callable, List, Optional, Tuple

from app.models.employee import EmploymentStatus, Gender
from app.services.leave_catalog import LeaveTypeDefinition
from app.services.work_calendar import months_between, requested_leave_days


@dataclass(frozen=True)
class EmployeeSnapshot:
    employee_id: int
    employment_status: EmploymentStatus
    gender: Gender
    date_of_joining: date
    first_month_end_date: Optional[date] = None


@dataclass(frozen=True)
class BalanceSnapshot:
    allocated_days: float
    used_days: float
    carried_forward_days: float
    remaining_days: float


@dataclass(frozen=True)
class UsageSnapshot:
    """Prior consumption of the requested leave type."""
    approved_days_in_month: float = 0.0
    lifetime_count: int = 0
    comp_off_expiries: Tuple[date, ...] = ()


@dataclass(frozen=True)
class EligibilityContext:
    employee: EmployeeSnapshot
    leave_type: LeaveTypeDefinition
    balance: Optional[BalanceSnapshot]
    usage: UsageSnapshot
    start: date
    end: date
    today: date
    requested_days: float
    is_emergency: bool = False
    event_date: Optional[date] = None


@dataclass
class EligibilityDecision:
    can_approve: bool
    requested_days: float
    restrictions: List[str] = field(default_factory=list)
    available_balance: float = 0.0
    failed_rule: Optional[str] = None


RuleCheck = Callable[[EligibilityContext], Optional[str]]


@dataclass(frozen=True)
class EligibilityRule:
    name: str
    check: RuleCheck
    bypassed_by_emergency: bool = False


def _fmt(days: float) -> str:
    return f"{days:g}"


def check_first_month(ctx: EligibilityContext) -> Optional[str]:
    cutoff = ctx.employee.first_month_end_date
    if cutoff is not None and min(ctx.today, ctx.start) <= cutoff:
        return "No leave is permitted during the first month of employment"
    return None


def check_employment_status(ctx: EligibilityContext) -> Optional[str]:
    if not ctx.leave_type.is_available_to(ctx.employee.employment_status):
        return f"Not eligible for employment status: {ctx.employee.employment_status.value}"
    return None


def check_gender(ctx: EligibilityContext) -> Optional[str]:
    required = ctx.leave_type.gender_restriction
    if required is not None and ctx.employee.gender != required:
        return f"{ctx.leave_type.name} is only available to {required.value} employees"
    return None


def check_tenure(ctx: EligibilityContext) -> Optional[str]:
    minimum = ctx.leave_type.eligibility.min_service_months
    if minimum and months_between(ctx.employee.date_of_joining, ctx.today) < minimum:
        return f"Requires at least {minimum} months of service"
    return None


def check_monthly_cap(ctx: EligibilityContext) -> Optional[str]:
    cap = ctx.leave_type.max_days_per_month
    if cap is None:
        return None
    used = ctx.usage.approved_days_in_month
    if used + ctx.requested_days > cap:
        return f"Monthly limit exceeded (used {_fmt(used)} of {_fmt(cap)} days)"
    return None


def check_balance(ctx: EligibilityContext) -> Optional[str]:
    if ctx.requested_days <= 0:
        return "Selected dates contain no working days"
    available = ctx.balance.remaining_days if ctx.balance is not None else 0.0
    if ctx.requested_days > available:
        return f"Insufficient balance (available {_fmt(available)} days)"
    return None


def check_event_restrictions(ctx: EligibilityContext) -> Optional[str]:
    rules = ctx.leave_type.eligibility

    if rules.one_time_only and ctx.usage.lifetime_count >= 1:
        return f"{ctx.leave_type.name} has already been availed once"

    if rules.max_event_count is not None and ctx.usage.lifetime_count >= rules.max_event_count:
        return f"Maximum of {rules.max_event_count} occurrences already availed"

    if rules.within_weeks_of_event is not None:
        weeks = rules.within_weeks_of_event
        if ctx.event_date is None:
            return f"An event date is required; leave must be taken within {weeks} weeks of the event"
        window_end = ctx.event_date + timedelta(weeks=weeks)
        if not (ctx.event_date <= ctx.start <= window_end):
            return f"Must be taken within {weeks} weeks of the event"

    if rules.work_on_holiday_required:
        if not any(expiry >= ctx.start for expiry in ctx.usage.comp_off_expiries):
            return "Compensatory off credit has expired"

    return None


ELIGIBILITY_RULES: Tuple[EligibilityRule, ...] = (
    EligibilityRule("first_month_lock", check_first_month),
    EligibilityRule("employment_status", check_employment_status),
    EligibilityRule("gender", check_gender),
    EligibilityRule("tenure", check_tenure, bypassed_by_emergency=True),
    EligibilityRule("monthly_cap", check_monthly_cap, bypassed_by_emergency=True),
    EligibilityRule("balance", check_balance),
    EligibilityRule("event_restrictions", check_event_restrictions),
)


def evaluate(
    employee: EmployeeSnapshot,
    leave_type: LeaveTypeDefinition,
    balance: Optional[BalanceSnapshot],
    start: date,
    end: date,
    is_half_day: bool,
    today: date,
    usage: Optional[UsageSnapshot] = None,
    holidays: AbstractSet[date] = frozenset(),
    is_emergency: bool = False,
    event_date: Optional[date] = None,
) -> EligibilityDecision:
    requested = requested_leave_days(start, end, is_half_day, holidays)
    ctx = EligibilityContext(
        employee=employee,
        leave_type=leave_type,
        balance=balance,
        usage=usage or UsageSnapshot(),
        start=start,
        end=end,
        today=today,
        requested_days=requested,
        is_emergency=is_emergency,
        event_date=event_date,
    )
    available = balance.remaining_days if balance is not None else 0.0

    for rule in ELIGIBILITY_RULES:
        if is_emergency and rule.bypassed_by_emergency:
            continue
        reason = rule.check(ctx)
        if reason is not None:
            return EligibilityDecision(
                can_approve=False,
                requested_days=requested,
                restrictions=[reason],
                available_balance=available,
                failed_rule=rule.name,
            )

    return EligibilityDecision(can_approve=True, requested_days=requested, available_balance=available)


# Outcomes that change when a sibling application of the same type is approved
USAGE_DEPENDENT_RULES = frozenset({"monthly_cap", "event_restrictions"})


def recheck_usage_rules(
    employee: EmployeeSnapshot,
    leave_type: LeaveTypeDefinition,
    start: date,
    end: date,
    requested_days: float,
    today: date,
    usage: UsageSnapshot,
    is_emergency: bool = False,
    event_date: Optional[date] = None,
) -> List[str]:
    """
    Re-run the usage-dependent rules for an already submitted application.

    The verdict stored at submission only saw approvals that existed then;
    approving a sibling request afterwards can push this one over a monthly
    cap or a one-time limit.
    """
    ctx = EligibilityContext(
        employee=employee,
        leave_type=leave_type,
        balance=None,
        usage=usage,
        start=start,
        end=end,
        today=today,
        requested_days=requested_days,
        is_emergency=is_emergency,
        event_date=event_date,
    )
    restrictions = []
    for rule in ELIGIBILITY_RULES:
        if rule.name not in USAGE_DEPENDENT_RULES:
            continue
        if is_emergency and rule.bypassed_by_emergency:
            continue
        reason = rule.check(ctx)
        if reason is not None:
            restrictions.append(reason)
    return restrictions
