"""
Payroll Service Layer

Folds approved leave, attendance and the onboarding penalty into a payslip.

Architecture:
- Router -> Service (this module) -> Directory / Attendance / Onboarding
- Leave deductions are computed in exactly one place, `compute_leave_impact`
- Amounts are rounded to whole currency units, half-up
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.leave_application import LeaveApplication, LeaveStatus
from app.models.payroll import Payroll, PayrollStatus
from app.models.salary_component import ComponentType, SalaryComponent
from app.services import onboarding_policy_service
from app.services.audit import AuditService
from app.services.directory import AttendanceLedger, EmployeeDirectory
from app.services.leave_catalog import get_leave_type
from app.services.money import round_currency
from app.services.work_calendar import load_holidays, overlap, requested_leave_days

logger = logging.getLogger(__name__)


@dataclass
class LeaveImpactLine:
    days: float = 0.0
    is_paid: bool = True
    deduction: float = 0.0


@dataclass
class PayslipLeaveImpact:
    employee_id: int
    period_start: date
    period_end: date
    paid_leave_days: float = 0.0
    unpaid_leave_days: float = 0.0
    leave_deduction_amount: float = 0.0
    performance_penalty_amount: float = 0.0
    breakdown: Dict[str, LeaveImpactLine] = field(default_factory=dict)

    @property
    def total_leave_impact(self) -> float:
        return self.leave_deduction_amount + self.performance_penalty_amount


@dataclass
class PayslipComputation:
    employee_id: int
    period_start: date
    period_end: date
    base_salary: float
    working_days: int
    present_days: float
    absent_days: float
    late_days: int
    overtime_hours: float
    prorated_base_salary: float
    total_allowances: float
    gross_salary: float
    tax_amount: float
    total_deductions: float
    net_salary: float
    allowances: Dict[str, float]
    deductions: Dict[str, float]
    leave_impact: PayslipLeaveImpact


def _validate_period(period_start: date, period_end: date) -> None:
    if period_end < period_start:
        raise ValidationError(
            "period_end cannot be before period_start",
            details={"period_start": period_start.isoformat(), "period_end": period_end.isoformat()},
        )


def _days_in_period(application: LeaveApplication, period_start: date, period_end: date, holidays) -> float:
    window = overlap(application.start_date, application.end_date, period_start, period_end)
    if window is None:
        return 0.0
    return requested_leave_days(window[0], window[1], application.is_half_day, holidays)


def compute_leave_impact(
    db: Session,
    employee_id: int,
    period_start: date,
    period_end: date,
    apply_penalty: bool = True,
) -> PayslipLeaveImpact:
    """
    Leave impact of every approved application overlapping the period.

    Only working days inside the period count; a leave straddling two pay
    periods is split between them. With `apply_penalty=False` the
    first-month penalty is previewed without being recorded.
    """
    _validate_period(period_start, period_end)
    employee = EmployeeDirectory(db).get_employee(employee_id)
    holidays = load_holidays(db, period_start, period_end)
    daily_rate = employee.base_salary / settings.policy.salary_days_divisor

    applications = db.query(LeaveApplication).filter(
        LeaveApplication.employee_id == employee_id,
        LeaveApplication.status == LeaveStatus.APPROVED.value,
        LeaveApplication.start_date <= period_end,
        LeaveApplication.end_date >= period_start
    ).order_by(LeaveApplication.start_date).all()

    impact = PayslipLeaveImpact(employee_id=employee_id, period_start=period_start, period_end=period_end)
    raw_deduction = 0.0

    for application in applications:
        days = _days_in_period(application, period_start, period_end, holidays)
        if days <= 0:
            continue

        leave_type = get_leave_type(application.leave_type)
        line = impact.breakdown.setdefault(leave_type.name, LeaveImpactLine(is_paid=leave_type.is_paid))
        line.days += days

        if leave_type.is_paid:
            impact.paid_leave_days += days
        else:
            impact.unpaid_leave_days += days
            deduction = daily_rate * days
            line.deduction += deduction
            raw_deduction += deduction

    for line in impact.breakdown.values():
        line.deduction = round_currency(line.deduction)
    impact.leave_deduction_amount = round_currency(raw_deduction)

    if apply_penalty:
        penalty = onboarding_policy_service.apply_first_month_penalty_if_due(db, employee_id, period_end)
    else:
        penalty = onboarding_policy_service.first_month_penalty_due(
            onboarding_policy_service.get_state(db, employee_id), period_end, employee.base_salary
        )
    impact.performance_penalty_amount = round_currency(penalty)

    return impact


def compute_payslip(
    db: Session,
    employee_id: int,
    period_start: date,
    period_end: date,
    apply_penalty: bool = False,
) -> PayslipComputation:
    """
    Combine attendance, overtime, late arrivals and leave impact.

    Leave days count as attended for pro-ration, so unpaid leave is charged
    once, through the leave deduction line.
    """
    _validate_period(period_start, period_end)
    policy = settings.policy
    employee = EmployeeDirectory(db).get_employee(employee_id)
    base = employee.base_salary

    totals = AttendanceLedger(db).get_attendance_totals(employee_id, period_start, period_end)
    impact = compute_leave_impact(db, employee_id, period_start, period_end, apply_penalty=apply_penalty)

    # No attendance captured for the period: pay the full base
    if totals.working_days > 0:
        covered = totals.present_days + impact.paid_leave_days + impact.unpaid_leave_days
        ratio = min(covered / totals.working_days, 1.0)
    else:
        ratio = 1.0
    prorated_base = base * ratio

    allowances: Dict[str, float] = {}
    overtime_pay = totals.overtime_hours * (base / (policy.monthly_work_days * policy.standard_work_hours))
    if overtime_pay > 0:
        allowances["Overtime Pay"] = round_currency(overtime_pay)

    deductions: Dict[str, float] = {}
    late_penalty = totals.late_days * (base / policy.salary_days_divisor)
    if late_penalty > 0:
        deductions["Late Penalty"] = round_currency(late_penalty)
    if impact.leave_deduction_amount > 0:
        deductions["Leave Deduction"] = impact.leave_deduction_amount
    if impact.performance_penalty_amount > 0:
        deductions["Performance Penalty (First Month)"] = impact.performance_penalty_amount

    total_allowances = round_currency(sum(allowances.values()))
    gross = round_currency(prorated_base + total_allowances)

    tax = max(0.0, (gross - policy.income_tax_exemption) * policy.income_tax_rate)
    if tax > 0:
        deductions["Income Tax"] = round_currency(tax)

    total_deductions = round_currency(sum(deductions.values()))

    return PayslipComputation(
        employee_id=employee_id,
        period_start=period_start,
        period_end=period_end,
        base_salary=base,
        working_days=totals.working_days,
        present_days=totals.present_days,
        absent_days=totals.absent_days,
        late_days=totals.late_days,
        overtime_hours=totals.overtime_hours,
        prorated_base_salary=round_currency(prorated_base),
        total_allowances=total_allowances,
        gross_salary=gross,
        tax_amount=round_currency(tax),
        total_deductions=total_deductions,
        net_salary=round_currency(gross - total_deductions),
        allowances=allowances,
        deductions=deductions,
        leave_impact=impact,
    )


def _find_payslip(db: Session, employee_id: int, period_start: date, period_end: date) -> Optional[Payroll]:
    return db.query(Payroll).filter(
        Payroll.employee_id == employee_id,
        Payroll.period_start == period_start,
        Payroll.period_end == period_end
    ).first()


def generate_payslip(db: Session, employee_id: int, period_start: date, period_end: date) -> Payroll:
    """
    Persist a draft payslip for the period, applying the first-month penalty.
    An existing payslip for the same period is returned unchanged.
    """
    existing = _find_payslip(db, employee_id, period_start, period_end)
    if existing is not None:
        return existing

    try:
        computation = compute_payslip(db, employee_id, period_start, period_end, apply_penalty=True)

        payroll = Payroll(
            employee_id=employee_id,
            period_start=period_start,
            period_end=period_end,
            base_salary=computation.base_salary,
            gross_salary=computation.gross_salary,
            total_allowances=computation.total_allowances,
            total_deductions=computation.total_deductions,
            net_salary=computation.net_salary,
            paid_leave_days=computation.leave_impact.paid_leave_days,
            unpaid_leave_days=computation.leave_impact.unpaid_leave_days,
            status=PayrollStatus.DRAFT.value,
        )
        payroll.components.append(SalaryComponent(
            component_type=ComponentType.BASE.value,
            name="Base Salary (pro-rated)",
            amount=computation.prorated_base_salary,
            description=f"{computation.present_days:g} of {computation.working_days} working days attended",
        ))
        for name, amount in computation.allowances.items():
            payroll.components.append(SalaryComponent(
                component_type=ComponentType.ALLOWANCE.value, name=name, amount=amount
            ))
        for name, amount in computation.deductions.items():
            payroll.components.append(SalaryComponent(
                component_type=ComponentType.DEDUCTION.value, name=name, amount=amount
            ))

        db.add(payroll)
        db.flush()
        AuditService.log(
            db,
            action="generate_payslip",
            entity_type="payroll",
            entity_id=payroll.id,
            actor_id=None,
            details={
                "employee_id": employee_id,
                "period_start": period_start,
                "period_end": period_end,
                "net_salary": computation.net_salary,
                "leave_deduction": computation.leave_impact.leave_deduction_amount,
                "performance_penalty": computation.leave_impact.performance_penalty_amount,
            },
        )
        db.commit()
    except IntegrityError:
        # Another request generated the same period first
        db.rollback()
        existing = _find_payslip(db, employee_id, period_start, period_end)
        if existing is None:
            raise
        return existing
    except Exception:
        db.rollback()
        raise

    db.refresh(payroll)
    logger.info(f"Generated payslip {payroll.id} for employee {employee_id}")
    return payroll


def get_payslip(db: Session, payroll_id: int) -> Payroll:
    payroll = db.get(Payroll, payroll_id)
    if payroll is None:
        raise NotFoundError("Payslip", payroll_id)
    return payroll


def list_payslips(db: Session, employee_id: int) -> List[Payroll]:
    """Payslip history for an employee, newest period first."""
    return db.query(Payroll).filter(
        Payroll.employee_id == employee_id
    ).order_by(Payroll.period_end.desc()).all()


def leave_impact_to_dict(impact: PayslipLeaveImpact) -> Dict[str, Any]:
    return {
        "employee_id": impact.employee_id,
        "period_start": impact.period_start,
        "period_end": impact.period_end,
        "paid_leave_days": impact.paid_leave_days,
        "unpaid_leave_days": impact.unpaid_leave_days,
        "leave_deduction_amount": impact.leave_deduction_amount,
        "performance_penalty_amount": impact.performance_penalty_amount,
        "total_leave_impact": impact.total_leave_impact,
        "breakdown": {
            name: {"days": line.days, "is_paid": line.is_paid, "deduction": line.deduction}
            for name, line in impact.breakdown.items()
        },
    }
