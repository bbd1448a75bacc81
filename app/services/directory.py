"""
Read-only accessors for collaborators owned outside the leave engine:
the employee directory and the attendance ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.attendance import AttendanceRecord, AttendanceStatus
from app.models.employee import Employee, EmploymentStatus, Gender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmployeeRecord:
    employee_id: int
    employment_status: EmploymentStatus
    gender: Gender
    date_of_joining: date
    base_salary: float


@dataclass(frozen=True)
class AttendanceTotals:
    working_days: int
    present_days: float
    late_days: int
    overtime_hours: float

    @property
    def absent_days(self) -> float:
        return max(self.working_days - self.present_days, 0)


class EmployeeDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get_model(self, employee_id: int) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if employee is None or not employee.is_active:
            raise NotFoundError("Employee", employee_id)
        return employee

    def get_employee(self, employee_id: int) -> EmployeeRecord:
        employee = self.get_model(employee_id)
        return EmployeeRecord(
            employee_id=employee.id,
            employment_status=EmploymentStatus(employee.employment_status),
            gender=Gender(employee.gender),
            date_of_joining=employee.date_of_joining,
            base_salary=float(employee.base_salary or 0.0),
        )


def _late_threshold() -> time:
    hours, minutes = settings.policy.late_after.split(":")
    return time(int(hours), int(minutes))


class AttendanceLedger:
    """
    Totals over raw attendance rows. Working days are the recorded days that
    are not holidays; late means check-in after the configured threshold;
    overtime is time beyond the standard day.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_attendance_totals(self, employee_id: int, period_start: date, period_end: date) -> AttendanceTotals:
        records = self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date >= period_start,
            AttendanceRecord.work_date <= period_end
        ).order_by(AttendanceRecord.work_date).all()

        threshold = _late_threshold()
        standard_hours = settings.policy.standard_work_hours

        working_days = 0
        present_days = 0.0
        late_days = 0
        overtime_hours = 0.0

        for record in records:
            if record.status == AttendanceStatus.HOLIDAY.value:
                continue
            working_days += 1

            if record.status in (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value):
                present_days += 1
            elif record.status == AttendanceStatus.HALF_DAY.value:
                present_days += 0.5

            if record.check_in is not None and record.check_in.time() > threshold:
                late_days += 1
            elif record.status == AttendanceStatus.LATE.value:
                late_days += 1

            if record.check_in is not None and record.check_out is not None:
                worked = (record.check_out - record.check_in).total_seconds() / 3600
                overtime_hours += max(0.0, worked - standard_hours)

        return AttendanceTotals(
            working_days=working_days,
            present_days=present_days,
            late_days=late_days,
            overtime_hours=round(overtime_hours, 2),
        )
