from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint
from app.database import Base
import enum

class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    HALF_DAY = "half_day"
    HOLIDAY = "holiday"

class AttendanceRecord(Base):
    """Daily attendance row produced by biometric ingestion."""
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    work_date = Column(Date, index=True, nullable=False)
    status = Column(String, default=AttendanceStatus.PRESENT.value, nullable=False)
    check_in = Column(DateTime, nullable=True)
    check_out = Column(DateTime, nullable=True)
