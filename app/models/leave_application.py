from sqlalchemy import Column, Integer, String, Date, Float, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

class LeaveApplication(Base):
    __tablename__ = "leave_applications"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    leave_type = Column(String, index=True, nullable=False)  # LeaveTypeCode value
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Float, nullable=False)
    reason = Column(String, nullable=True)
    status = Column(String, default=LeaveStatus.PENDING.value, index=True, nullable=False)
    is_half_day = Column(Boolean, default=False, nullable=False)
    is_emergency = Column(Boolean, default=False, nullable=False)
    event_date = Column(Date, nullable=True)  # Triggering event (birth, wedding)
    applied_date = Column(Date, nullable=False)

    # Eligibility verdict captured at submission, in rule order
    restrictions = Column(JSON, default=list, nullable=False)

    decided_by = Column(Integer, nullable=True)
    decided_date = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String, nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancelled_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def can_approve(self) -> bool:
        return not self.restrictions

    @property
    def year(self) -> int:
        return self.start_date.year
