from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base

class LeaveBalance(Base):
    """
    One row per (employee, leave type, year).
    Mutated only through app.services.leave_ledger; `version` is the
    compare-and-swap token for concurrent deductions.
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "year", name="uq_leave_balance_employee_type_year"),
        CheckConstraint("remaining_days >= 0", name="ck_leave_balance_remaining_non_negative"),
        CheckConstraint("used_days >= 0", name="ck_leave_balance_used_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    leave_type = Column(String, index=True, nullable=False)  # LeaveTypeCode value
    year = Column(Integer, index=True, nullable=False)
    allocated_days = Column(Float, default=0.0, nullable=False)
    used_days = Column(Float, default=0.0, nullable=False)
    carried_forward_days = Column(Float, default=0.0, nullable=False)
    remaining_days = Column(Float, default=0.0, nullable=False)
    version = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def entitlement(self) -> float:
        return self.allocated_days + self.carried_forward_days

    def __repr__(self):
        return (
            f"<LeaveBalance emp={self.employee_id} {self.leave_type}/{self.year} "
            f"remaining={self.remaining_days}>"
        )
