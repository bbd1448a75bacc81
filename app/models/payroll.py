from sqlalchemy import Column, Integer, String, Float, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class PayrollStatus(str, enum.Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"

class Payroll(Base):
    """Payslip for one employee and one pay period."""
    __tablename__ = "payrolls"
    __table_args__ = (
        UniqueConstraint("employee_id", "period_start", "period_end", name="uq_payroll_employee_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    base_salary = Column(Float, nullable=False)
    gross_salary = Column(Float, default=0.0)
    total_allowances = Column(Float, default=0.0)
    total_deductions = Column(Float, default=0.0)
    net_salary = Column(Float, default=0.0)
    paid_leave_days = Column(Float, default=0.0)
    unpaid_leave_days = Column(Float, default=0.0)
    status = Column(String, default=PayrollStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    components = relationship("SalaryComponent", back_populates="payroll", cascade="all, delete-orphan")
