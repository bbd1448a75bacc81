from sqlalchemy import Column, Integer, String, Float, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base
import enum

class ComponentType(str, enum.Enum):
    BASE = "base"
    ALLOWANCE = "allowance"
    DEDUCTION = "deduction"

class SalaryComponent(Base):
    __tablename__ = "salary_components"

    id = Column(Integer, primary_key=True, index=True)
    payroll_id = Column(Integer, ForeignKey("payrolls.id"), index=True)
    component_type = Column(String)  # Store enum value as string
    name = Column(String)
    amount = Column(Float)
    description = Column(String, nullable=True)

    payroll = relationship("Payroll", back_populates="components")
