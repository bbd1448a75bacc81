"""
Employee directory snapshot.
Owned by the employee CRUD layer; the leave engine only reads it.
"""
from sqlalchemy import Column, Integer, String, Date, Float, Boolean, DateTime
from sqlalchemy.sql import func
import enum
from app.database import Base


class EmploymentStatus(str, enum.Enum):
    PROBATION = "probation"
    PERMANENT = "permanent"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    gender = Column(String, nullable=False)  # Gender value
    employment_status = Column(String, default=EmploymentStatus.PROBATION.value, nullable=False)
    date_of_joining = Column(Date, nullable=False)
    base_salary = Column(Float, default=0.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Employee {self.id}: {self.full_name} ({self.employment_status})>"
