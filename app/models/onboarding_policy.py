from sqlalchemy import Column, Integer, Float, Date, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base


class OnboardingPolicyState(Base):
    """
    Per-employee training, first-month and probation timers.
    Frozen once probation completes.
    """
    __tablename__ = "onboarding_policy_states"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, unique=True, index=True, nullable=False)

    training_start_date = Column(Date, nullable=False)
    training_end_date = Column(Date, nullable=False)

    first_month_end_date = Column(Date, nullable=False)
    first_month_sales_target = Column(Float, default=0.0, nullable=False)
    first_month_sales_achieved = Column(Float, default=0.0, nullable=False)
    first_month_penalty_applied = Column(Boolean, default=False, nullable=False)
    first_month_penalty_amount = Column(Float, default=0.0, nullable=False)
    first_month_penalty_period_end = Column(Date, nullable=True)

    probation_end_date = Column(Date, nullable=False)
    is_probation_complete = Column(Boolean, default=False, nullable=False)
    probation_completed_on = Column(Date, nullable=True)

    bond_months = Column(Integer, default=6, nullable=False)
    bond_amount = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
