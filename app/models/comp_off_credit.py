from sqlalchemy import Column, Integer, Float, Date, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base

class CompOffCredit(Base):
    """A compensatory-off credit earned by working on a holiday."""
    __tablename__ = "comp_off_credits"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    worked_on = Column(Date, nullable=False)
    days = Column(Float, default=1.0, nullable=False)
    used_days = Column(Float, default=0.0, nullable=False)  # Drawn by approved comp-off leave
    expires_on = Column(Date, index=True, nullable=False)
    is_expired = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
