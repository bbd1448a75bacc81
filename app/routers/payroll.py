"""
Payroll Router

Handles HTTP endpoints for payroll operations.
All business logic is delegated to the payroll service layer.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.payroll import LeaveImpactResponse, PayslipRequest, PayslipResponse
from app.services import payroll_service

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.get("/leave-impact/{employee_id}", response_model=LeaveImpactResponse)
def get_leave_impact(
    employee_id: int,
    period_start: date = Query(...),
    period_end: date = Query(...),
    db: Session = Depends(get_db)
):
    """
    Preview the leave impact for a pay period.
    Read-only: the first-month penalty is shown but not recorded.
    """
    impact = payroll_service.compute_leave_impact(
        db, employee_id, period_start, period_end, apply_penalty=False
    )
    return payroll_service.leave_impact_to_dict(impact)


@router.post("/payslips", response_model=PayslipResponse, status_code=status.HTTP_201_CREATED)
def generate_payslip(payload: PayslipRequest, db: Session = Depends(get_db)):
    """Generate (or return the existing) draft payslip for the period."""
    return payroll_service.generate_payslip(
        db, payload.employee_id, payload.period_start, payload.period_end
    )


@router.get("/payslips", response_model=List[PayslipResponse])
def list_payslips(employee_id: int, db: Session = Depends(get_db)):
    return payroll_service.list_payslips(db, employee_id)


@router.get("/payslips/{payroll_id}", response_model=PayslipResponse)
def get_payslip(payroll_id: int, db: Session = Depends(get_db)):
    return payroll_service.get_payslip(db, payroll_id)
