"""
Leave Router

HTTP endpoints for leave applications, eligibility checks and balances.
All business logic is delegated to the leave service layer and the ledger.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.limiter import limiter
from app.database import get_db
from app.models.leave_application import LeaveStatus
from app.schemas.leave import (
    BalanceRolloverRequest,
    BalanceSeedRequest,
    CompOffCreditRequest,
    CompOffCreditResponse,
    EligibilityVerdict,
    LeaveApplicationCreate,
    LeaveApplicationResponse,
    LeaveApproveRequest,
    LeaveBalanceResponse,
    LeaveCancelRequest,
    LeaveEligibilityRequest,
    LeaveRejectRequest,
    LeaveSubmissionResponse,
    LeaveTypeResponse,
)
from app.services import leave_service
from app.services.directory import EmployeeDirectory
from app.services.leave_catalog import LEAVE_CATALOG
from app.services.leave_ledger import LeaveLedger
from app.services.work_calendar import load_holidays

router = APIRouter(prefix="/leave", tags=["leave"])


@router.post("/applications", response_model=LeaveSubmissionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def submit_leave_application(
    request: Request,
    payload: LeaveApplicationCreate,
    db: Session = Depends(get_db)
):
    """
    Submit a leave application.
    Ineligible requests are still created as pending; the verdict lists why.
    """
    application, decision = leave_service.submit_leave_application(
        db,
        employee_id=payload.employee_id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        is_half_day=payload.is_half_day,
        is_emergency=payload.is_emergency,
        event_date=payload.event_date,
    )
    return LeaveSubmissionResponse(
        application=LeaveApplicationResponse.model_validate(application),
        verdict=EligibilityVerdict.model_validate(decision),
    )


@router.get("/applications", response_model=List[LeaveApplicationResponse])
def list_leave_applications(
    employee_id: Optional[int] = None,
    status: Optional[LeaveStatus] = None,
    db: Session = Depends(get_db)
):
    return leave_service.list_leave_applications(
        db, employee_id=employee_id, status=status.value if status else None
    )


@router.get("/applications/{application_id}", response_model=LeaveApplicationResponse)
def get_leave_application(application_id: int, db: Session = Depends(get_db)):
    return leave_service.get_leave_application(db, application_id)


@router.post("/applications/{application_id}/approve", response_model=LeaveApplicationResponse)
def approve_leave_application(
    application_id: int,
    payload: LeaveApproveRequest,
    db: Session = Depends(get_db)
):
    return leave_service.approve_leave_application(
        db, application_id, approver_id=payload.approver_id, override=payload.override
    )


@router.post("/applications/{application_id}/reject", response_model=LeaveApplicationResponse)
def reject_leave_application(
    application_id: int,
    payload: LeaveRejectRequest,
    db: Session = Depends(get_db)
):
    return leave_service.reject_leave_application(
        db, application_id, approver_id=payload.approver_id, reason=payload.reason
    )


@router.post("/applications/{application_id}/cancel", response_model=LeaveApplicationResponse)
def cancel_leave_application(
    application_id: int,
    payload: Optional[LeaveCancelRequest] = None,
    db: Session = Depends(get_db)
):
    cancelled_by = payload.cancelled_by if payload else None
    return leave_service.cancel_leave_application(db, application_id, cancelled_by=cancelled_by)


@router.post("/eligibility", response_model=EligibilityVerdict)
def check_leave_eligibility(payload: LeaveEligibilityRequest, db: Session = Depends(get_db)):
    """Evaluate a prospective request. Nothing is persisted."""
    decision = leave_service.check_eligibility(
        db,
        employee_id=payload.employee_id,
        leave_type=payload.leave_type,
        start=payload.start_date,
        end=payload.end_date,
        is_half_day=payload.is_half_day,
        is_emergency=payload.is_emergency,
        event_date=payload.event_date,
    )
    return EligibilityVerdict.model_validate(decision)


# --- Balances ---

@router.get("/types", response_model=List[LeaveTypeResponse])
def list_leave_types():
    """Leave policy catalog, with the approval chain each type goes through."""
    return list(LEAVE_CATALOG.values())


@router.get("/balances/{employee_id}", response_model=List[LeaveBalanceResponse])
def get_leave_balances(employee_id: int, year: Optional[int] = None, db: Session = Depends(get_db)):
    EmployeeDirectory(db).get_model(employee_id)
    return LeaveLedger(db).list_balances(employee_id, year=year)


@router.post("/balances/{employee_id}/seed", response_model=List[LeaveBalanceResponse])
def seed_leave_balances(employee_id: int, payload: BalanceSeedRequest, db: Session = Depends(get_db)):
    employee = EmployeeDirectory(db).get_employee(employee_id)
    try:
        LeaveLedger(db).seed_balances(employee, payload.year, reset=payload.reset)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return LeaveLedger(db).list_balances(employee_id, year=payload.year)


@router.post("/balances/{employee_id}/rollover", response_model=List[LeaveBalanceResponse])
def rollover_leave_balances(employee_id: int, payload: BalanceRolloverRequest, db: Session = Depends(get_db)):
    employee = EmployeeDirectory(db).get_employee(employee_id)
    try:
        LeaveLedger(db).rollover_year(employee, payload.from_year)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return LeaveLedger(db).list_balances(employee_id, year=payload.from_year + 1)


@router.post("/comp-off", response_model=CompOffCreditResponse, status_code=status.HTTP_201_CREATED)
def credit_comp_off(payload: CompOffCreditRequest, db: Session = Depends(get_db)):
    """Credit compensatory off for work on a weekend or company holiday."""
    employee = EmployeeDirectory(db).get_employee(payload.employee_id)
    holidays = load_holidays(db, payload.worked_on, payload.worked_on)
    try:
        credit = LeaveLedger(db).credit_comp_off(employee, payload.worked_on, payload.days, holidays=holidays)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(credit)
    return credit


@router.post("/comp-off/{employee_id}/expire")
def expire_comp_off(employee_id: int, as_of: Optional[date] = None, db: Session = Depends(get_db)):
    EmployeeDirectory(db).get_model(employee_id)
    try:
        removed = LeaveLedger(db).expire_comp_off(employee_id, as_of or date.today())
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"employee_id": employee_id, "expired_days": removed}
