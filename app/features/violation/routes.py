from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from app.core.database import get_db
from app.core.dependencies import Actor, require_role
from app.core.exceptions import ValidationError
from app.models.enums import UserRole, ViolationStatus
from app.features.violation.schema import (
    ViolationCreate,
    ViolationUpdate,
    ViolationCancelRequest,
    ViolationResponse,
    ViolationSearch,
    ViolationQRResponse,
    ViolationStatisticsResponse,
    ReminderResult,
)
from app.features.violation.service import ViolationService
from app.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from app.services.receipt_encoder import ReceiptEncoder, get_receipt_encoder, encode_safely

router = APIRouter()

STAFF = [UserRole.ENFORCER, UserRole.ADMIN]


def _respond(violations) -> List[ViolationResponse]:
    return [ViolationResponse.from_violation(v) for v in violations]


@router.post("", response_model=ViolationResponse, status_code=status.HTTP_201_CREATED)
def create_violation(
    violation_data: ViolationCreate,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    actor: Actor = Depends(require_role(STAFF)),
):
    """Issue a new violation"""
    violation = ViolationService.create_violation(db, violation_data, actor, dispatcher)
    return ViolationResponse.from_violation(violation)


@router.get("/search", response_model=List[ViolationResponse])
def search_violations(
    ovr_number: Optional[str] = None,
    plate_number: Optional[str] = None,
    driver_license_number: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Public lookup by OVR number, plate number or driver license"""
    try:
        criteria = ViolationSearch(
            ovr_number=ovr_number,
            plate_number=plate_number,
            driver_license_number=driver_license_number,
        )
    except ValueError:
        raise ValidationError("Provide an OVR number, plate number or driver license number")
    return _respond(ViolationService.search_violations(
        db, criteria.ovr_number, criteria.plate_number, criteria.driver_license_number
    ))


@router.get("/enforcer", response_model=List[ViolationResponse])
def get_my_issued_violations(
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF)),
):
    return _respond(ViolationService.get_enforcer_violations(db, actor.id, skip, limit))


@router.get("/overdue", response_model=List[ViolationResponse])
def get_overdue_violations(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    return _respond(ViolationService.get_overdue_violations(db))


@router.get("/status/{violation_status}", response_model=List[ViolationResponse])
def get_violations_by_status(
    violation_status: ViolationStatus,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF)),
):
    return _respond(ViolationService.get_violations_by_status(db, violation_status))


@router.get("/statistics", response_model=ViolationStatisticsResponse)
def get_violation_statistics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    return ViolationService.get_violation_statistics(db, start_date, end_date)


@router.post("/reminders", response_model=ReminderResult)
def send_overdue_reminders(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    """Notify drivers of overdue violations that have not been reminded yet"""
    return ViolationService.send_overdue_reminders(db, dispatcher)


@router.get("/{violation_id}", response_model=ViolationResponse)
def get_violation(violation_id: int, db: Session = Depends(get_db)):
    return ViolationResponse.from_violation(ViolationService.get_violation(db, violation_id))


@router.put("/{violation_id}", response_model=ViolationResponse)
def update_violation(
    violation_id: int,
    violation_data: ViolationUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF)),
):
    """Correct descriptive fields of a violation"""
    violation = ViolationService.update_violation(db, violation_id, violation_data, actor)
    return ViolationResponse.from_violation(violation)


@router.post("/{violation_id}/cancel", response_model=ViolationResponse)
def cancel_violation(
    violation_id: int,
    request: ViolationCancelRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    violation = ViolationService.cancel_violation(db, violation_id, request.cancellation_reason, actor)
    return ViolationResponse.from_violation(violation)


@router.get("/{violation_id}/qr", response_model=ViolationQRResponse)
def get_violation_qr(
    violation_id: int,
    db: Session = Depends(get_db),
    encoder: ReceiptEncoder = Depends(get_receipt_encoder),
):
    violation = ViolationService.get_violation(db, violation_id)
    payload = violation.qr_payload()
    return {"ovr_number": violation.ovr_number, "payload": payload, "qr_data": encode_safely(encoder, payload)}
