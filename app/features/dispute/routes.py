from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import Actor, get_optional_actor, require_role
from app.models.enums import UserRole
from app.features.dispute.schema import DisputeSubmit, DisputeResolve
from app.features.dispute.service import DisputeService
from app.features.violation.schema import ViolationResponse
from app.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher

router = APIRouter()


@router.post("/violations/{violation_id}/dispute", response_model=ViolationResponse)
def submit_dispute(
    violation_id: int,
    dispute: DisputeSubmit,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_optional_actor),
):
    """Contest a pending violation"""
    violation = DisputeService.submit_dispute(
        db, violation_id, dispute.dispute_reason, filed_by=actor.id if actor else None
    )
    return ViolationResponse.from_violation(violation)


@router.post("/disputes/{violation_id}/resolve", response_model=ViolationResponse)
def resolve_dispute(
    violation_id: int,
    resolution: DisputeResolve,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    violation = DisputeService.resolve_dispute(
        db,
        violation_id,
        resolution.approved,
        resolved_by=actor.id,
        resolution_notes=resolution.resolution_notes,
        dispatcher=dispatcher,
    )
    return ViolationResponse.from_violation(violation)
