from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.logging import get_logger
from app.features.violation.model import Violation
from app.features.violation.service import ViolationService
from app.models.enums import NotificationType
from app.services.notification_dispatcher import NotificationDispatcher, NotificationMessage, dispatch

logger = get_logger(__name__)

MIN_REASON_LENGTH = 10
MAX_REASON_LENGTH = 1000


class DisputeService:
    @staticmethod
    def validate_reason(reason: Optional[str]) -> str:
        reason = (reason or "").strip()
        if not MIN_REASON_LENGTH <= len(reason) <= MAX_REASON_LENGTH:
            raise ValidationError(
                f"Dispute reason must be between {MIN_REASON_LENGTH} and {MAX_REASON_LENGTH} characters"
            )
        return reason

    @staticmethod
    def submit_dispute(
        db: Session,
        violation_id: int,
        reason: str,
        filed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Violation:
        """File a dispute on a pending violation. The violation stays pending."""
        reason = DisputeService.validate_reason(reason)
        violation = ViolationService.get_violation(db, violation_id)
        violation.submit_dispute(reason, filed_by, now)
        db.commit()
        db.refresh(violation)
        logger.info(
            "Dispute submitted",
            extra={"violation_id": violation.id, "ovr_number": violation.ovr_number, "filed_by": filed_by},
        )
        return violation

    @staticmethod
    def resolve_dispute(
        db: Session,
        violation_id: int,
        approved: bool,
        resolved_by: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        now: Optional[datetime] = None,
    ) -> Violation:
        """
        Approve (dismiss the violation) or reject (leave it payable) an open dispute.

        The dispute filer is notified of either outcome; when the filer is
        unknown the issuing enforcer is told instead.
        """
        violation = ViolationService.get_violation(db, violation_id)
        violation.process_dispute(approved, resolved_by, resolution_notes, now)
        db.commit()
        db.refresh(violation)
        logger.info(
            "Dispute resolved",
            extra={
                "violation_id": violation.id,
                "dispute_status": violation.dispute_status.value,
                "resolved_by": resolved_by,
            },
        )

        outcome = "approved and the violation was dismissed" if approved else "rejected; the fine remains payable"
        dispatch(dispatcher, NotificationMessage(
            user_id=violation.dispute_filed_by or violation.enforcer_id,
            type=NotificationType.SUCCESS if approved else NotificationType.INFO,
            title="Dispute resolved",
            message=f"The dispute on violation {violation.ovr_number} was {outcome}.",
            link_url=f"{settings.FRONTEND_URL}/violations/{violation.id}",
            link_text="View violation",
        ))
        return violation
