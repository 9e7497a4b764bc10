from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import Optional, List, Dict
from datetime import datetime, date, time as time_of_day
from decimal import Decimal

from app.core.config import settings
from app.core.database import commit_with_fresh_references
from app.core.exceptions import NotFoundError, AuthorizationError
from app.core.logging import get_logger
from app.features.violation.model import Violation
from app.features.violation.schema import ViolationCreate, ViolationUpdate
from app.models.enums import ViolationStatus, DisputeStatus, NotificationType, UserRole
from app.services.notification_dispatcher import NotificationDispatcher, NotificationMessage, dispatch
from app.utils import fines
from app.utils.clock import utcnow

logger = get_logger(__name__)


class ViolationService:
    @staticmethod
    def create_violation(
        db: Session,
        violation_data: ViolationCreate,
        enforcer,
        dispatcher: Optional[NotificationDispatcher] = None,
        now: Optional[datetime] = None,
    ) -> Violation:
        """Issue a new violation and notify the driver's linked account, if any."""
        now = now or utcnow()
        violation = Violation.create(violation_data, enforcer, now)
        commit_with_fresh_references(db, violation, lambda: violation.reassign_references(now))

        logger.info(
            "Violation issued",
            extra={
                "violation_id": violation.id,
                "ovr_number": violation.ovr_number,
                "enforcer_id": violation.enforcer_id,
                "total_fine": str(violation.total_fine),
            },
        )

        if violation.driver_user_id:
            dispatch(dispatcher, NotificationMessage(
                user_id=violation.driver_user_id,
                type=NotificationType.WARNING,
                title="New traffic violation issued",
                message=(
                    f"Violation {violation.ovr_number} was issued for plate {violation.plate_number}. "
                    f"Amount due: {settings.CURRENCY} {violation.total_fine}, due {violation.due_date.isoformat()}."
                ),
                link_url=f"{settings.FRONTEND_URL}/violations/{violation.id}",
                link_text="View violation",
            ))
        return violation

    @staticmethod
    def get_violation(db: Session, violation_id: int) -> Violation:
        violation = db.query(Violation).filter(Violation.id == violation_id).first()
        if not violation:
            raise NotFoundError("Violation not found")
        return violation

    @staticmethod
    def get_by_ovr_number(db: Session, ovr_number: str) -> Optional[Violation]:
        return db.query(Violation).filter(Violation.ovr_number == ovr_number.strip().upper()).first()

    @staticmethod
    def get_by_citation_number(db: Session, citation_number: str) -> Optional[Violation]:
        return db.query(Violation).filter(Violation.citation_number == citation_number.strip().upper()).first()

    @staticmethod
    def get_by_plate_number(db: Session, plate_number: str) -> List[Violation]:
        return (
            db.query(Violation)
            .filter(Violation.plate_number == plate_number.strip().upper())
            .order_by(Violation.violation_date.desc(), Violation.id.desc())
            .all()
        )

    @staticmethod
    def get_by_driver_license(db: Session, license_number: str) -> List[Violation]:
        return (
            db.query(Violation)
            .filter(Violation.driver_license_number == license_number.strip())
            .order_by(Violation.violation_date.desc(), Violation.id.desc())
            .all()
        )

    @staticmethod
    def search_violations(
        db: Session,
        ovr_number: Optional[str] = None,
        plate_number: Optional[str] = None,
        driver_license_number: Optional[str] = None,
    ) -> List[Violation]:
        """Search by OVR number first, then plate, then driver license."""
        if ovr_number:
            violation = ViolationService.get_by_ovr_number(db, ovr_number)
            return [violation] if violation else []
        if plate_number:
            return ViolationService.get_by_plate_number(db, plate_number)
        if driver_license_number:
            return ViolationService.get_by_driver_license(db, driver_license_number)
        return []

    @staticmethod
    def get_enforcer_violations(db: Session, enforcer_id: str, skip: int = 0, limit: int = 50) -> List[Violation]:
        return (
            db.query(Violation)
            .filter(Violation.enforcer_id == str(enforcer_id))
            .order_by(Violation.created_at.desc(), Violation.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_violations_by_status(
        db: Session,
        status: ViolationStatus,
        now: Optional[datetime] = None,
    ) -> List[Violation]:
        """
        Violations in ``status``.

        ``overdue`` and ``disputed`` are never stored: overdue means pending past
        the payment deadline, disputed means a dispute awaiting resolution.
        """
        now = now or utcnow()
        query = db.query(Violation)
        if status == ViolationStatus.OVERDUE:
            query = query.filter(
                Violation.status == ViolationStatus.PENDING,
                Violation.payment_deadline < now,
            )
        elif status == ViolationStatus.DISPUTED:
            query = query.filter(
                Violation.is_disputed.is_(True),
                Violation.dispute_status == DisputeStatus.PENDING,
            )
        else:
            query = query.filter(Violation.status == status)
        return query.order_by(Violation.violation_date.desc(), Violation.id.desc()).all()

    @staticmethod
    def get_overdue_violations(db: Session, now: Optional[datetime] = None) -> List[Violation]:
        return ViolationService.get_violations_by_status(db, ViolationStatus.OVERDUE, now)

    @staticmethod
    def update_violation(
        db: Session,
        violation_id: int,
        violation_data: ViolationUpdate,
        actor,
        now: Optional[datetime] = None,
    ) -> Violation:
        """Correct descriptive fields; only the issuing enforcer or an admin may edit."""
        violation = ViolationService.get_violation(db, violation_id)
        if actor.role != UserRole.ADMIN and str(actor.id) != violation.enforcer_id:
            raise AuthorizationError("Only the issuing enforcer can edit this violation")

        changes = violation_data.model_dump(exclude_unset=True)
        violation.apply_edits(changes, str(actor.id), now)
        db.commit()
        db.refresh(violation)
        logger.info(
            "Violation edited",
            extra={"violation_id": violation.id, "fields": sorted(changes), "modified_by": violation.modified_by},
        )
        return violation

    @staticmethod
    def cancel_violation(
        db: Session,
        violation_id: int,
        cancellation_reason: str,
        actor,
        now: Optional[datetime] = None,
    ) -> Violation:
        violation = ViolationService.get_violation(db, violation_id)
        violation.cancel(cancellation_reason, str(actor.id), now)
        db.commit()
        db.refresh(violation)
        logger.info(
            "Violation cancelled",
            extra={"violation_id": violation.id, "ovr_number": violation.ovr_number, "cancelled_by": violation.cancelled_by},
        )
        return violation

    @staticmethod
    def get_violation_statistics(
        db: Session,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Dict:
        """Counts per status and type plus amounts collected, optionally by violation date."""
        now = now or utcnow()
        filters = []
        if start_date:
            filters.append(Violation.violation_date >= datetime.combine(start_date, time_of_day.min))
        if end_date:
            filters.append(Violation.violation_date <= datetime.combine(end_date, time_of_day.max))

        by_status = {status.value: 0 for status in ViolationStatus if status not in (
            ViolationStatus.OVERDUE, ViolationStatus.DISPUTED)}
        for status, count in db.query(Violation.status, func.count(Violation.id)).filter(*filters).group_by(Violation.status):
            by_status[ViolationStatus(status).value] = count

        by_type = {}
        for violation_type, count in (
            db.query(Violation.violation_type, func.count(Violation.id)).filter(*filters).group_by(Violation.violation_type)
        ):
            by_type[violation_type.value if hasattr(violation_type, "value") else violation_type] = count

        overdue = db.query(Violation).filter(
            *filters,
            Violation.status == ViolationStatus.PENDING,
            Violation.payment_deadline < now,
        ).count()
        open_disputes = db.query(Violation).filter(
            *filters,
            Violation.is_disputed.is_(True),
            Violation.dispute_status == DisputeStatus.PENDING,
        ).count()
        collected = db.query(func.sum(Violation.total_fine)).filter(
            *filters, Violation.status == ViolationStatus.PAID
        ).scalar()

        return {
            "total_violations": sum(by_status.values()),
            "by_status": by_status,
            "overdue_violations": overdue,
            "open_disputes": open_disputes,
            "total_collected": fines.to_money(collected or Decimal("0")),
            "by_type": by_type,
            "period_start": start_date,
            "period_end": end_date,
        }

    @staticmethod
    def send_overdue_reminders(
        db: Session,
        dispatcher: Optional[NotificationDispatcher],
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Send one reminder per overdue violation that has not been reminded yet.

        Violations without a linked driver account are skipped. Delivery
        failures are counted and leave the violation eligible for the next run.
        """
        now = now or utcnow()
        sent = failed = skipped = 0
        overdue = ViolationService.get_overdue_violations(db, now)

        for violation in overdue:
            if violation.reminder_sent:
                continue
            if not violation.driver_user_id:
                skipped += 1
                continue
            delivered = dispatch(dispatcher, NotificationMessage(
                user_id=violation.driver_user_id,
                type=NotificationType.WARNING,
                title="Payment overdue",
                message=(
                    f"Violation {violation.ovr_number} is overdue. "
                    f"Amount due: {settings.CURRENCY} {violation.total_fine}. "
                    "A late penalty applies when you pay."
                ),
                link_url=f"{settings.FRONTEND_URL}/pay-violation?ovr={violation.ovr_number}",
                link_text="Pay now",
            ))
            if delivered:
                violation.reminder_sent = True
                sent += 1
            else:
                failed += 1

        db.commit()
        logger.info("Overdue reminders processed", extra={"sent": sent, "failed": failed, "skipped": skipped})
        return {"sent": sent, "failed": failed, "skipped": skipped, "total": sent + failed + skipped}
