from sqlalchemy import Column, Integer, String, DateTime, Date, Time, Boolean, Numeric, Text, JSON
from sqlalchemy.sql import func
from datetime import datetime, time as time_of_day
from decimal import Decimal
from typing import Optional
import math

from app.core.database import Base, value_enum
from app.core.exceptions import InvalidStateError, ValidationError
from app.models.enums import ViolationStatus, DisputeStatus, VehicleType, ViolationType, PaymentMethod
from app.utils import fines, reference_numbers
from app.utils.clock import utcnow

# Only these edges exist; every other status change is rejected.
VIOLATION_TRANSITIONS = {
    ViolationStatus.PENDING: frozenset({
        ViolationStatus.PAID,
        ViolationStatus.DISMISSED,
        ViolationStatus.CANCELLED,
    }),
    ViolationStatus.PAID: frozenset(),
    ViolationStatus.DISMISSED: frozenset(),
    ViolationStatus.CANCELLED: frozenset(),
}

# Descriptive fields an enforcer may correct after issuance
EDITABLE_FIELDS = (
    "plate_number",
    "vehicle_type",
    "vehicle_make",
    "vehicle_model",
    "vehicle_color",
    "vehicle_year",
    "driver_name",
    "driver_license_number",
    "driver_address",
    "driver_phone",
    "violation_description",
    "violation_location",
    "evidence_photos",
    "witness_statements",
    "notes",
)

# Edits may change these but never clear them
REQUIRED_EDIT_FIELDS = (
    "plate_number",
    "vehicle_type",
    "driver_name",
    "violation_description",
    "violation_location",
)


class Violation(Base):
    __tablename__ = "violations"

    id = Column(Integer, primary_key=True, index=True)

    # Reference numbers
    ovr_number = Column(String(20), unique=True, index=True, nullable=False)
    citation_number = Column(String(20), unique=True, index=True, nullable=False)

    # Vehicle
    plate_number = Column(String(15), index=True, nullable=False)
    vehicle_type = Column(value_enum(VehicleType), nullable=False)
    vehicle_make = Column(String(50), nullable=True)
    vehicle_model = Column(String(50), nullable=True)
    vehicle_color = Column(String(30), nullable=True)
    vehicle_year = Column(Integer, nullable=True)

    # Driver
    driver_name = Column(String(100), nullable=False)
    driver_license_number = Column(String(20), index=True, nullable=True)
    driver_address = Column(Text, nullable=True)
    driver_phone = Column(String(20), nullable=True)
    driver_user_id = Column(String(64), index=True, nullable=True)

    # Violation details
    violation_type = Column(value_enum(ViolationType), nullable=False)
    violation_description = Column(Text, nullable=False)
    violation_location = Column(String(200), nullable=False)
    violation_date = Column(DateTime, index=True, nullable=False)
    violation_time = Column(Time, nullable=False)

    # Fines
    base_fine = Column(Numeric(10, 2), nullable=False)
    additional_penalties = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total_fine = Column(Numeric(10, 2), nullable=False)
    late_penalty_applied = Column(Boolean, default=False, nullable=False)
    demerit_points = Column(Integer, default=0, nullable=False)

    status = Column(value_enum(ViolationStatus), default=ViolationStatus.PENDING, index=True, nullable=False)
    due_date = Column(Date, nullable=False)
    payment_deadline = Column(DateTime, index=True, nullable=False)

    # Issuing enforcer
    enforcer_id = Column(String(64), index=True, nullable=False)
    enforcer_name = Column(String(100), nullable=False)
    enforcer_badge_number = Column(String(20), nullable=False)

    # Evidence
    evidence_photos = Column(JSON, nullable=True)
    witness_statements = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    # Dispute sub-state
    is_disputed = Column(Boolean, default=False, nullable=False)
    dispute_reason = Column(Text, nullable=True)
    dispute_date = Column(DateTime, nullable=True)
    dispute_status = Column(value_enum(DisputeStatus), nullable=True)
    dispute_filed_by = Column(String(64), nullable=True)
    dispute_resolved_by = Column(String(64), nullable=True)
    dispute_resolved_at = Column(DateTime, nullable=True)
    dispute_resolution_notes = Column(Text, nullable=True)

    # Settlement
    payment_method = Column(value_enum(PaymentMethod), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Edits
    modified_at = Column(DateTime, nullable=True)
    modified_by = Column(String(64), nullable=True)

    reminder_sent = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @classmethod
    def create(cls, data, enforcer, now: Optional[datetime] = None) -> "Violation":
        """
        Build a fully-formed pending violation from validated input.

        Identifiers, total fine, payment deadline and due date are all computed
        here; nothing is deferred to the persistence layer.

        Args:
            data: ViolationCreate input
            enforcer: Actor issuing the citation (id, name, badge_number)
            now: Issuance time (defaults to the current UTC time)
        """
        now = now or utcnow()
        violation_date = datetime.combine(data.violation_date, time_of_day.min)
        fines.validate_violation_date(violation_date, now)
        payment_deadline, due_date = fines.compute_payment_deadline(violation_date)
        additional = fines.to_money(data.additional_penalties)

        return cls(
            ovr_number=reference_numbers.generate_ovr_number(now),
            citation_number=reference_numbers.generate_citation_number(now),
            plate_number=data.plate_number.strip().upper(),
            vehicle_type=data.vehicle_type,
            vehicle_make=data.vehicle_make,
            vehicle_model=data.vehicle_model,
            vehicle_color=data.vehicle_color,
            vehicle_year=data.vehicle_year,
            driver_name=data.driver_name.strip(),
            driver_license_number=data.driver_license_number,
            driver_address=data.driver_address,
            driver_phone=data.driver_phone,
            driver_user_id=data.driver_user_id,
            violation_type=data.violation_type,
            violation_description=data.violation_description,
            violation_location=data.violation_location,
            violation_date=violation_date,
            violation_time=datetime.strptime(data.violation_time, "%H:%M").time(),
            base_fine=fines.to_money(data.base_fine),
            additional_penalties=additional,
            total_fine=fines.compute_total_fine(data.base_fine, additional),
            late_penalty_applied=False,
            demerit_points=data.demerit_points or 0,
            status=ViolationStatus.PENDING,
            due_date=due_date,
            payment_deadline=payment_deadline,
            enforcer_id=str(enforcer.id),
            enforcer_name=enforcer.name,
            enforcer_badge_number=enforcer.badge_number,
            evidence_photos=data.evidence_photos,
            witness_statements=data.witness_statements,
            notes=data.notes,
            is_disputed=False,
            reminder_sent=False,
        )

    def reassign_references(self, now: Optional[datetime] = None) -> None:
        """Draw new OVR and citation numbers after a unique-constraint collision."""
        self.ovr_number = reference_numbers.generate_ovr_number(now)
        self.citation_number = reference_numbers.generate_citation_number(now)

    def _transition(self, target: ViolationStatus) -> None:
        current = ViolationStatus(self.status)
        if target not in VIOLATION_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Violation {self.ovr_number} cannot move from {current.value} to {target.value}"
            )
        self.status = target

    # Dispute

    def can_be_disputed(self) -> bool:
        return self.status == ViolationStatus.PENDING and not self.is_disputed

    def has_open_dispute(self) -> bool:
        return bool(self.is_disputed) and self.dispute_status == DisputeStatus.PENDING

    def submit_dispute(self, reason: str, filed_by: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if not self.can_be_disputed():
            raise InvalidStateError("This violation cannot be disputed")
        self.is_disputed = True
        self.dispute_reason = reason
        self.dispute_date = now or utcnow()
        self.dispute_status = DisputeStatus.PENDING
        self.dispute_filed_by = filed_by

    def process_dispute(
        self,
        approved: bool,
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Resolve the open dispute; approval dismisses the violation, rejection leaves it payable."""
        if not self.has_open_dispute():
            raise InvalidStateError("This violation has no open dispute")
        if approved:
            self._transition(ViolationStatus.DISMISSED)
            self.dispute_status = DisputeStatus.APPROVED
        else:
            self.dispute_status = DisputeStatus.REJECTED
        self.dispute_resolved_by = resolved_by
        self.dispute_resolved_at = now or utcnow()
        self.dispute_resolution_notes = notes

    # Settlement

    def mark_as_paid(self, payment_method, payment_reference: str, now: Optional[datetime] = None) -> None:
        self._transition(ViolationStatus.PAID)
        self.payment_method = payment_method
        self.payment_reference = payment_reference
        self.payment_date = now or utcnow()

    def cancel(self, reason: str, cancelled_by: Optional[str] = None, now: Optional[datetime] = None) -> None:
        self._transition(ViolationStatus.CANCELLED)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = now or utcnow()

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.status == ViolationStatus.PENDING and now > self.payment_deadline

    def effective_status(self, now: Optional[datetime] = None) -> ViolationStatus:
        if self.is_overdue(now):
            return ViolationStatus.OVERDUE
        return ViolationStatus(self.status)

    def days_until_due(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        return math.ceil((self.payment_deadline - now).total_seconds() / 86400)

    def apply_late_penalty(self, now: Optional[datetime] = None, rate: Optional[Decimal] = None) -> Decimal:
        """Add the one-time late surcharge if overdue; returns the amount added."""
        if self.late_penalty_applied or not self.is_overdue(now):
            return Decimal("0.00")
        penalty = fines.compute_late_penalty(self.base_fine, rate)
        self.additional_penalties = fines.to_money(self.additional_penalties) + penalty
        self.total_fine = fines.compute_total_fine(self.base_fine, self.additional_penalties)
        self.late_penalty_applied = True
        return penalty

    def apply_edits(self, changes: dict, modified_by: Optional[str] = None, now: Optional[datetime] = None) -> None:
        for field in REQUIRED_EDIT_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be empty")
        for field, value in changes.items():
            if field not in EDITABLE_FIELDS:
                continue
            if field == "plate_number" and value:
                value = value.strip().upper()
            setattr(self, field, value)
        self.modified_by = modified_by
        self.modified_at = now or utcnow()

    def qr_payload(self) -> dict:
        return {
            "ovrNumber": self.ovr_number,
            "citationNumber": self.citation_number,
            "totalFine": str(fines.to_money(self.total_fine)),
            "dueDate": self.due_date.isoformat() if self.due_date else None,
        }
