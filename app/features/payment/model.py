from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, JSON, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from app.core.database import Base, value_enum
from app.core.exceptions import InvalidStateError, CannotRefundError, ValidationError
from app.models.enums import PaymentStatus, PaymentMethod
from app.utils import fines, reference_numbers
from app.utils.clock import utcnow

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.DISPUTED: frozenset(),
}

COMPLETED_WHERE = text("status = 'completed'")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        # At most one completed payment per violation
        Index(
            "uq_payments_completed_violation",
            "violation_id",
            unique=True,
            sqlite_where=COMPLETED_WHERE,
            postgresql_where=COMPLETED_WHERE,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(String(20), unique=True, index=True, nullable=False)
    receipt_number = Column(String(20), unique=True, index=True, nullable=False)

    violation_id = Column(Integer, ForeignKey("violations.id"), index=True, nullable=False)
    ovr_number = Column(String(20), index=True, nullable=False)
    citation_number = Column(String(20), nullable=False)

    # Payer
    payer_name = Column(String(100), nullable=False)
    payer_email = Column(String(255), nullable=False)
    payer_phone = Column(String(20), nullable=True)
    payer_id = Column(String(64), index=True, nullable=True)

    # Amounts
    amount = Column(Numeric(10, 2), nullable=False)
    processing_fee = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    refund_amount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    currency = Column(String(3), default="PHP", nullable=False)

    payment_method = Column(value_enum(PaymentMethod), nullable=False)
    payment_provider = Column(String(50), nullable=True)
    status = Column(value_enum(PaymentStatus), default=PaymentStatus.PENDING, index=True, nullable=False)

    # Gateway metadata (internal only)
    gateway_transaction_id = Column(String(255), index=True, nullable=True)
    gateway_reference = Column(String(255), nullable=True)
    gateway_response = Column(JSON, nullable=True)
    redirect_url = Column(String(500), nullable=True)

    initiated_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    refund_reason = Column(Text, nullable=True)
    refunded_by = Column(String(64), nullable=True)

    # Receipt
    qr_code_data = Column(JSON, nullable=True)
    qr_code_url = Column(Text, nullable=True)

    # Request audit
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    violation = relationship("Violation", foreign_keys=[violation_id])

    @classmethod
    def create(
        cls,
        violation,
        payer,
        payment_method: PaymentMethod,
        amount,
        processing_fee=None,
        payer_id: Optional[str] = None,
        currency: str = "PHP",
        payment_provider: Optional[str] = None,
        payment_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Payment":
        """
        Build a pending payment for ``violation``.

        Assigns the payment id (unless given), total amount and receipt number,
        then derives the QR payload from them, all before returning.
        """
        now = now or utcnow()
        amount = fines.to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        processing_fee = fines.to_money(processing_fee)
        if processing_fee < 0:
            raise ValidationError("Processing fee cannot be negative")

        payment = cls(
            payment_id=payment_id or reference_numbers.generate_payment_id(now),
            receipt_number=reference_numbers.generate_receipt_number(now),
            violation_id=violation.id,
            ovr_number=violation.ovr_number,
            citation_number=violation.citation_number,
            payer_name=payer.name,
            payer_email=payer.email,
            payer_phone=payer.phone,
            payer_id=payer_id,
            amount=amount,
            processing_fee=processing_fee,
            total_amount=fines.compute_total_amount(amount, processing_fee),
            refund_amount=Decimal("0.00"),
            currency=currency,
            payment_method=payment_method,
            payment_provider=payment_provider,
            status=PaymentStatus.PENDING,
            initiated_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        payment.refresh_qr_payload()
        return payment

    def reassign_references(self, now: Optional[datetime] = None) -> None:
        self.payment_id = reference_numbers.generate_payment_id(now)
        self.receipt_number = reference_numbers.generate_receipt_number(now)
        self.refresh_qr_payload()

    def _transition(self, target: PaymentStatus) -> None:
        current = PaymentStatus(self.status)
        if target not in PAYMENT_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Payment {self.payment_id} cannot move from {current.value} to {target.value}"
            )
        self.status = target

    def mark_as_processing(self, now: Optional[datetime] = None) -> None:
        self._transition(PaymentStatus.PROCESSING)
        self.processed_at = now or utcnow()

    def mark_as_completed(
        self,
        gateway_transaction_id: Optional[str] = None,
        gateway_reference: Optional[str] = None,
        gateway_response: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._transition(PaymentStatus.COMPLETED)
        self.completed_at = now or utcnow()
        if gateway_transaction_id:
            self.gateway_transaction_id = gateway_transaction_id
        if gateway_reference:
            self.gateway_reference = gateway_reference
        if gateway_response is not None:
            self.gateway_response = gateway_response
        self.refresh_qr_payload()

    def mark_as_failed(self, error_code: str, error_message: str, now: Optional[datetime] = None) -> None:
        self._transition(PaymentStatus.FAILED)
        self.failed_at = now or utcnow()
        self.error_code = error_code
        self.error_message = error_message

    def mark_as_cancelled(self) -> None:
        self._transition(PaymentStatus.CANCELLED)

    def can_be_refunded(self) -> bool:
        return self.status == PaymentStatus.COMPLETED and fines.to_money(self.refund_amount) == 0

    def process_refund(
        self,
        amount,
        reason: str,
        refunded_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        if not self.can_be_refunded():
            raise CannotRefundError(f"Payment {self.payment_id} cannot be refunded")
        amount = fines.to_money(amount)
        if amount <= 0 or amount > fines.to_money(self.total_amount):
            raise ValidationError("Refund amount must be greater than zero and at most the amount paid")
        self._transition(PaymentStatus.REFUNDED)
        self.refund_amount = amount
        self.refund_reason = reason
        self.refunded_by = refunded_by
        self.refunded_at = now or utcnow()

    def payment_duration(self) -> Optional[timedelta]:
        if self.completed_at and self.initiated_at:
            return self.completed_at - self.initiated_at
        return None

    def qr_payload(self) -> dict:
        return {
            "receiptNumber": self.receipt_number,
            "paymentId": self.payment_id,
            "totalAmount": str(fines.to_money(self.total_amount)),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "ovrNumber": self.ovr_number,
        }

    def refresh_qr_payload(self) -> None:
        self.qr_code_data = self.qr_payload()
