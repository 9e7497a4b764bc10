from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from typing import Optional, List, Dict, Tuple
from datetime import datetime, date, time as time_of_day
from decimal import Decimal

from app.core.config import settings
from app.core.database import commit_with_fresh_references
from app.core.exceptions import (
    NotFoundError,
    ValidationError,
    InvalidStateError,
    GatewayError,
    GatewayTimeoutError,
)
from app.core.logging import get_logger
from app.features.payment.model import Payment
from app.features.payment.schema import PaymentInitiate, to_public, ViolationSummary
from app.features.violation.model import Violation
from app.models.enums import PaymentStatus, PaymentMethod, ViolationStatus, DisputeStatus, NotificationType
from app.services.notification_dispatcher import NotificationDispatcher, NotificationMessage, dispatch
from app.services.payment_gateways import (
    PaymentGatewayAdapter,
    Payer,
    PROVIDER_NAMES,
    CHARGE_PAID,
    CHARGE_FAILED,
    call_with_timeout,
)
from app.services.receipt_encoder import ReceiptEncoder, encode_safely
from app.utils import fines
from app.utils.clock import utcnow

logger = get_logger(__name__)

GENERIC_GATEWAY_MESSAGE = "The payment gateway could not process this payment"


class PaymentService:
    """
    Payment engine.

    Drives a payment from initiation to a terminal state. Gateway errors never
    escape: they end the payment in ``failed`` with an error code, so callers
    always get back a payment they can inspect.
    """

    @staticmethod
    def _resolve_gateway(gateways: Dict[PaymentMethod, PaymentGatewayAdapter], method: PaymentMethod) -> PaymentGatewayAdapter:
        gateway = gateways.get(method)
        if gateway is None:
            raise ValidationError("Unsupported payment method")
        return gateway

    @staticmethod
    def _call_gateway(fn, *args, timeout: Optional[float] = None, **kwargs):
        timeout = settings.GATEWAY_TIMEOUT_SECONDS if timeout is None else timeout
        return call_with_timeout(fn, timeout, *args, **kwargs)

    @staticmethod
    def _gateway_failure(error: Exception) -> Tuple[str, str]:
        """Error code and caller-safe message for a failed gateway call."""
        if isinstance(error, GatewayTimeoutError):
            return GatewayTimeoutError.code, error.message
        if isinstance(error, GatewayError):
            return error.gateway_code, error.message
        return GatewayError.code, GENERIC_GATEWAY_MESSAGE

    @staticmethod
    def initiate_payment(
        db: Session,
        payment_data: PaymentInitiate,
        gateways: Dict[PaymentMethod, PaymentGatewayAdapter],
        payer_id: Optional[str] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        encoder: Optional[ReceiptEncoder] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Payment, Optional[str]]:
        """
        Create a payment for a violation and charge it through its gateway.

        Returns:
            (payment, redirect_url). The payment is ``completed`` when the gateway
            settled immediately, ``processing`` when it awaits confirmation and
            ``failed`` when the gateway errored or timed out.

        Raises:
            ValidationError: unsupported method
            NotFoundError: unknown violation
            InvalidStateError: violation not payable
        """
        now = now or utcnow()
        gateway = PaymentService._resolve_gateway(gateways, payment_data.payment_method)

        violation = db.query(Violation).filter(Violation.id == payment_data.violation_id).first()
        if not violation:
            raise NotFoundError("Violation not found")
        if violation.status != ViolationStatus.PENDING:
            raise InvalidStateError(f"Violation {violation.ovr_number} is not payable (status: {violation.status.value})")
        if violation.has_open_dispute():
            raise InvalidStateError(f"Violation {violation.ovr_number} has a dispute under review")

        penalty = violation.apply_late_penalty(now)
        if penalty:
            db.commit()
            db.refresh(violation)
            logger.info(
                "Late penalty applied",
                extra={"violation_id": violation.id, "penalty": str(penalty), "total_fine": str(violation.total_fine)},
            )

        # The stored fine is authoritative; the client amount is only a hint.
        amount = fines.to_money(violation.total_fine)
        requested = fines.to_money(payment_data.amount)
        if requested != amount:
            logger.warning(
                "Requested amount differs from total fine",
                extra={"violation_id": violation.id, "requested": str(requested), "total_fine": str(amount)},
            )

        payer = Payer(name=payment_data.payer_name, email=payment_data.payer_email, phone=payment_data.payer_phone)
        payment = Payment.create(
            violation,
            payer,
            payment_data.payment_method,
            amount,
            processing_fee=settings.PROCESSING_FEE,
            payer_id=payer_id,
            currency=settings.CURRENCY,
            payment_provider=PROVIDER_NAMES.get(payment_data.payment_method),
            ip_address=ip_address,
            user_agent=user_agent,
            now=now,
        )
        commit_with_fresh_references(db, payment, lambda: payment.reassign_references(now))
        logger.info(
            "Payment initiated",
            extra={"payment_id": payment.payment_id, "violation_id": violation.id, "method": payment.payment_method.value},
        )

        payment.mark_as_processing(now)
        db.commit()

        try:
            result = PaymentService._call_gateway(
                gateway.charge,
                violation.ovr_number,
                fines.to_money(payment.total_amount),
                payer,
                payment.payment_id,
                timeout=timeout,
            )
        except Exception as e:
            code, message = PaymentService._gateway_failure(e)
            logger.error(
                "Gateway charge failed",
                extra={"payment_id": payment.payment_id, "error_code": code},
                exc_info=not isinstance(e, GatewayError),
            )
            PaymentService._fail(db, payment, code, message, dispatcher, now)
            return payment, None

        payment.gateway_transaction_id = result.transaction_id
        payment.gateway_reference = result.reference
        payment.gateway_response = result.raw_response
        payment.redirect_url = result.redirect_url
        db.commit()

        if result.status == CHARGE_PAID:
            PaymentService._settle(db, payment, dispatcher, encoder, now=now)
        elif result.status == CHARGE_FAILED:
            PaymentService._fail(db, payment, "PAYMENT_FAILED", "The payment was declined by the gateway", dispatcher, now)
        else:
            logger.info("Payment awaiting confirmation", extra={"payment_id": payment.payment_id})
        return payment, result.redirect_url

    @staticmethod
    def confirm_payment(
        db: Session,
        payment_id: str,
        gateway_transaction_id: str,
        gateways: Dict[PaymentMethod, PaymentGatewayAdapter],
        dispatcher: Optional[NotificationDispatcher] = None,
        encoder: Optional[ReceiptEncoder] = None,
        timeout: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Payment:
        """Verify a redirect-flow charge with its gateway and apply the outcome."""
        now = now or utcnow()
        payment = PaymentService.get_payment(db, payment_id)
        if payment.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise InvalidStateError(f"Payment {payment.payment_id} is not awaiting confirmation")
        if payment.gateway_transaction_id and payment.gateway_transaction_id != gateway_transaction_id:
            raise ValidationError("Gateway transaction does not match this payment")
        gateway = PaymentService._resolve_gateway(gateways, payment.payment_method)

        try:
            result = PaymentService._call_gateway(gateway.verify, gateway_transaction_id, timeout=timeout)
        except Exception as e:
            code, message = PaymentService._gateway_failure(e)
            logger.error(
                "Gateway verification failed",
                extra={"payment_id": payment.payment_id, "error_code": code},
                exc_info=not isinstance(e, GatewayError),
            )
            PaymentService._fail(db, payment, code, message, dispatcher, now)
            return payment

        if result.status == CHARGE_PAID:
            PaymentService._settle(
                db, payment, dispatcher, encoder,
                gateway_transaction_id=gateway_transaction_id,
                gateway_response=result.raw_response,
                now=now,
            )
        elif result.status == CHARGE_FAILED:
            PaymentService._fail(db, payment, "PAYMENT_FAILED", "Payment was not completed", dispatcher, now)
        else:
            logger.info("Payment still pending at gateway", extra={"payment_id": payment.payment_id})
        return payment

    @staticmethod
    def _settle(
        db: Session,
        payment: Payment,
        dispatcher: Optional[NotificationDispatcher],
        encoder: Optional[ReceiptEncoder],
        gateway_transaction_id: Optional[str] = None,
        gateway_response: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Complete ``payment`` and mark its violation paid in one commit.

        The violation is claimed with a conditional update (still pending, no
        open dispute); together with the unique index on completed payments
        this lets only one payment per violation ever complete.
        """
        now = now or utcnow()
        payment.mark_as_completed(gateway_transaction_id, None, gateway_response, now)
        # The unique index can fire on the autoflush before the update or on commit
        try:
            claimed = (
                db.query(Violation)
                .filter(
                    Violation.id == payment.violation_id,
                    Violation.status == ViolationStatus.PENDING,
                    or_(Violation.dispute_status.is_(None), Violation.dispute_status != DisputeStatus.PENDING),
                )
                .update(
                    {
                        Violation.status: ViolationStatus.PAID,
                        Violation.payment_method: payment.payment_method,
                        Violation.payment_reference: payment.payment_id,
                        Violation.payment_date: now,
                    },
                    synchronize_session=False,
                )
            )
            if claimed == 1:
                db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Duplicate completion rejected", extra={"payment_id": payment.payment_id})
            PaymentService._fail(
                db, payment, "DUPLICATE_PAYMENT",
                "Another payment already settled this violation",
                dispatcher, now,
            )
            return

        if claimed != 1:
            db.rollback()
            PaymentService._fail(
                db, payment, "VIOLATION_NOT_PAYABLE",
                "The violation was settled or changed before this payment completed",
                dispatcher, now,
            )
            return

        logger.info(
            "Payment completed",
            extra={
                "payment_id": payment.payment_id,
                "violation_id": payment.violation_id,
                "total_amount": str(payment.total_amount),
            },
        )

        qr_data = encode_safely(encoder, payment.qr_payload())
        if qr_data:
            payment.qr_code_url = qr_data
            db.commit()

        if payment.payer_id:
            dispatch(dispatcher, NotificationMessage(
                user_id=payment.payer_id,
                type=NotificationType.SUCCESS,
                title="Payment successful",
                message=(
                    f"Your payment of {payment.currency} {payment.total_amount} for violation "
                    f"{payment.ovr_number} was received. Receipt number: {payment.receipt_number}."
                ),
                link_url=f"{settings.FRONTEND_URL}/payments/{payment.payment_id}/receipt",
                link_text="View receipt",
            ))

    @staticmethod
    def _fail(
        db: Session,
        payment: Payment,
        error_code: str,
        error_message: str,
        dispatcher: Optional[NotificationDispatcher] = None,
        now: Optional[datetime] = None,
    ) -> None:
        payment.mark_as_failed(error_code, error_message, now)
        db.commit()
        logger.warning("Payment failed", extra={"payment_id": payment.payment_id, "error_code": error_code})
        if payment.payer_id:
            dispatch(dispatcher, NotificationMessage(
                user_id=payment.payer_id,
                type=NotificationType.ERROR,
                title="Payment failed",
                message=f"Your payment for violation {payment.ovr_number} could not be completed.",
                link_url=f"{settings.FRONTEND_URL}/pay-violation?ovr={payment.ovr_number}",
                link_text="Try again",
            ))

    @staticmethod
    def refund_payment(
        db: Session,
        payment_id: str,
        refund_amount,
        refund_reason: str,
        refunded_by: Optional[str] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        now: Optional[datetime] = None,
    ) -> Payment:
        """Refund a completed payment once. The violation stays paid."""
        payment = PaymentService.get_payment(db, payment_id)
        payment.process_refund(refund_amount, refund_reason, refunded_by, now)
        db.commit()
        logger.info(
            "Payment refunded",
            extra={"payment_id": payment.payment_id, "refund_amount": str(payment.refund_amount), "refunded_by": refunded_by},
        )
        if payment.payer_id:
            dispatch(dispatcher, NotificationMessage(
                user_id=payment.payer_id,
                type=NotificationType.INFO,
                title="Payment refunded",
                message=f"{payment.currency} {payment.refund_amount} was refunded for payment {payment.payment_id}.",
            ))
        return payment

    @staticmethod
    def get_payment(db: Session, payment_id: str) -> Payment:
        payment = db.query(Payment).filter(Payment.payment_id == payment_id).first()
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    @staticmethod
    def get_by_receipt_number(db: Session, receipt_number: str) -> Payment:
        payment = db.query(Payment).filter(Payment.receipt_number == receipt_number).first()
        if not payment:
            raise NotFoundError("Receipt not found")
        return payment

    @staticmethod
    def get_by_gateway_transaction_id(db: Session, gateway_transaction_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.gateway_transaction_id == gateway_transaction_id).first()

    @staticmethod
    def get_user_payments(db: Session, payer_id: str) -> List[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.payer_id == str(payer_id))
            .order_by(Payment.initiated_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def get_violation_payments(db: Session, violation_id: int) -> List[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.violation_id == violation_id)
            .order_by(Payment.initiated_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def build_receipt(payment: Payment, encoder: Optional[ReceiptEncoder] = None) -> Dict:
        if payment.status not in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            raise InvalidStateError("A receipt is available once the payment is completed")
        payload = payment.qr_payload()
        return {
            "payment": to_public(payment),
            "violation": ViolationSummary.model_validate(payment.violation),
            "qr_payload": payload,
            "qr_data": payment.qr_code_url or encode_safely(encoder, payload),
        }

    @staticmethod
    def get_payment_statistics(
        db: Session,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict:
        filters = []
        if start_date:
            filters.append(Payment.initiated_at >= datetime.combine(start_date, time_of_day.min))
        if end_date:
            filters.append(Payment.initiated_at <= datetime.combine(end_date, time_of_day.max))

        by_status = {status.value: 0 for status in PaymentStatus}
        for status, count in db.query(Payment.status, func.count(Payment.id)).filter(*filters).group_by(Payment.status):
            by_status[PaymentStatus(status).value] = count

        by_method = {}
        for method, count in db.query(Payment.payment_method, func.count(Payment.id)).filter(*filters).group_by(Payment.payment_method):
            by_method[PaymentMethod(method).value] = count

        collected = db.query(func.sum(Payment.total_amount)).filter(
            *filters, Payment.status == PaymentStatus.COMPLETED
        ).scalar()
        refunded = db.query(func.sum(Payment.refund_amount)).filter(
            *filters, Payment.status == PaymentStatus.REFUNDED
        ).scalar()

        return {
            "total_payments": sum(by_status.values()),
            "by_status": by_status,
            "by_method": by_method,
            "total_collected": fines.to_money(collected or Decimal("0")),
            "total_refunded": fines.to_money(refunded or Decimal("0")),
            "period_start": start_date,
            "period_end": end_date,
        }
