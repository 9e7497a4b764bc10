"""
Tests for the Payment entity, its state machine and its public projection.
"""
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.exceptions import InvalidStateError, CannotRefundError, ValidationError
from app.features.payment.model import Payment
from app.features.payment.schema import to_public
from app.models.enums import PaymentStatus, PaymentMethod, ReferenceKind
from app.services.payment_gateways import Payer
from app.utils import reference_numbers

from conftest import NOW

VIOLATION = SimpleNamespace(id=7, ovr_number="OVR2024031234", citation_number="CIT2024035678")
PAYER = Payer(name="Maria Santos", email="maria@example.com", phone="+639171112222")


@pytest.fixture
def payment():
    return Payment.create(VIOLATION, PAYER, PaymentMethod.GCASH, Decimal("500.00"), now=NOW)


class TestCreate:
    def test_identifiers_and_totals(self, payment):
        assert reference_numbers.matches(ReferenceKind.PAYMENT, payment.payment_id)
        assert reference_numbers.matches(ReferenceKind.RECEIPT, payment.receipt_number)
        assert payment.total_amount == Decimal("500.00")
        assert payment.refund_amount == Decimal("0.00")
        assert payment.status == PaymentStatus.PENDING
        assert payment.initiated_at == NOW

    def test_denormalises_violation_references(self, payment):
        assert payment.violation_id == 7
        assert payment.ovr_number == "OVR2024031234"
        assert payment.citation_number == "CIT2024035678"

    def test_processing_fee_added(self):
        payment = Payment.create(
            VIOLATION, PAYER, PaymentMethod.GCASH, Decimal("500.00"), processing_fee=Decimal("12.50"), now=NOW
        )
        assert payment.total_amount == Decimal("512.50")

    def test_keeps_given_payment_id(self):
        payment = Payment.create(VIOLATION, PAYER, PaymentMethod.GCASH, Decimal("1"), payment_id="PAY20240300001", now=NOW)
        assert payment.payment_id == "PAY20240300001"

    def test_qr_payload_computed_at_creation(self, payment):
        assert payment.qr_code_data == {
            "receiptNumber": payment.receipt_number,
            "paymentId": payment.payment_id,
            "totalAmount": "500.00",
            "completedAt": None,
            "ovrNumber": "OVR2024031234",
        }

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            Payment.create(VIOLATION, PAYER, PaymentMethod.GCASH, amount, now=NOW)

    def test_reassign_references_refreshes_qr(self, payment):
        payment.reassign_references(NOW)
        assert payment.qr_code_data["paymentId"] == payment.payment_id
        assert payment.qr_code_data["receiptNumber"] == payment.receipt_number
        assert reference_numbers.matches(ReferenceKind.PAYMENT, payment.payment_id)


class TestTransitions:
    def test_processing_then_completed(self, payment):
        payment.mark_as_processing(NOW)
        later = NOW + timedelta(seconds=42)
        payment.mark_as_completed("TX1", "REF1", {"status": "paid"}, later)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.processed_at == NOW
        assert payment.completed_at == later
        assert payment.gateway_transaction_id == "TX1"
        assert payment.qr_code_data["completedAt"] == later.isoformat()
        assert payment.payment_duration() == timedelta(seconds=42)

    def test_completed_directly_from_pending(self, payment):
        payment.mark_as_completed("TX1", "REF1", {}, NOW)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.processed_at is None

    def test_failed_records_error(self, payment):
        payment.mark_as_processing(NOW)
        payment.mark_as_failed("card_declined", "Card declined", NOW)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failed_at == NOW
        assert payment.error_code == "card_declined"
        assert payment.completed_at is None

    def test_failed_is_terminal(self, payment):
        payment.mark_as_failed("X", "x", NOW)
        with pytest.raises(InvalidStateError):
            payment.mark_as_completed("TX1", "REF1", {}, NOW)
        with pytest.raises(InvalidStateError):
            payment.mark_as_processing(NOW)

    def test_cancel_only_from_pending(self, payment):
        payment.mark_as_processing(NOW)
        with pytest.raises(InvalidStateError):
            payment.mark_as_cancelled()

    def test_cancel_pending(self, payment):
        payment.mark_as_cancelled()
        assert payment.status == PaymentStatus.CANCELLED

    def test_duration_unknown_until_completed(self, payment):
        assert payment.payment_duration() is None


class TestRefund:
    def test_scenario_e_refund_once(self, payment):
        payment.mark_as_completed("TX1", "REF1", {}, NOW)
        assert payment.can_be_refunded()
        payment.process_refund(Decimal("500.00"), "Duplicate charge", refunded_by="admin-1", now=NOW)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_amount == Decimal("500.00")
        assert payment.refunded_by == "admin-1"
        assert payment.refunded_at == NOW
        with pytest.raises(CannotRefundError):
            payment.process_refund(Decimal("500.00"), "Again", now=NOW)

    def test_cannot_refund_uncompleted(self, payment):
        assert not payment.can_be_refunded()
        with pytest.raises(CannotRefundError):
            payment.process_refund(Decimal("1.00"), "Nope", now=NOW)

    @pytest.mark.parametrize("amount", [Decimal("0.00"), Decimal("500.01")])
    def test_refund_amount_bounds(self, payment, amount):
        payment.mark_as_completed("TX1", "REF1", {}, NOW)
        with pytest.raises(ValidationError):
            payment.process_refund(amount, "Out of bounds", now=NOW)
        assert payment.status == PaymentStatus.COMPLETED

    def test_cannot_refund_error_is_invalid_state(self):
        assert issubclass(CannotRefundError, InvalidStateError)
        assert CannotRefundError.code == "CANNOT_REFUND"


class TestPublicProjection:
    def test_gateway_response_is_never_exposed(self, payment):
        payment.mark_as_completed("TX1", "REF1", {"card_number": "4111111111111111"}, NOW)
        public = to_public(payment)
        dumped = public.model_dump()
        assert "gateway_response" not in dumped
        assert "4111111111111111" not in public.model_dump_json()
        assert dumped["payment_id"] == payment.payment_id
        assert dumped["status"] == PaymentStatus.COMPLETED
