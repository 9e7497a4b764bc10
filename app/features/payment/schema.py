from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Dict
from datetime import datetime, date
from decimal import Decimal

from app.models.enums import PaymentStatus, PaymentMethod, ViolationStatus, ViolationType

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"


class PaymentInitiate(BaseModel):
    violation_id: int
    payer_name: str = Field(..., min_length=2, max_length=100)
    payer_email: EmailStr
    payer_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    payment_method: PaymentMethod
    amount: Decimal = Field(..., gt=0)


class PaymentConfirm(BaseModel):
    payment_id: str = Field(..., min_length=1, max_length=20)
    gateway_transaction_id: str = Field(..., min_length=1, max_length=255)


class RefundRequest(BaseModel):
    refund_amount: Decimal = Field(..., gt=0)
    refund_reason: str = Field(..., min_length=5, max_length=500)


class PaymentPublic(BaseModel):
    """Outward view of a payment. Gateway responses are never part of it."""
    payment_id: str
    receipt_number: str
    violation_id: int
    ovr_number: str
    citation_number: str
    payer_name: str
    payer_email: str
    payer_phone: Optional[str] = None
    amount: Decimal
    processing_fee: Decimal
    total_amount: Decimal
    refund_amount: Decimal
    currency: str
    payment_method: PaymentMethod
    payment_provider: Optional[str] = None
    status: PaymentStatus
    gateway_transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    initiated_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    refund_reason: Optional[str] = None
    qr_code_data: Optional[Dict] = None
    qr_code_url: Optional[str] = None

    class Config:
        from_attributes = True


def to_public(payment) -> PaymentPublic:
    return PaymentPublic.model_validate(payment)


class PaymentInitiateResponse(BaseModel):
    payment: PaymentPublic
    redirect_url: Optional[str] = None
    message: str


class ViolationSummary(BaseModel):
    id: int
    ovr_number: str
    citation_number: str
    plate_number: str
    violation_type: ViolationType
    violation_date: datetime
    total_fine: Decimal
    status: ViolationStatus

    class Config:
        from_attributes = True


class ReceiptResponse(BaseModel):
    payment: PaymentPublic
    violation: ViolationSummary
    qr_payload: Dict
    qr_data: Optional[str] = None


class PaymentStatisticsResponse(BaseModel):
    total_payments: int
    by_status: Dict[str, int]
    by_method: Dict[str, int]
    total_collected: Decimal
    total_refunded: Decimal
    period_start: Optional[date] = None
    period_end: Optional[date] = None
