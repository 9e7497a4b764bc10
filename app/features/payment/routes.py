from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from datetime import date

from app.core.database import get_db
from app.core.dependencies import Actor, get_current_actor, get_optional_actor, require_role
from app.core.exceptions import AuthorizationError
from app.models.enums import UserRole, PaymentMethod, PaymentStatus
from app.features.payment.schema import (
    PaymentInitiate,
    PaymentConfirm,
    RefundRequest,
    PaymentPublic,
    PaymentInitiateResponse,
    PaymentStatisticsResponse,
    ReceiptResponse,
    to_public,
)
from app.features.payment.model import Payment
from app.features.payment.service import PaymentService
from app.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from app.services.payment_gateways import PaymentGatewayAdapter, get_gateway_registry
from app.services.receipt_encoder import ReceiptEncoder, get_receipt_encoder

router = APIRouter()


@router.post("/initiate", response_model=PaymentInitiateResponse, status_code=status.HTTP_201_CREATED)
def initiate_payment(
    payment_data: PaymentInitiate,
    request: Request,
    db: Session = Depends(get_db),
    gateways: Dict[PaymentMethod, PaymentGatewayAdapter] = Depends(get_gateway_registry),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    encoder: ReceiptEncoder = Depends(get_receipt_encoder),
    actor: Optional[Actor] = Depends(get_optional_actor),
):
    """Start paying a violation; anonymous payers are allowed"""
    payment, redirect_url = PaymentService.initiate_payment(
        db,
        payment_data,
        gateways,
        payer_id=actor.id if actor else None,
        dispatcher=dispatcher,
        encoder=encoder,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    messages = {
        PaymentStatus.COMPLETED: "Payment completed successfully",
        PaymentStatus.PROCESSING: "Payment initiated, awaiting confirmation",
        PaymentStatus.FAILED: "Payment failed",
    }
    return {
        "payment": to_public(payment),
        "redirect_url": redirect_url,
        "message": messages.get(payment.status, "Payment initiated"),
    }


@router.post("/confirm", response_model=PaymentPublic)
def confirm_payment(
    confirmation: PaymentConfirm,
    db: Session = Depends(get_db),
    gateways: Dict[PaymentMethod, PaymentGatewayAdapter] = Depends(get_gateway_registry),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    encoder: ReceiptEncoder = Depends(get_receipt_encoder),
):
    payment = PaymentService.confirm_payment(
        db,
        confirmation.payment_id,
        confirmation.gateway_transaction_id,
        gateways,
        dispatcher=dispatcher,
        encoder=encoder,
    )
    return to_public(payment)


@router.get("/statistics", response_model=PaymentStatisticsResponse)
def get_payment_statistics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    return PaymentService.get_payment_statistics(db, start_date, end_date)


@router.get("/receipt/{receipt_number}", response_model=ReceiptResponse)
def get_receipt_by_number(
    receipt_number: str,
    db: Session = Depends(get_db),
    encoder: ReceiptEncoder = Depends(get_receipt_encoder),
):
    payment = PaymentService.get_by_receipt_number(db, receipt_number)
    return PaymentService.build_receipt(payment, encoder)


@router.get("/user/{user_id}", response_model=List[PaymentPublic])
def get_user_payments(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if actor.role != UserRole.ADMIN and actor.id != user_id:
        raise AuthorizationError("You can only view your own payments")
    return [to_public(p) for p in PaymentService.get_user_payments(db, user_id)]


@router.get("/{payment_id}", response_model=PaymentPublic)
def get_payment(payment_id: str, db: Session = Depends(get_db)):
    return to_public(PaymentService.get_payment(db, payment_id))


@router.get("/{payment_id}/receipt", response_model=ReceiptResponse)
def get_payment_receipt(
    payment_id: str,
    db: Session = Depends(get_db),
    encoder: ReceiptEncoder = Depends(get_receipt_encoder),
):
    payment: Payment = PaymentService.get_payment(db, payment_id)
    return PaymentService.build_receipt(payment, encoder)


@router.post("/{payment_id}/refund", response_model=PaymentPublic)
def refund_payment(
    payment_id: str,
    refund: RefundRequest,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
):
    """Refund a completed payment (admin only, once)"""
    payment = PaymentService.refund_payment(
        db, payment_id, refund.refund_amount, refund.refund_reason, actor.id, dispatcher
    )
    return to_public(payment)
