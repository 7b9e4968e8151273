"""
Payment endpoints: hosted checkout and gateway webhooks.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import NotFoundError, ValidationError
from tutorbook.core.logging import get_logger
from tutorbook.db.session import get_db
from tutorbook.models.payment import PaymentStatus
from tutorbook.schemas.payment import CheckoutRequest, CheckoutResponse, WebhookAck
from tutorbook.services import payment_service
from tutorbook.services.cache_service import invalidate_tutor_schedule
from tutorbook.services.interfaces import Notifier, PayerInfo, PaymentGateway
from tutorbook.services.strategy_factory import get_notifier, get_payment_gateway

logger = get_logger(__name__)
router = APIRouter(tags=["Payments"])

SIGNATURE_HEADERS = ("Chapa-Signature", "x-chapa-signature")

# Gateway wording for transaction outcomes
_CALLBACK_STATUSES = {
    "success": PaymentStatus.COMPLETED,
    "successful": PaymentStatus.COMPLETED,
    "completed": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "failure": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
}


@router.post("/payments/checkout", response_model=CheckoutResponse)
async def start_checkout(
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Open a hosted checkout for a booking. The booking stays pending until the gateway calls back."""
    payer = PayerInfo(email=payload.email, first_name=payload.first_name, last_name=payload.last_name)
    payment, checkout_url = await payment_service.start_checkout(db, payload.booking_id, payer, gateway)
    return CheckoutResponse(
        booking_id=payload.booking_id,
        tx_ref=payment.tx_ref,
        amount=payment.amount,
        checkout_url=checkout_url,
    )


@router.post("/webhook/{gateway_name}", response_model=WebhookAck)
async def gateway_webhook(
    gateway_name: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Receive a payment outcome from the gateway.

    The raw body is signature-checked when a webhook secret is configured, and
    the outcome is re-read from the gateway when verification is enabled, so a
    forged callback cannot confirm a booking. Replays are acknowledged without effect.
    """
    if gateway_name != gateway.name:
        raise NotFoundError(f"Unknown payment gateway {gateway_name}")

    settings = get_settings()
    body = await request.body()
    if settings.CHAPA_WEBHOOK_SECRET:
        signature = next((request.headers.get(h) for h in SIGNATURE_HEADERS if request.headers.get(h)), None)
        if not payment_service.verify_signature(settings.CHAPA_WEBHOOK_SECRET, body, signature):
            logger.warning("webhook_signature_invalid", gateway=gateway_name)
            raise ValidationError("Invalid webhook signature", code="invalid_signature")

    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON", code="invalid_payload") from None
    tx_ref = payload.get("tx_ref") or payload.get("trx_ref") if isinstance(payload, dict) else None
    if not tx_ref:
        raise ValidationError("Webhook body has no tx_ref", code="invalid_payload")

    reported = _CALLBACK_STATUSES.get(str(payload.get("status", "")).lower())
    if settings.PAYMENT_VERIFY_CALLBACKS:
        verification = await gateway.verify(tx_ref)
        if verification.status == PaymentStatus.PENDING or (reported and verification.status != reported):
            logger.warning(
                "webhook_not_verified",
                tx_ref=tx_ref,
                reported=str(reported),
                verified=verification.status,
            )
            raise ValidationError("Payment not verified", code="payment_not_verified")
        reported = PaymentStatus(verification.status)
    if reported is None:
        raise ValidationError("Unknown payment status", code="invalid_payment_status")

    result = await payment_service.on_gateway_callback(db, tx_ref, reported, payload, notifier)
    if result == "applied":
        payment = await payment_service.get_payment_by_tx_ref(db, tx_ref)
        await invalidate_tutor_schedule(payment.tutor_id)
    return WebhookAck(tx_ref=tx_ref, result=result)
