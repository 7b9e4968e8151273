"""
Payment linkage: ties gateway transactions to bookings.

IDEMPOTENCY STRATEGY
====================

Gateways deliver callbacks at least once, sometimes with a delay and sometimes
twice at the same time. A payment only moves out of `pending` through

    UPDATE payments SET status = :terminal WHERE tx_ref = :ref AND status = 'pending'

so exactly one delivery wins. Every other delivery sees rowcount == 0 and is
reported as a replay: no booking changes, no events, no notifications.
A terminal status never changes again; a contradicting late callback is
ignored and logged.
"""

import hashlib
import hmac
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core import clock
from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import NotFoundError, ValidationError
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_payment_callback
from tutorbook.models.booking import Booking, BookingStatus
from tutorbook.models.booking_event import LifecycleEvent
from tutorbook.models.payment import Payment, PaymentStatus
from tutorbook.services.event_log import record_event
from tutorbook.services.interfaces.notifier import Notifier
from tutorbook.services.interfaces.payment_gateway import BankDetails, PayerInfo, PaymentGateway
from tutorbook.services.notification_service import notify_safely

logger = get_logger(__name__)

TERMINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})


def new_tx_ref(prefix: str = "tx") -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def record_payment_intent(
    db: AsyncSession,
    booking: Booking,
    amount: Decimal,
    tx_ref: Optional[str] = None,
    *,
    recurrence_id: Optional[str] = None,
) -> Payment:
    """Stage a pending payment in the caller's transaction."""
    payment = Payment(
        booking_id=booking.id,
        recurrence_id=recurrence_id,
        student_id=booking.student_id,
        tutor_id=booking.tutor_id,
        tx_ref=tx_ref or new_tx_ref(),
        amount=amount,
        currency=get_settings().PAYMENT_CURRENCY,
        status=PaymentStatus.PENDING,
    )
    db.add(payment)
    return payment


async def get_payment_by_tx_ref(db: AsyncSession, tx_ref: str) -> Optional[Payment]:
    result = await db.execute(select(Payment).where(Payment.tx_ref == tx_ref))
    return result.scalar_one_or_none()


async def get_payment_for_booking(db: AsyncSession, booking: Booking) -> Optional[Payment]:
    """The most recent payment covering a booking, directly or through its recurrence."""
    criteria = Payment.booking_id == booking.id
    if booking.recurrence_id:
        criteria = criteria | (Payment.recurrence_id == booking.recurrence_id)
    result = await db.execute(select(Payment).where(criteria).order_by(Payment.id.desc()).limit(1))
    return result.scalar_one_or_none()


async def _bookings_covered(db: AsyncSession, payment: Payment) -> list[Booking]:
    if payment.recurrence_id:
        criteria = Booking.recurrence_id == payment.recurrence_id
    else:
        criteria = Booking.id == payment.booking_id
    result = await db.execute(select(Booking).where(criteria).order_by(Booking.session_date))
    return list(result.scalars().all())


async def on_gateway_callback(
    db: AsyncSession,
    tx_ref: str,
    status: PaymentStatus,
    raw_payload: Optional[dict[str, Any]],
    notifier: Notifier,
) -> str:
    """
    Apply a gateway outcome to a payment and the bookings it covers.

    Returns:
        "applied", "replayed" or "ignored"
    """
    if status not in TERMINAL_STATUSES:
        raise ValidationError(f"Unsupported payment status {status!r}", code="invalid_payment_status")

    payment = await get_payment_by_tx_ref(db, tx_ref)
    if payment is None:
        raise NotFoundError(f"No payment with tx_ref {tx_ref}", details={"tx_ref": tx_ref})

    if payment.status == status:
        record_payment_callback("replayed")
        logger.info("payment_callback_replayed", tx_ref=tx_ref, status=str(status))
        return "replayed"
    if payment.status in TERMINAL_STATUSES:
        record_payment_callback("ignored")
        logger.warning(
            "payment_callback_contradicts_terminal",
            tx_ref=tx_ref,
            current=payment.status,
            received=str(status),
        )
        return "ignored"

    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(status=status, gateway_response=raw_payload)
    )
    if result.rowcount == 0:
        # A concurrent delivery got there first
        await db.rollback()
        record_payment_callback("replayed")
        logger.info("payment_callback_replayed", tx_ref=tx_ref, status=str(status), concurrent=True)
        return "replayed"

    bookings = await _bookings_covered(db, payment)
    if status == PaymentStatus.COMPLETED:
        for booking in bookings:
            if booking.status == BookingStatus.CANCELLED:
                continue
            booking.is_paid = True
            if booking.status == BookingStatus.PENDING:
                booking.status = BookingStatus.CONFIRMED
            record_event(db, booking.id, LifecycleEvent.PAYMENT_CONFIRMED, tx_ref=tx_ref)
    else:
        for booking in bookings:
            record_event(db, booking.id, LifecycleEvent.PAYMENT_FAILED, tx_ref=tx_ref)

    await db.commit()
    record_payment_callback("applied")
    logger.info(
        "payment_callback_applied",
        tx_ref=tx_ref,
        status=str(status),
        booking_ids=[b.id for b in bookings],
    )

    if bookings:
        first = bookings[0]
        if status == PaymentStatus.COMPLETED:
            count = len(bookings)
            sessions = "session is" if count == 1 else f"{count} sessions are"
            await notify_safely(notifier, first.student_id, f"Payment received. Your {sessions} confirmed.", "payment")
            await notify_safely(notifier, first.tutor_id, f"A student has paid for {first.subject}.", "payment")
        else:
            await notify_safely(
                notifier,
                first.student_id,
                "Your payment did not go through. The booking is still waiting for payment.",
                "payment",
            )
    return "applied"


async def start_checkout(
    db: AsyncSession,
    booking_id: int,
    payer: PayerInfo,
    gateway: PaymentGateway,
) -> tuple[Payment, str]:
    """
    Open a hosted checkout for a booking's pending payment.

    A failed payment is replaced with a fresh pending one, since gateways do
    not accept a tx_ref twice. Gateway errors propagate and the booking stays pending.
    """
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
    if booking.status == BookingStatus.CANCELLED:
        raise ValidationError("Cannot pay for a cancelled booking", code="booking_cancelled")
    if booking.is_paid:
        raise ValidationError("Booking is already paid", code="already_paid")

    payment = await get_payment_for_booking(db, booking)
    if payment is None or payment.status == PaymentStatus.FAILED:
        amount = payment.amount if payment is not None else booking.price
        recurrence_id = payment.recurrence_id if payment is not None else None
        prefix = "recurring" if recurrence_id else "tx"
        payment = record_payment_intent(
            db, booking, amount, new_tx_ref(prefix), recurrence_id=recurrence_id
        )
        await db.commit()
    elif payment.status == PaymentStatus.COMPLETED:
        raise ValidationError("Booking is already paid", code="already_paid")

    settings = get_settings()
    checkout_url = await gateway.init_checkout(
        amount=Decimal(payment.amount),
        payer=payer,
        tx_ref=payment.tx_ref,
        callback_url=settings.PAYMENT_CALLBACK_URL,
        return_url=f"{settings.PAYMENT_RETURN_URL}?tx_ref={payment.tx_ref}",
    )
    logger.info("checkout_started", booking_id=booking_id, tx_ref=payment.tx_ref, amount=str(payment.amount))
    return payment, checkout_url


async def refund(
    db: AsyncSession,
    payment: Payment,
    bank: BankDetails,
    amount: Decimal,
    gateway: PaymentGateway,
    reference: Optional[str] = None,
) -> str:
    """
    Pay money back through the gateway and stage the refund on the payment row.

    The gateway is called first; the caller commits only after this returns.
    """
    reference = (reference or f"refund-{payment.tx_ref}")[:100]
    transfer_ref = await gateway.refund(payment.tx_ref, bank, amount, reference)
    payment.refund_reference = transfer_ref
    payment.refunded_at = clock.utcnow()
    logger.info("payment_refunded", tx_ref=payment.tx_ref, amount=str(amount), reference=transfer_ref)
    return transfer_ref


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """HMAC-SHA256 of the raw webhook body, hex encoded."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())
