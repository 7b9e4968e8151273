"""
Dispute workflow: students contest a session, an administrator settles it.

TWO-PHASE REFUND
================

A `refunded` resolution moves money outside our database. The gateway refund
runs first; the dispute, booking and payment rows change only after it
succeeds. If the payout fails nothing is committed, the dispute stays open
and the caller gets the gateway's typed error (PayoutUnavailableError means
"refund by hand"). A per-booking lock keeps two administrators from paying
the same refund twice.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core import clock
from tutorbook.core.exceptions import (
    BookingError,
    GatewayTransientError,
    PayoutUnavailableError,
    ValidationError,
)
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import dispute_resolutions, refund_failures
from tutorbook.domain.lifecycle import ensure_dispute_can_be_filed, ensure_dispute_open
from tutorbook.models.booking import Booking, BookingStatus, DisputeOutcome, SessionType
from tutorbook.models.booking_event import LifecycleEvent
from tutorbook.models.payment import PaymentStatus
from tutorbook.services import cohort_service
from tutorbook.services.booking_service import get_booking, slot_keys
from tutorbook.services.event_log import record_event
from tutorbook.services.interfaces.notifier import Notifier
from tutorbook.services.interfaces.payment_gateway import BankDetails, PaymentGateway
from tutorbook.services.interfaces.slot_lock import SlotLock
from tutorbook.services.notification_service import notify_safely
from tutorbook.services.payment_service import get_payment_for_booking, refund

logger = get_logger(__name__)


def dispute_lock_key(booking_id: int) -> str:
    return f"dispute:{booking_id}"


async def file_dispute(
    db: AsyncSession,
    booking_id: int,
    reason: str,
    bank: Optional[BankDetails] = None,
    *,
    notifier: Notifier,
) -> Booking:
    """Open a dispute on a booking. Only one dispute per booking, ever."""
    if not reason or not reason.strip():
        raise ValidationError("A dispute needs a reason", code="missing_reason")

    booking = await get_booking(db, booking_id)
    ensure_dispute_can_be_filed(booking)

    booking.dispute_filed = True
    booking.dispute_reason = reason.strip()
    booking.dispute_resolved = False
    booking.dispute_filed_at = clock.utcnow()
    if bank is not None:
        booking.dispute_bank_account_name = bank.account_name
        booking.dispute_bank_account_number = bank.account_number
        booking.dispute_bank_code = bank.bank_code
    record_event(db, booking.id, LifecycleEvent.DISPUTE_FILED)
    await db.commit()

    logger.info("dispute_filed", booking_id=booking_id, student_id=booking.student_id, tutor_id=booking.tutor_id)
    await notify_safely(notifier, booking.tutor_id, "A dispute has been filed for your session by the student.", "warning")
    await notify_safely(notifier, booking.student_id, "Your dispute has been filed and is under review.", "info")
    return await get_booking(db, booking_id)


async def list_disputes(db: AsyncSession, include_resolved: bool = False) -> list[Booking]:
    """Bookings with a dispute, most recently filed first."""
    query = select(Booking).where(Booking.dispute_filed.is_(True))
    if not include_resolved:
        query = query.where(Booking.dispute_resolved.is_(False))
    result = await db.execute(query.order_by(Booking.dispute_filed_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())


def _bank_details(booking: Booking) -> BankDetails:
    if not (booking.dispute_bank_account_name and booking.dispute_bank_account_number and booking.dispute_bank_code):
        raise ValidationError(
            "Bank details are required to refund this dispute",
            code="missing_bank_details",
            details={"booking_id": booking.id},
        )
    return BankDetails(
        account_name=booking.dispute_bank_account_name,
        account_number=booking.dispute_bank_account_number,
        bank_code=booking.dispute_bank_code,
    )


async def _refund_and_cancel(db: AsyncSession, booking: Booking, gateway: PaymentGateway) -> None:
    bank = _bank_details(booking)
    payment = await get_payment_for_booking(db, booking)
    if payment is None or payment.status != PaymentStatus.COMPLETED:
        raise ValidationError(
            "No completed payment found for this booking",
            code="no_completed_payment",
            details={"booking_id": booking.id},
        )
    amount = min(Decimal(booking.price), Decimal(payment.amount))

    try:
        await refund(db, payment, bank, amount, gateway, reference=f"refund-{booking.id}-{payment.tx_ref}")
    except BookingError as e:
        kind = {PayoutUnavailableError: "payout_unavailable", GatewayTransientError: "transient"}.get(type(e), "error")
        refund_failures.labels(kind=kind).inc()
        await db.rollback()
        logger.warning("dispute_refund_failed", booking_id=booking.id, kind=kind, error=e.message)
        raise

    group_id = booking.group_id
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = clock.utcnow()
    booking.cancel_reason = "dispute refunded"
    booking.is_tutor_paid = False
    if booking.session_type == SessionType.GROUP and group_id:
        await cohort_service.release_seat(db, group_id)
    record_event(db, booking.id, LifecycleEvent.CANCELLED, reason="dispute refunded")


async def resolve_dispute(
    db: AsyncSession,
    booking_id: int,
    outcome: DisputeOutcome,
    *,
    gateway: PaymentGateway,
    slot_lock: SlotLock,
    notifier: Notifier,
) -> Booking:
    """
    Settle an open dispute.

    refunded: refund through the gateway, then cancel the booking and free its seat.
    rejected: no money moves; the tutor keeps the payment.

    Raises:
        ValidationError: no open dispute, missing bank details, nothing paid
        PayoutUnavailableError / GatewayTransientError / GatewayError: refund failed, dispute stays open
    """
    booking = await get_booking(db, booking_id)
    keys = [dispute_lock_key(booking_id)]
    if outcome == DisputeOutcome.REFUNDED:
        keys += slot_keys(booking.tutor_id, booking.session_date, booking.session_time, booking.duration_minutes)

    async with slot_lock.hold(keys):
        # Re-read under the lock: another resolution may have finished meanwhile
        booking = await get_booking(db, booking_id)
        ensure_dispute_open(booking)

        if outcome == DisputeOutcome.REFUNDED:
            await _refund_and_cancel(db, booking, gateway)
        else:
            booking.is_tutor_paid = True

        booking.dispute_resolved = True
        booking.dispute_outcome = outcome
        booking.dispute_resolved_at = clock.utcnow()
        record_event(db, booking.id, LifecycleEvent.DISPUTE_RESOLVED, outcome=str(outcome))
        await db.commit()

    dispute_resolutions.labels(outcome=str(outcome)).inc()
    logger.info("dispute_resolved", booking_id=booking_id, outcome=str(outcome))
    await notify_safely(notifier, booking.student_id, f"Your dispute was resolved. Outcome: {outcome}.", "info")
    verdict = "approved" if outcome == DisputeOutcome.REFUNDED else "rejected"
    await notify_safely(notifier, booking.tutor_id, f"An administrator has {verdict} the session dispute.", "info")
    return await get_booking(db, booking_id)
