"""
Dispute endpoints: file, list and resolve.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.db.session import get_db
from tutorbook.schemas.booking import BookingResponse
from tutorbook.schemas.dispute import DisputeCreate, DisputeResolve
from tutorbook.services import dispute_service
from tutorbook.services.cache_service import invalidate_tutor_schedule
from tutorbook.services.interfaces import BankDetails, Notifier, PaymentGateway, SlotLock
from tutorbook.services.strategy_factory import get_notifier, get_payment_gateway, get_slot_lock

router = APIRouter(prefix="/disputes", tags=["Disputes"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def file_dispute(
    payload: DisputeCreate,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """File a dispute on a booking. A booking can be disputed only once."""
    bank = None
    if payload.bank_account_name and payload.bank_account_number and payload.bank_code:
        bank = BankDetails(
            account_name=payload.bank_account_name,
            account_number=payload.bank_account_number,
            bank_code=payload.bank_code,
        )
    return await dispute_service.file_dispute(db, payload.booking_id, payload.reason, bank, notifier=notifier)


@router.get("/", response_model=list[BookingResponse])
async def list_disputes(include_resolved: bool = False, db: AsyncSession = Depends(get_db)):
    return await dispute_service.list_disputes(db, include_resolved)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def resolve_dispute(
    booking_id: int,
    payload: DisputeResolve,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    slot_lock: SlotLock = Depends(get_slot_lock),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Resolve an open dispute.

    `refunded` pays the student back first; if the gateway cannot pay out the
    dispute stays open and the response is 422 `payout_unavailable`, meaning
    the refund has to be made by hand.
    """
    booking = await dispute_service.resolve_dispute(
        db,
        booking_id,
        payload.outcome,
        gateway=gateway,
        slot_lock=slot_lock,
        notifier=notifier,
    )
    await invalidate_tutor_schedule(booking.tutor_id)
    return booking
