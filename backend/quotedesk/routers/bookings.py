"""Bookings router — execution, cancellation and payments."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from quotedesk.container import Container
from quotedesk.dependencies import get_container, get_current_actor
from quotedesk.schemas.booking import Booking, DriverDetails, PaymentMode
from quotedesk.schemas.common import Actor
from quotedesk.services import permissions
from quotedesk.services.permissions import Action
from quotedesk.services.visibility import redact_booking, render_transcript

router = APIRouter()


class VersionedRequest(BaseModel):
    row_version: int  # version the caller read


class ReasonRequest(VersionedRequest):
    reason: str


class MessageRequest(VersionedRequest):
    content: str


class DriverRequest(VersionedRequest):
    driver: DriverDetails


class ProcessCancellationRequest(VersionedRequest):
    penalty_amount: Decimal = Field(default=Decimal("0"), ge=0)
    admin_note: str | None = None


class PaymentRequest(VersionedRequest):
    payment_id: str
    amount: Decimal
    mode: PaymentMode
    reference: str = ""


async def _load(container: Container, booking_id: str, actor: Actor, row_version: int | None = None) -> Booking:
    booking = await container.bookings.get(booking_id)
    permissions.require(actor, Action.VIEW, booking)
    if row_version is not None:
        booking = booking.model_copy(update={"row_version": row_version})
    return booking


@router.get("")
async def list_bookings(
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    bookings = await container.bookings.list_for(actor)
    return [redact_booking(actor, b) for b in bookings]


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    return redact_booking(actor, await _load(container, booking_id, actor))


@router.get("/{booking_id}/transcript")
async def get_transcript(
    booking_id: str,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor)
    return {"transcript": render_transcript(actor, booking.messages)}


@router.post("/{booking_id}/confirm")
async def confirm_booking(
    booking_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.confirm(booking, actor))


@router.post("/{booking_id}/reject")
async def reject_booking(
    booking_id: str,
    req: ReasonRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.reject(booking, actor, req.reason))


@router.post("/{booking_id}/start")
async def start_trip(
    booking_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.start(booking, actor))


@router.post("/{booking_id}/complete")
async def complete_trip(
    booking_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.complete(booking, actor))


@router.put("/{booking_id}/driver")
async def set_driver(
    booking_id: str,
    req: DriverRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.set_driver_details(booking, actor, req.driver))


@router.post("/{booking_id}/messages")
async def post_message(
    booking_id: str,
    req: MessageRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.post_message(booking, actor, req.content))


@router.post("/{booking_id}/cancellation")
async def request_cancellation(
    booking_id: str,
    req: ReasonRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    return redact_booking(actor, await container.bookings.request_cancellation(booking, actor, req.reason))


@router.post("/{booking_id}/cancellation/process")
async def process_cancellation(
    booking_id: str,
    req: ProcessCancellationRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    cancelled = await container.bookings.process_cancellation(
        booking, actor, req.penalty_amount, req.admin_note
    )
    return redact_booking(actor, cancelled)


@router.post("/{booking_id}/payments")
async def record_payment(
    booking_id: str,
    req: PaymentRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    booking = await _load(container, booking_id, actor, req.row_version)
    result = await container.payments.record_payment(
        booking, actor, req.payment_id, req.amount, req.mode, req.reference
    )
    return {
        "booking": redact_booking(actor, result.booking),
        "receipt_number": result.entry.receipt_number,
        "payment_type": result.entry.type.value,
        "applied": result.applied,
        "credit_amount": result.credit_note.amount if result.credit_note else Decimal("0"),
    }
