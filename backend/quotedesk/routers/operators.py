"""Operator assignment router — assign, accept and decline on quotes and bookings."""

from decimal import Decimal
from enum import Enum

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quotedesk.container import Container
from quotedesk.dependencies import get_container, get_current_actor
from quotedesk.schemas.booking import Booking
from quotedesk.schemas.common import Actor, Role
from quotedesk.schemas.quote import OperatorPriceMode, Quote
from quotedesk.services import permissions
from quotedesk.services.permissions import Action
from quotedesk.services.visibility import redact_booking, redact_quote

router = APIRouter()


class RecordKind(str, Enum):
    QUOTES = "quotes"
    BOOKINGS = "bookings"


class AssignRequest(BaseModel):
    operator_id: str
    operator_name: str
    operator_role: Role = Role.OPERATOR
    price_mode: OperatorPriceMode = OperatorPriceMode.NET_COST
    price: Decimal | None = None
    instruction: str | None = None
    row_version: int


class RespondRequest(BaseModel):
    row_version: int


class DeclineRequest(RespondRequest):
    reason: str


async def _load(container: Container, kind: RecordKind, record_id: str, actor: Actor, row_version: int):
    if kind == RecordKind.BOOKINGS:
        record: Quote | Booking = await container.bookings.get(record_id)
    else:
        record = await container.quotes.get(record_id)
    permissions.require(actor, Action.VIEW, record)
    return record.model_copy(update={"row_version": row_version})


def _render(actor: Actor, record: Quote | Booking) -> dict:
    if isinstance(record, Booking):
        return redact_booking(actor, record)
    return redact_quote(actor, record)


@router.post("/{kind}/{record_id}/operator/assign")
async def assign_operator(
    kind: RecordKind,
    record_id: str,
    req: AssignRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    record = await _load(container, kind, record_id, actor, req.row_version)
    operator = Actor(id=req.operator_id, name=req.operator_name, role=req.operator_role)
    updated = await container.operators.assign(
        record, actor, operator, req.price_mode, req.price, req.instruction
    )
    return _render(actor, updated)


@router.post("/{kind}/{record_id}/operator/accept")
async def accept_assignment(
    kind: RecordKind,
    record_id: str,
    req: RespondRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    record = await _load(container, kind, record_id, actor, req.row_version)
    return _render(actor, await container.operators.accept(record, actor))


@router.post("/{kind}/{record_id}/operator/decline")
async def decline_assignment(
    kind: RecordKind,
    record_id: str,
    req: DeclineRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    record = await _load(container, kind, record_id, actor, req.row_version)
    return _render(actor, await container.operators.decline(record, actor, req.reason))
