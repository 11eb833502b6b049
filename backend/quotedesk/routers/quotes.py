"""Quotes router — quote lifecycle, chat and conversion to booking."""

from datetime import date

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from quotedesk.container import Container
from quotedesk.dependencies import get_container, get_current_actor
from quotedesk.errors import Unauthorized
from quotedesk.schemas.booking import Traveler
from quotedesk.schemas.common import Actor, Role
from quotedesk.schemas.quote import ItineraryItem, PricingRules, Quote, QuoteUpdate
from quotedesk.services import permissions
from quotedesk.services.permissions import Action
from quotedesk.services.visibility import redact_booking, redact_quote, render_transcript

router = APIRouter()


class CreateQuoteRequest(BaseModel):
    destination: str
    pax_count: int = Field(default=1, ge=1)
    travel_date: date | None = None
    currency: str | None = None
    lead_guest_name: str | None = None
    itinerary: list[ItineraryItem] = Field(default_factory=list)
    pricing_rules: PricingRules | None = None
    # Staff creating on behalf of an agent
    agent_id: str | None = None
    agent_name: str | None = None


class VersionedRequest(BaseModel):
    row_version: int  # version the caller read


class UpdateQuoteRequest(QuoteUpdate):
    row_version: int


class ReasonRequest(VersionedRequest):
    reason: str


class MessageRequest(VersionedRequest):
    content: str


class ConvertRequest(VersionedRequest):
    travelers: list[Traveler] = Field(default_factory=list)


async def _load(container: Container, quote_id: str, actor: Actor, row_version: int | None = None) -> Quote:
    """Fetch a quote the actor may see, pinned to the row_version the caller read."""
    quote = await container.quotes.get(quote_id)
    permissions.require(actor, Action.VIEW, quote)
    if row_version is not None:
        quote = quote.model_copy(update={"row_version": row_version})
    return quote


@router.get("")
async def list_quotes(
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quotes = await container.quotes.list_for(actor)
    return [redact_quote(actor, q) for q in quotes]


@router.post("", status_code=201)
async def create_quote(
    req: CreateQuoteRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    agent = None
    if req.agent_id:
        if not actor.role.is_internal:
            raise Unauthorized("Only staff may create quotes on behalf of an agent")
        agent = Actor(id=req.agent_id, name=req.agent_name or req.agent_id, role=Role.AGENT)
    quote = await container.quotes.create_quote(
        actor,
        destination=req.destination,
        pax_count=req.pax_count,
        travel_date=req.travel_date,
        currency=req.currency,
        lead_guest_name=req.lead_guest_name,
        itinerary=req.itinerary,
        pricing_rules=req.pricing_rules,
        agent=agent,
    )
    return redact_quote(actor, quote)


@router.get("/{quote_id}")
async def get_quote(
    quote_id: str,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor)
    return redact_quote(actor, quote)


@router.get("/{quote_id}/history")
async def get_quote_history(
    quote_id: str,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    """All versions of the quote's lineage the actor may see, oldest first."""
    quote = await _load(container, quote_id, actor)
    lineage = await container.quotes.history(quote.unique_ref_no)
    return [redact_quote(actor, q) for q in lineage if permissions.can(actor, Action.VIEW, q)]


@router.get("/{quote_id}/transcript", response_class=PlainTextResponse)
async def get_transcript(
    quote_id: str,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor)
    return render_transcript(actor, quote.messages)


@router.patch("/{quote_id}")
async def update_quote(
    quote_id: str,
    req: UpdateQuoteRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    changes = QuoteUpdate(**req.model_dump(exclude={"row_version"}, exclude_unset=True))
    updated = await container.quotes.update_quote(quote, actor, changes)
    return redact_quote(actor, updated)


@router.post("/{quote_id}/submit")
async def submit_quote(
    quote_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.submit(quote, actor))


@router.post("/{quote_id}/approve")
async def approve_quote(
    quote_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.approve(quote, actor))


@router.post("/{quote_id}/reject")
async def reject_quote(
    quote_id: str,
    req: ReasonRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.reject(quote, actor, req.reason))


@router.post("/{quote_id}/cancel")
async def cancel_quote(
    quote_id: str,
    req: ReasonRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.cancel(quote, actor, req.reason))


@router.post("/{quote_id}/revisions", status_code=201)
async def create_revision(
    quote_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.create_revision(quote, actor))


@router.post("/{quote_id}/duplicate", status_code=201)
async def duplicate_quote(
    quote_id: str,
    req: VersionedRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.duplicate(quote, actor))


@router.post("/{quote_id}/messages")
async def post_message(
    quote_id: str,
    req: MessageRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    return redact_quote(actor, await container.quotes.post_message(quote, actor, req.content))


@router.post("/{quote_id}/booking", status_code=201)
async def convert_to_booking(
    quote_id: str,
    req: ConvertRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    quote = await _load(container, quote_id, actor, req.row_version)
    booking = await container.converter.from_quote(quote, req.travelers, actor)
    return redact_booking(actor, booking)
