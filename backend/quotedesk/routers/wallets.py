"""Wallets router — agent wallet balance, top-ups and credit limits."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from quotedesk.container import Container
from quotedesk.dependencies import get_container, get_current_actor
from quotedesk.errors import Unauthorized
from quotedesk.schemas.common import Actor

router = APIRouter()


class TopUpRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    reference: str


class CreditLimitRequest(BaseModel):
    credit_limit: Decimal = Field(ge=0)


def _wallet_view(account) -> dict:
    return {
        "agent_id": account.id,
        "name": account.name,
        "wallet_balance": account.wallet_balance,
        "credit_limit": account.credit_limit,
        "available_funds": account.available_funds,
        "transactions": [t.model_dump() for t in account.transactions],
    }


@router.get("/{agent_id}")
async def get_wallet(
    agent_id: str,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    if not actor.role.is_internal and actor.id != agent_id:
        raise Unauthorized("Wallets are visible to their agent and staff only")
    account = await container.wallet.get_or_create(agent_id)
    return _wallet_view(account)


@router.post("/{agent_id}/top-up")
async def top_up_wallet(
    agent_id: str,
    req: TopUpRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    account = await container.wallet.top_up(agent_id, req.amount, req.reference, actor)
    return _wallet_view(account)


@router.put("/{agent_id}/credit-limit")
async def set_credit_limit(
    agent_id: str,
    req: CreditLimitRequest,
    container: Container = Depends(get_container),
    actor: Actor = Depends(get_current_actor),
):
    account = await container.wallet.set_credit_limit(agent_id, req.credit_limit, actor)
    return _wallet_view(account)
