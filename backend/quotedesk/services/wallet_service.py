"""Wallet service — agent prepaid balance with an optional credit line."""

import logging
from decimal import Decimal

from quotedesk.errors import ConcurrentModification, InsufficientFunds, ValidationError
from quotedesk.interfaces import Repository
from quotedesk.schemas.account import AgentAccount, WalletTransaction
from quotedesk.schemas.audit import EntityType
from quotedesk.schemas.common import Actor
from quotedesk.services import permissions
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.permissions import Action

logger = logging.getLogger(__name__)

REVERSAL_ATTEMPTS = 3


class WalletService:
    def __init__(self, accounts: Repository[AgentAccount], audit: AuditRecorder):
        self.accounts = accounts
        self.audit = audit

    async def get_or_create(self, agent_id: str, name: str = "") -> AgentAccount:
        account = await self.accounts.get(agent_id)
        if account is None:
            account = await self.accounts.save(
                AgentAccount(id=agent_id, name=name or agent_id), expected_version=None
            )
        return account

    async def top_up(self, agent_id: str, amount: Decimal, reference: str, actor: Actor) -> AgentAccount:
        permissions.require(actor, Action.MANAGE_WALLET)
        if amount <= 0:
            raise ValidationError("Top-up amount must be positive", amount=str(amount))
        account = await self.get_or_create(agent_id)
        return await self._apply(account, amount, reference, actor, "WALLET_TOP_UP")

    async def set_credit_limit(self, agent_id: str, credit_limit: Decimal, actor: Actor) -> AgentAccount:
        permissions.require(actor, Action.MANAGE_WALLET)
        if credit_limit < 0:
            raise ValidationError("Credit limit cannot be negative", credit_limit=str(credit_limit))
        account = await self.get_or_create(agent_id)
        saved = await self.accounts.save(
            account.model_copy(update={"credit_limit": credit_limit}),
            expected_version=account.row_version,
        )
        await self.audit.record(
            EntityType.WALLET, agent_id, "CREDIT_LIMIT_SET", actor,
            previous_value={"credit_limit": str(account.credit_limit)},
            new_value={"credit_limit": str(credit_limit)},
        )
        return saved

    async def debit(self, agent_id: str, amount: Decimal, reference: str, actor: Actor) -> AgentAccount:
        """Deduct from the wallet. The balance may go negative down to the credit limit."""
        if amount <= 0:
            raise ValidationError("Debit amount must be positive", amount=str(amount))
        account = await self.get_or_create(agent_id)
        if amount > account.available_funds:
            raise InsufficientFunds(
                f"Wallet of {agent_id} cannot cover {amount}",
                agent_id=agent_id,
                amount=str(amount),
                available=str(account.available_funds),
            )
        return await self._apply(account, -amount, reference, actor, "WALLET_DEBIT")

    async def reverse_debit(self, agent_id: str, amount: Decimal, reference: str, actor: Actor) -> AgentAccount:
        """Give back a debit whose payment was never recorded. Re-reads the account on conflict."""
        attempt = 1
        while True:
            account = await self.get_or_create(agent_id)
            try:
                return await self._apply(account, amount, f"Reversal: {reference}", actor, "WALLET_DEBIT_REVERSED")
            except ConcurrentModification:
                if attempt >= REVERSAL_ATTEMPTS:
                    logger.error(f"Could not reverse debit of {amount} on wallet {agent_id} ({reference})")
                    raise
                attempt += 1

    async def _apply(
        self, account: AgentAccount, amount: Decimal, reference: str, actor: Actor, action: str
    ) -> AgentAccount:
        updated = account.model_copy(update={
            "wallet_balance": account.wallet_balance + amount,
            "transactions": [*account.transactions, WalletTransaction(amount=amount, reference=reference)],
        })
        saved = await self.accounts.save(updated, expected_version=account.row_version)
        await self.audit.record(
            EntityType.WALLET, account.id, action, actor,
            description=reference,
            previous_value={"wallet_balance": str(account.wallet_balance)},
            new_value={"wallet_balance": str(saved.wallet_balance)},
        )
        logger.info(f"Wallet {account.id}: {action} {amount} ({reference})")
        return saved
