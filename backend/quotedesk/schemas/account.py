from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from quotedesk.schemas.common import Record, utcnow


class Company(Record):
    """Legal entity issuing receipts; owns the receipt number sequence."""

    name: str
    receipt_prefix: str = "RCPT-"
    next_receipt_number: int = 1


class WalletTransaction(BaseModel):
    amount: Decimal  # positive = credit, negative = debit
    reference: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class AgentAccount(Record):
    """Agent wallet. The id is the agent's user id."""

    name: str
    wallet_balance: Decimal = Decimal("0")
    credit_limit: Decimal = Decimal("0")
    transactions: list[WalletTransaction] = Field(default_factory=list)

    @property
    def available_funds(self) -> Decimal:
        return self.wallet_balance + self.credit_limit
