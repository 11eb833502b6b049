import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from quotedesk.schemas.common import Role, utcnow


class EntityType(str, Enum):
    QUOTE = "QUOTE"
    BOOKING = "BOOKING"
    PAYMENT = "PAYMENT"
    OPERATOR_ASSIGNMENT = "OPERATOR_ASSIGNMENT"
    CANCELLATION = "CANCELLATION"
    WALLET = "WALLET"


class AuditLogEntry(BaseModel):
    """Write-once record of a state transition."""

    id: str = Field(default_factory=lambda: f"log_{uuid.uuid4().hex[:12]}")
    entity_type: EntityType
    entity_id: str
    action: str
    actor_id: str
    actor_role: Role
    actor_name: str
    description: str = ""
    previous_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)
