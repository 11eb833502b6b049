import secrets
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict

from quotedesk.errors import Unauthorized


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_share_token() -> str:
    return secrets.token_urlsafe(16)


class Role(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    AGENT = "AGENT"
    OPERATOR = "OPERATOR"
    HOTEL_PARTNER = "HOTEL_PARTNER"
    CLIENT = "CLIENT"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Resolve a role string. Unknown roles are denied, never defaulted."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise Unauthorized(f"Unknown role '{value}'", role=value)

    @property
    def is_internal(self) -> bool:
        return self in (Role.ADMIN, Role.STAFF)


class Actor(BaseModel):
    """The authenticated party performing an operation or viewing a record."""

    id: str
    name: str
    role: Role
    # Set only for public client links; scopes the viewer to one shared lineage
    share_token: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def public_client(cls, share_token: str | None = None) -> "Actor":
        return cls(id="public_client", name="Client", role=Role.CLIENT, share_token=share_token)


SYSTEM_SENDER_ID = "system"


class Record(BaseModel):
    """Base for persisted entities. `row_version` is the compare-and-swap token."""

    id: str
    row_version: int = 0
