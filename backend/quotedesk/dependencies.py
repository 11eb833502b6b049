from fastapi import Header, Request

from quotedesk.container import Container
from quotedesk.errors import Unauthorized
from quotedesk.schemas.common import Actor, Role


def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_current_actor(
    x_actor_id: str | None = Header(None),
    x_actor_name: str | None = Header(None),
    x_actor_role: str | None = Header(None),
    x_share_token: str | None = Header(None),
) -> Actor:
    """Resolve the caller from gateway headers.

    No identity means the public client viewer, who can open only the records
    behind the share token it presents.
    """
    if not x_actor_id and not x_actor_role:
        return Actor.public_client(x_share_token)
    if not x_actor_id or not x_actor_role:
        raise Unauthorized("Both X-Actor-Id and X-Actor-Role are required")
    role = Role.parse(x_actor_role)
    return Actor(id=x_actor_id, name=x_actor_name or x_actor_id, role=role)
