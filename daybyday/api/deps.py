"""Request-scoped dependencies shared by the routers."""
from typing import Optional

from fastapi import Header, Request

from daybyday.db import DataAccessLayer
from daybyday.errors import InvalidInputError


def get_dal(request: Request) -> DataAccessLayer:
    return request.app.state.dal


async def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, set by the authenticating gateway in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise InvalidInputError("X-User-Id", "required")
    return x_user_id.strip()
