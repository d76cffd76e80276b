"""
Identity provider for the API.

Identity is issued upstream: the auth proxy in front of this service
verifies the session and forwards the user as request headers.
"""

from typing import Optional, Protocol

from fastapi import Request

from schemas import IdentitySchema

USER_ID_HEADER = "X-User-Id"
USER_NAME_HEADER = "X-User-Name"


class IdentityProvider(Protocol):
    async def current_identity(self, request: Request) -> Optional[IdentitySchema]:
        ...


class HeaderIdentityProvider:
    """Reads the caller from headers set by the auth proxy."""

    def __init__(self, id_header: str = USER_ID_HEADER, name_header: str = USER_NAME_HEADER):
        self.id_header = id_header
        self.name_header = name_header

    async def current_identity(self, request: Request) -> Optional[IdentitySchema]:
        user_id = request.headers.get(self.id_header, "").strip()
        if not user_id:
            return None
        display_name = request.headers.get(self.name_header, "").strip()
        return IdentitySchema(id=user_id, display_name=display_name)
