"""Identity and chat request schemas."""

from pydantic import BaseModel, Field


class IdentitySchema(BaseModel):
    """Caller identity resolved by the identity provider."""

    id: str = Field(..., description="Opaque user ID")
    display_name: str = Field(..., description="User's display name")

    @property
    def is_complete(self) -> bool:
        """Both fields must be non-empty for any chat call."""
        return bool(self.id.strip()) and bool(self.display_name.strip())


class ChatRequestSchema(BaseModel):
    """Body of a chat request."""

    prompt: str = Field(..., description="The user's new message")
