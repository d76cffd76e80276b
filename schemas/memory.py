"""Memory subsystem schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, ConfigDict


class CompanionKey(BaseModel):
    """
    Address of one memory log: a (persona, user, model) triple.

    Built from the request alone (companion id from the path, user id from
    the identity, model name from configuration), so no lookup is needed.
    """

    persona_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    model_name: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    @property
    def namespace(self) -> str:
        """Flat string form, used as the vector index namespace."""
        return f"{self.persona_id}-{self.model_name}-{self.user_id}"


class MemoryRecordSchema(BaseModel):
    """One unit of long-term context."""

    id: int = Field(..., description="Record ID")
    persona_id: str
    user_id: str
    model_name: str
    content: str = Field(..., description="Remembered text")
    created_at: datetime = Field(..., description="Insertion timestamp")

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    @property
    def key(self) -> CompanionKey:
        return CompanionKey(
            persona_id=self.persona_id,
            user_id=self.user_id,
            model_name=self.model_name,
        )
