"""Conversation turn schemas."""

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field, ConfigDict


class TurnBaseSchema(BaseModel):
    """Base turn schema."""

    role: Literal["user", "system"] = Field(..., description="Turn role")
    # Empty content is allowed for system turns produced from empty model output
    content: str = Field(..., description="Turn content")


class TurnCreateSchema(TurnBaseSchema):
    """Schema for appending a turn to a conversation."""

    user_id: str = Field(..., min_length=1, description="Author identity ID")


class TurnSchema(TurnBaseSchema):
    """Complete turn schema."""

    id: int = Field(..., description="Turn ID")
    companion_id: str = Field(..., description="Conversation (companion) ID")
    user_id: str = Field(..., description="Author identity ID")
    created_at: datetime = Field(..., description="Creation timestamp")

    model_config = ConfigDict(from_attributes=True)


class TranscriptSchema(BaseModel):
    """Ordered transcript of a conversation."""

    companion_id: str
    turns: List[TurnSchema] = Field(default_factory=list)
