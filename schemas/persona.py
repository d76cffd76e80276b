"""Persona (companion) schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class PersonaSchema(BaseModel):
    """Companion persona as read by the chat pipeline."""

    id: str = Field(..., description="Companion ID")
    user_id: str = Field(..., description="ID of the user who created the companion")
    user_name: str = Field(..., description="Display name of the creator")
    name: str = Field(..., min_length=1, description="Companion display name")
    description: str = Field(default="", description="Short description")
    instructions: str = Field(..., description="Behavioral instructions, embedded verbatim in prompts")
    seed: str = Field(default="", description="Example conversation used to seed memory")
    src: Optional[str] = Field(default=None, description="Presentation (avatar) reference")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True, frozen=True)
