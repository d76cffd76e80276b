"""
Pydantic schemas for type-safe data transfer.
"""

from schemas.user import IdentitySchema, ChatRequestSchema
from schemas.persona import PersonaSchema
from schemas.conversation import TurnSchema, TurnCreateSchema, TranscriptSchema
from schemas.memory import CompanionKey, MemoryRecordSchema

__all__ = [
    "IdentitySchema",
    "ChatRequestSchema",
    "PersonaSchema",
    "TurnSchema",
    "TurnCreateSchema",
    "TranscriptSchema",
    "CompanionKey",
    "MemoryRecordSchema",
]
