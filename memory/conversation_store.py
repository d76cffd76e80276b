"""
Conversation store - durable, append-only transcript of companion chats.
"""

from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from core import get_logger, PersistenceError, RecordNotFoundError
from memory.database_async import AsyncDatabase
from memory.models import Companion, Message
from schemas import PersonaSchema, TurnCreateSchema, TurnSchema

logger = get_logger(__name__)


class ConversationStore:
    """
    Relational store of conversation turns keyed by companion ID.

    Turns are never updated or deleted. Transcript order is creation order,
    with the autoincrement ID breaking timestamp ties.
    """

    def __init__(self, db: AsyncDatabase):
        self.db = db

    # ==================== Personas ====================

    async def create_persona(
        self,
        user_id: str,
        user_name: str,
        name: str,
        instructions: str,
        description: str = "",
        seed: str = "",
        src: Optional[str] = None,
        persona_id: Optional[str] = None,
    ) -> PersonaSchema:
        """
        Create a companion record.

        Persona management belongs to the surrounding application; this
        exists for provisioning scripts and tests.
        """
        try:
            async with self.db.get_session() as session:
                companion = Companion(
                    user_id=user_id,
                    user_name=user_name,
                    name=name,
                    instructions=instructions,
                    description=description,
                    seed=seed,
                    src=src,
                )
                if persona_id:
                    companion.id = persona_id
                session.add(companion)
                await session.flush()
                logger.info("Created companion", companion_id=companion.id, name=name)
                return PersonaSchema.model_validate(companion)

        except SQLAlchemyError as e:
            logger.error("Failed to create companion", name=name, error=str(e))
            raise PersistenceError("create companion", details=str(e))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(PersistenceError),
        reraise=True,
    )
    async def get_persona(self, persona_id: str) -> Optional[PersonaSchema]:
        """Get a companion by ID, or None."""
        try:
            async with self.db.get_session() as session:
                companion = await session.get(Companion, persona_id)
                return PersonaSchema.model_validate(companion) if companion else None

        except SQLAlchemyError as e:
            logger.error("Failed to get companion", companion_id=persona_id, error=str(e))
            raise PersistenceError("get companion", details=str(e))

    # ==================== Turns ====================

    async def find_persona_and_append_turn(
        self, persona_id: str, turn: TurnCreateSchema
    ) -> Tuple[PersonaSchema, TurnSchema]:
        """
        Resolve a companion and append a turn to it in one transaction.

        Args:
            persona_id: Companion (conversation) ID
            turn: Turn to append

        Returns:
            Tuple of (persona, stored turn)

        Raises:
            RecordNotFoundError: If the companion does not exist
            PersistenceError: If the write fails
        """
        try:
            async with self.db.get_session() as session:
                companion = await session.get(Companion, persona_id)
                if companion is None:
                    logger.warning("Companion not found", companion_id=persona_id)
                    raise RecordNotFoundError("Companion", persona_id)

                message = Message(
                    companion_id=persona_id,
                    role=turn.role,
                    content=turn.content,
                    user_id=turn.user_id,
                )
                session.add(message)
                await session.flush()

                logger.debug(
                    "Appended turn",
                    companion_id=persona_id,
                    role=turn.role,
                    content_length=len(turn.content),
                )
                return PersonaSchema.model_validate(companion), TurnSchema.model_validate(message)

        except SQLAlchemyError as e:
            logger.error("Failed to append turn", companion_id=persona_id, role=turn.role, error=str(e))
            raise PersistenceError("append turn", details=str(e))

    async def append_turn(self, conversation_id: str, turn: TurnCreateSchema) -> TurnSchema:
        """Append a turn; raises RecordNotFoundError for an unknown companion."""
        _, stored = await self.find_persona_and_append_turn(conversation_id, turn)
        return stored

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(PersistenceError),
        reraise=True,
    )
    async def list_turns(self, conversation_id: str) -> List[TurnSchema]:
        """Get the full transcript of a conversation in creation order."""
        try:
            async with self.db.get_session() as session:
                result = await session.execute(
                    select(Message)
                    .where(Message.companion_id == conversation_id)
                    .order_by(Message.created_at, Message.id)
                )
                return [TurnSchema.model_validate(m) for m in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to list turns", companion_id=conversation_id, error=str(e))
            raise PersistenceError("list turns", details=str(e))
