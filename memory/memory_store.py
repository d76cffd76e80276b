"""
Memory store - long-term conversational context per (persona, user, model).

Combines:
- An ordered, append-only log in the database (source of truth)
- An optional Pinecone index for similarity search over the same records

Records are append-only and recall is a snapshot read. The one
check-then-write step, seeding an empty log, is serialized per key.
"""

import asyncio
import weakref
from typing import List, Optional

from sqlalchemy import select, desc, exists
from sqlalchemy.exc import SQLAlchemyError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from core import get_logger, PersistenceError
from memory.database_async import AsyncDatabase
from memory.models import MemoryRecord
from memory.vector_store import VectorStore
from schemas import CompanionKey, MemoryRecordSchema

logger = get_logger(__name__)


class MemoryStore:
    """Append/recall interface over the memory log for one companion key."""

    def __init__(
        self,
        db: AsyncDatabase,
        vector_store: Optional[VectorStore] = None,
        recall_limit: int = 30,
    ):
        self.db = db
        self.vector_store = vector_store
        self.vector_store_available = vector_store is not None
        self.recall_limit = recall_limit

        # Held only while some request is seeding that key
        self._seed_locks: "weakref.WeakValueDictionary[CompanionKey, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

        if self.vector_store_available:
            logger.info("Memory store initialized with vector store")
        else:
            logger.info("Memory store initialized without vector store")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(PersistenceError),
        reraise=True,
    )
    async def recall(self, key: CompanionKey, limit: Optional[int] = None) -> List[MemoryRecordSchema]:
        """
        Get the most recent records for a key, oldest first.

        An unknown key simply has no records.

        Args:
            key: Companion key
            limit: Max records (defaults to the configured recall limit)

        Returns:
            List of MemoryRecordSchema in insertion order
        """
        limit = self.recall_limit if limit is None else limit
        if limit <= 0:
            return []

        try:
            async with self.db.get_session() as session:
                result = await session.execute(
                    select(MemoryRecord)
                    .where(
                        MemoryRecord.persona_id == key.persona_id,
                        MemoryRecord.user_id == key.user_id,
                        MemoryRecord.model_name == key.model_name,
                    )
                    .order_by(desc(MemoryRecord.created_at), desc(MemoryRecord.id))
                    .limit(limit)
                )
                records = result.scalars().all()
                # Reverse to get chronological order
                return [MemoryRecordSchema.model_validate(r) for r in reversed(records)]

        except SQLAlchemyError as e:
            logger.error("Failed to recall memory", namespace=key.namespace, error=str(e))
            raise PersistenceError("recall memory", details=str(e))

    async def remember(self, text: str, key: CompanionKey) -> MemoryRecordSchema:
        """
        Append one record to the key's log.

        Not retried here: a blind retry after an ambiguous failure could
        write the same record twice. Indexing failures are logged only.

        Raises:
            PersistenceError: If the database write fails
        """
        try:
            async with self.db.get_session() as session:
                record = MemoryRecord(
                    persona_id=key.persona_id,
                    user_id=key.user_id,
                    model_name=key.model_name,
                    content=text,
                )
                session.add(record)
                await session.flush()
                stored = MemoryRecordSchema.model_validate(record)

        except SQLAlchemyError as e:
            logger.error("Failed to write memory", namespace=key.namespace, error=str(e))
            raise PersistenceError("write memory", details=str(e))

        logger.debug("Remembered", namespace=key.namespace, record_id=stored.id, text_length=len(text))

        if self.vector_store_available and text.strip():
            try:
                await asyncio.to_thread(
                    self.vector_store.add_memory,
                    key,
                    f"{key.namespace}-{stored.id}",
                    text,
                    {"created_at": stored.created_at.isoformat()},
                )
            except Exception as e:
                # Don't fail the write if indexing fails
                logger.warning("Failed to index memory", namespace=key.namespace, error=str(e))

        return stored

    async def seed(self, seed_text: str, key: CompanionKey, delimiter: str = "\n\n") -> int:
        """
        Seed an empty log with a persona's example conversation.

        Each delimiter-separated block becomes one record, in order. A log
        that already has records is left untouched.

        Returns:
            Number of records written
        """
        blocks = [block for block in seed_text.split(delimiter) if block.strip()]
        if not blocks:
            return 0

        try:
            async with self.db.get_session() as session:
                already_seeded = await session.scalar(
                    select(
                        exists().where(
                            MemoryRecord.persona_id == key.persona_id,
                            MemoryRecord.user_id == key.user_id,
                            MemoryRecord.model_name == key.model_name,
                        )
                    )
                )
                if already_seeded:
                    logger.debug("Memory already present, skipping seed", namespace=key.namespace)
                    return 0

                session.add_all(
                    [
                        MemoryRecord(
                            persona_id=key.persona_id,
                            user_id=key.user_id,
                            model_name=key.model_name,
                            content=block,
                        )
                        for block in blocks
                    ]
                )
        except SQLAlchemyError as e:
            logger.error("Failed to seed memory", namespace=key.namespace, error=str(e))
            raise PersistenceError("seed memory", details=str(e))

        logger.info("Seeded memory", namespace=key.namespace, records=len(blocks))
        return len(blocks)

    async def recall_or_seed(
        self, key: CompanionKey, seed_text: str, limit: Optional[int] = None
    ) -> List[MemoryRecordSchema]:
        """
        Recall a key's log, seeding it first if it is empty.

        Concurrent first requests for the same key seed once: the empty
        check and the seed write run under a per-key lock.
        """
        records = await self.recall(key, limit)
        if records or not seed_text.strip():
            return records

        lock = self._seed_locks.setdefault(key, asyncio.Lock())
        async with lock:
            records = await self.recall(key, limit)
            if not records:
                await self.seed(seed_text, key)
                records = await self.recall(key, limit)
        return records

    async def search_relevant(self, key: CompanionKey, query: str, k: int = 3) -> List[str]:
        """
        Semantically similar memories for a query.

        Returns an empty list when the vector store is unavailable or fails.
        """
        if not self.vector_store_available or k <= 0 or not query.strip():
            return []

        try:
            matches = await asyncio.to_thread(self.vector_store.search_memories, key, query, k)
        except Exception as e:
            logger.error("Failed to search memories", namespace=key.namespace, error=str(e))
            return []  # Return empty list on error rather than failing

        return [m["text"] for m in matches if m.get("text")]
