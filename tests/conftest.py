"""
Shared pytest fixtures for companion chat tests.
"""

import os

# Settings are validated at import time
os.environ.setdefault("REPLICATE_API_TOKEN", "test-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

import pytest
from unittest.mock import AsyncMock

from agents.chat_pipeline import ChatPipeline
from memory.conversation_store import ConversationStore
from memory.database_async import AsyncDatabase
from memory.memory_store import MemoryStore
from schemas import CompanionKey, IdentitySchema
from utils.llm_client import InferenceClient
from utils.rate_limiter import RateLimiter


ELON_INSTRUCTIONS = (
    "You are Elon Musk, founder of SpaceX, Tesla, HyperLoop and Neuralink. "
    "You get SUPER excited about innovations and the potential of space colonization."
)

ELON_SEED = (
    "Human: Hi Elon, how's your day been?\n"
    "Elon: Busy as always. Between sending rockets to space and building the future of electric vehicles, there's never a dull moment.\n\n"
    "Human: What's the most exciting project you're working on right now?\n"
    "Elon: Starship. Making humanity multiplanetary is the goal."
)

MODEL_ID = "replicate/meta/llama-2-13b-chat"
MEMORY_MODEL = "llama2-13b"


# --- Database fixtures ---

@pytest.fixture
async def database(tmp_path):
    """A fresh SQLite database per test."""
    db = AsyncDatabase(f"sqlite+aiosqlite:///{tmp_path / 'companion.db'}")
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
def conversation_store(database):
    return ConversationStore(database)


@pytest.fixture
def memory_store(database):
    return MemoryStore(database, recall_limit=30)


@pytest.fixture
async def persona(conversation_store):
    """A companion without a seed conversation."""
    return await conversation_store.create_persona(
        user_id="creator_1",
        user_name="Creator",
        name="Elon",
        instructions=ELON_INSTRUCTIONS,
        description="CEO & Founder of Tesla, SpaceX",
    )


@pytest.fixture
async def seeded_persona(conversation_store):
    """A companion with a seed conversation."""
    return await conversation_store.create_persona(
        user_id="creator_1",
        user_name="Creator",
        name="Elon",
        instructions=ELON_INSTRUCTIONS,
        seed=ELON_SEED,
    )


# --- Identity fixtures ---

@pytest.fixture
def identity():
    return IdentitySchema(id="user_42", display_name="Ada")


@pytest.fixture
def companion_key(persona, identity):
    return CompanionKey(persona_id=persona.id, user_id=identity.id, model_name=MEMORY_MODEL)


# --- Mock inference client ---

@pytest.fixture
def mock_inference():
    """Inference client that never touches the network."""
    client = AsyncMock(spec=InferenceClient)
    client.invoke = AsyncMock(return_value="  Hello there, friend!\n*grins* Ready for launch?  ")
    return client


# --- Pipeline ---

@pytest.fixture
def rate_limiter():
    return RateLimiter(max_requests=10, window_seconds=10)


@pytest.fixture
def pipeline(rate_limiter, conversation_store, memory_store, mock_inference):
    return ChatPipeline(
        rate_limiter=rate_limiter,
        conversations=conversation_store,
        memory=memory_store,
        inference=mock_inference,
        model_id=MODEL_ID,
        memory_model_name=MEMORY_MODEL,
        memory_search_k=0,
        stream_queue_size=2,
    )


@pytest.fixture
def drain():
    """Collect every chunk of a ChatStream."""

    async def _drain(stream) -> list[str]:
        return [chunk async for chunk in stream]

    return _drain
