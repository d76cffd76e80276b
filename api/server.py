import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse

from agents.chat_pipeline import ChatPipeline
from api.identity import HeaderIdentityProvider, IdentityProvider
from config.settings import Settings, settings
from core import (
    configure_logging,
    ConfigurationError,
    RateLimitedError,
    RecordNotFoundError,
    UnauthorizedError,
    VectorStoreConnectionError,
)
from memory.conversation_store import ConversationStore
from memory.database_async import AsyncDatabase
from memory.memory_store import MemoryStore
from memory.vector_store import VectorStore
from schemas import ChatRequestSchema, TranscriptSchema
from utils.llm_client import InferenceClient
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Process-wide collaborators, built once at startup."""

    pipeline: ChatPipeline
    conversations: ConversationStore
    db: Optional[AsyncDatabase] = None


def build_components(config: Settings) -> Components:
    """
    Composition root: wire the stores, limiter and inference client.

    Raises:
        ConfigurationError: If semantic memory is half configured
    """
    if config.PINECONE_API_KEY and not config.OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY", "required for embeddings when PINECONE_API_KEY is set")

    db = AsyncDatabase(config.DATABASE_URL, echo=config.LOG_LEVEL == "DEBUG")

    vector_store = None
    if config.PINECONE_API_KEY:
        try:
            vector_store = VectorStore(
                pinecone_api_key=config.PINECONE_API_KEY,
                openai_api_key=config.OPENAI_API_KEY,
                index_name=config.PINECONE_INDEX,
            )
        except VectorStoreConnectionError as e:
            logger.warning(f"Vector store initialization failed, running without semantic search: {e}")

    conversations = ConversationStore(db)
    pipeline = ChatPipeline(
        rate_limiter=RateLimiter(
            max_requests=config.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        ),
        conversations=conversations,
        memory=MemoryStore(db, vector_store=vector_store, recall_limit=config.MEMORY_RECALL_LIMIT),
        inference=InferenceClient(
            api_key=config.REPLICATE_API_TOKEN,
            timeout=config.INFERENCE_TIMEOUT_SECONDS,
            stream=config.INFERENCE_STREAM,
        ),
        model_id=config.MODEL_CONVERSATION,
        memory_model_name=config.MEMORY_MODEL_NAME,
        memory_search_k=config.MEMORY_SEARCH_K,
        stream_queue_size=config.STREAM_QUEUE_SIZE,
    )
    return Components(pipeline=pipeline, conversations=conversations, db=db)


def create_app(
    components: Optional[Components] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Build the API. Pass ``components`` to skip building them from settings
    (tests do this); otherwise they are created on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(log_level=settings.LOG_LEVEL, json_logs=settings.is_production)
        logger.info("Starting up companion chat API...")

        if app.state.components is None:
            app.state.components = build_components(settings)

        yield

        logger.info("Shutting down...")
        await app.state.components.pipeline.drain()
        if app.state.components.db is not None:
            await app.state.components.db.dispose()

    app = FastAPI(title="Companion Chat API", lifespan=lifespan)
    app.state.components = components
    app.state.identity_provider = identity_provider or HeaderIdentityProvider()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok"}

    @app.post("/api/chat/{companion_id}")
    async def chat(companion_id: str, body: ChatRequestSchema, request: Request):
        """Send a message to a companion and stream the reply as plain text."""
        components: Components = request.app.state.components
        identity = await request.app.state.identity_provider.current_identity(request)

        try:
            stream = await components.pipeline.handle(
                companion_id=companion_id,
                prompt=body.prompt,
                identity=identity,
                route=request.url.path,
            )
        except UnauthorizedError:
            return PlainTextResponse("Unauthorized", status_code=401)
        except RateLimitedError:
            return PlainTextResponse("Rate limit exceeded", status_code=429)
        except RecordNotFoundError:
            logger.warning(f"Chat for unknown companion {companion_id}")
            return PlainTextResponse("Internal Error", status_code=500)
        except Exception as e:
            logger.error(f"[CHAT_POST] {e}", exc_info=True)
            return PlainTextResponse("Internal Error", status_code=500)

        return StreamingResponse(stream, media_type="text/plain; charset=utf-8")

    @app.get("/api/chat/{companion_id}/turns", response_model=TranscriptSchema)
    async def list_turns(companion_id: str, request: Request):
        """The caller's transcript with a companion, oldest first."""
        components: Components = request.app.state.components
        identity = await request.app.state.identity_provider.current_identity(request)
        if identity is None or not identity.is_complete:
            return PlainTextResponse("Unauthorized", status_code=401)

        try:
            persona = await components.conversations.get_persona(companion_id)
            if persona is None:
                return PlainTextResponse("Not Found", status_code=404)
            turns = await components.conversations.list_turns(companion_id)
        except Exception as e:
            logger.error(f"Error fetching turns for {companion_id}: {e}")
            return PlainTextResponse("Internal Error", status_code=500)

        return TranscriptSchema(
            companion_id=companion_id,
            turns=[t for t in turns if t.user_id == identity.id],
        )

    return app


app = create_app()
