"""
Chat pipeline - turns one user message into a streamed companion reply.

Flow:
1. Authorize the caller
2. Rate-limit on route + user
3. Persist the user turn (resolving the companion)
4. Recall memory and compose the prompt
5. Run inference
6. Normalize, start persisting the reply, hand back a stream
"""

import asyncio
from typing import List, Optional, Set

from agents.chat_stream import ChatStream
from agents.normalize import normalize_output, reassemble
from agents.pipeline_state import PipelineRun, PipelineState
from core import (
    get_logger,
    AICompanionException,
    RateLimitedError,
    UnauthorizedError,
)
from memory.conversation_store import ConversationStore
from memory.memory_store import MemoryStore
from prompts.companion import compose
from schemas import CompanionKey, IdentitySchema, PersonaSchema, TurnCreateSchema
from utils.llm_client import InferenceClient, InferenceParams
from utils.rate_limiter import RateLimiter

logger = get_logger(__name__)


class ChatPipeline:
    """
    Orchestrates one chat request across the limiter, stores and model.

    All collaborators are passed in; the application builds one pipeline at
    startup and shares it between requests. Nothing here is locked across
    requests: stores are append-only and the limiter guards its own counter.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        conversations: ConversationStore,
        memory: MemoryStore,
        inference: InferenceClient,
        model_id: str,
        memory_model_name: str,
        params: Optional[InferenceParams] = None,
        memory_search_k: int = 3,
        stream_queue_size: int = 16,
    ):
        self.rate_limiter = rate_limiter
        self.conversations = conversations
        self.memory = memory
        self.inference = inference
        self.model_id = model_id
        self.memory_model_name = memory_model_name
        self.params = params or InferenceParams()
        self.memory_search_k = memory_search_k
        self.stream_queue_size = stream_queue_size

        # Reply persistence tasks outlive their request if the client leaves
        self._background: Set[asyncio.Task] = set()

        logger.info("Chat pipeline initialized", model=model_id, memory_model=memory_model_name)

    def companion_key(self, companion_id: str, identity: IdentitySchema) -> CompanionKey:
        return CompanionKey(
            persona_id=companion_id,
            user_id=identity.id,
            model_name=self.memory_model_name,
        )

    async def handle(
        self,
        companion_id: str,
        prompt: str,
        identity: Optional[IdentitySchema],
        route: str,
    ) -> ChatStream:
        """
        Run the request up to the point where the reply can be streamed.

        Args:
            companion_id: Conversation/companion ID from the path
            prompt: The user's message
            identity: Resolved caller identity, or None
            route: Request path, scoping the rate limit per endpoint

        Returns:
            ChatStream ready to be consumed by the transport

        Raises:
            UnauthorizedError, RateLimitedError, RecordNotFoundError,
            PersistenceError, InferenceError: the request is aborted and
            nothing is streamed
        """
        run = PipelineRun(companion_id=companion_id)
        try:
            return await self._run(run, companion_id, prompt, identity, route)
        except AICompanionException as e:
            run.abort(e.error_code)
            e.context.setdefault("aborted_from", run.aborted_from.value)
            raise
        except asyncio.CancelledError:
            # Client went away; cancelling here also cancels an in-flight inference call
            run.abort("CLIENT_DISCONNECTED")
            raise
        except Exception:
            run.abort("INTERNAL_ERROR")
            raise

    async def _run(
        self,
        run: PipelineRun,
        companion_id: str,
        prompt: str,
        identity: Optional[IdentitySchema],
        route: str,
    ) -> ChatStream:
        if identity is None or not identity.is_complete:
            raise UnauthorizedError()
        run.advance(PipelineState.AUTHORIZED)

        identity_key = f"{route}-{identity.id}"
        if not await self.rate_limiter.check(identity_key):
            raise RateLimitedError(identity_key)
        run.advance(PipelineState.RATE_CHECKED)

        persona, _ = await self.conversations.find_persona_and_append_turn(
            companion_id,
            TurnCreateSchema(role="user", content=prompt, user_id=identity.id),
        )
        run.advance(PipelineState.USER_TURN_PERSISTED)

        key = self.companion_key(companion_id, identity)
        model_prompt = await self._compose(persona, key, prompt)
        run.advance(PipelineState.COMPOSED)

        logger.info(
            "Processing message",
            request_id=run.request_id,
            companion_id=companion_id,
            user_id=identity.id,
            message_preview=prompt[:50] if len(prompt) > 50 else prompt,
        )

        run.advance(PipelineState.INFERRING)
        raw = await self.inference.invoke(self.model_id, self.params, model_prompt)

        lines = normalize_output(raw)
        persistence = self._spawn(self._persist_reply(run, persona, identity, key, reassemble(lines)))
        run.advance(PipelineState.STREAMING)

        return ChatStream(run, lines, persistence, queue_size=self.stream_queue_size)

    async def _compose(self, persona: PersonaSchema, key: CompanionKey, prompt: str) -> str:
        records = await self.memory.recall_or_seed(key, persona.seed)

        relevant = await self.memory.search_relevant(key, prompt, k=self.memory_search_k)

        return compose(
            instructions=persona.instructions,
            name=persona.name,
            recalled_memory=[r.content for r in records],
            user_message=prompt,
            relevant_memory=relevant,
        )

    async def _persist_reply(
        self,
        run: PipelineRun,
        persona: PersonaSchema,
        identity: IdentitySchema,
        key: CompanionKey,
        content: str,
    ) -> List[str]:
        """
        Write the reply once to memory and once as a system turn.

        Returns:
            Names of the writes that failed (empty on success)
        """
        results = await asyncio.gather(
            self.memory.remember(content, key),
            self.conversations.append_turn(
                persona.id,
                TurnCreateSchema(role="system", content=content, user_id=identity.id),
            ),
            return_exceptions=True,
        )

        failures = []
        for target, result in zip(("memory", "system_turn"), results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to persist reply",
                    request_id=run.request_id,
                    companion_id=persona.id,
                    target=target,
                    error=str(result),
                )
                failures.append(target)
        return failures

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight reply persistence, e.g. at shutdown."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
