"""
End-to-end pipeline tests: real SQLite stores, mocked inference.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agents.chat_pipeline import ChatPipeline
from agents.pipeline_state import PipelineState
from core import (
    InferenceError,
    PersistenceError,
    RateLimitedError,
    RecordNotFoundError,
    UnauthorizedError,
)
from schemas import CompanionKey, IdentitySchema
from utils.rate_limiter import RateLimiter

ROUTE = "/api/chat/companion"


class TestSuccessfulReply:

    async def test_streams_normalized_lines_in_order(self, pipeline, persona, identity, drain):
        stream = await pipeline.handle(persona.id, "Hi Elon", identity, ROUTE)

        chunks = await drain(stream)

        assert chunks == ["Hello there friend!\n", "grins Ready for launch?\n"]
        assert stream.state == PipelineState.FINALIZED

    async def test_persists_exactly_one_user_and_one_system_turn(
        self, pipeline, persona, identity, conversation_store, drain
    ):
        stream = await pipeline.handle(persona.id, "Hi Elon", identity, ROUTE)
        chunks = await drain(stream)

        turns = await conversation_store.list_turns(persona.id)

        assert [t.role for t in turns] == ["user", "system"]
        assert turns[0].content == "Hi Elon"
        assert turns[1].content == stream.content
        assert "".join(chunks).split("\n")[:-1] == turns[1].content.split("\n")
        assert all(t.user_id == identity.id for t in turns)

    async def test_remembers_reply_once(self, pipeline, persona, identity, memory_store, drain):
        stream = await pipeline.handle(persona.id, "Hi Elon", identity, ROUTE)
        await drain(stream)

        key = CompanionKey(persona_id=persona.id, user_id=identity.id, model_name="llama2-13b")
        records = await memory_store.recall(key)

        assert [r.content for r in records] == ["Hello there friend!\ngrins Ready for launch?"]

    async def test_state_history(self, pipeline, persona, identity, drain):
        stream = await pipeline.handle(persona.id, "Hi", identity, ROUTE)
        await drain(stream)

        assert stream.run.history == [
            PipelineState.RECEIVED,
            PipelineState.AUTHORIZED,
            PipelineState.RATE_CHECKED,
            PipelineState.USER_TURN_PERSISTED,
            PipelineState.COMPOSED,
            PipelineState.INFERRING,
            PipelineState.STREAMING,
            PipelineState.FINALIZED,
        ]

    async def test_prompt_contains_persona_and_memory(
        self, pipeline, persona, identity, mock_inference, memory_store, drain
    ):
        key = CompanionKey(persona_id=persona.id, user_id=identity.id, model_name="llama2-13b")
        await memory_store.remember("We once talked about Mars.", key)

        await drain(await pipeline.handle(persona.id, "Tell me more", identity, ROUTE))

        model_id, params, prompt = mock_inference.invoke.call_args.args
        assert model_id == "replicate/meta/llama-2-13b-chat"
        assert params.top_k == 50
        assert persona.instructions in prompt
        assert "We once talked about Mars." in prompt
        assert prompt.endswith("Tell me more\nElon:")

    async def test_seed_fills_empty_memory(
        self, pipeline, seeded_persona, identity, mock_inference, memory_store, drain
    ):
        await drain(await pipeline.handle(seeded_persona.id, "Hey", identity, ROUTE))

        prompt = mock_inference.invoke.call_args.args[2]
        assert "Human: Hi Elon, how's your day been?" in prompt

        key = CompanionKey(persona_id=seeded_persona.id, user_id=identity.id, model_name="llama2-13b")
        records = await memory_store.recall(key)
        # Two seed blocks, then the reply
        assert len(records) == 3

    async def test_empty_normalized_output_persists_empty_turn(
        self, pipeline, persona, identity, mock_inference, conversation_store, memory_store, drain
    ):
        mock_inference.invoke.return_value = " *** "

        stream = await pipeline.handle(persona.id, "Hi", identity, ROUTE)
        chunks = await drain(stream)

        assert chunks == []
        assert stream.state == PipelineState.FINALIZED
        turns = await conversation_store.list_turns(persona.id)
        assert [(t.role, t.content) for t in turns] == [("user", "Hi"), ("system", "")]

    async def test_many_lines_through_small_queue(self, pipeline, persona, identity, mock_inference, drain):
        mock_inference.invoke.return_value = "\n".join(f"line {i}" for i in range(40))

        chunks = await drain(await pipeline.handle(persona.id, "Hi", identity, ROUTE))

        assert chunks == [f"line {i}\n" for i in range(40)]


class TestRejectedRequests:

    @pytest.mark.parametrize(
        "caller",
        [None, IdentitySchema(id="", display_name="Ada"), IdentitySchema(id="user_42", display_name=" ")],
    )
    async def test_unauthorized_writes_nothing(
        self, pipeline, persona, caller, conversation_store, mock_inference
    ):
        with pytest.raises(UnauthorizedError) as exc_info:
            await pipeline.handle(persona.id, "Hi", caller, ROUTE)

        assert exc_info.value.context["aborted_from"] == "received"
        assert await conversation_store.list_turns(persona.id) == []
        mock_inference.invoke.assert_not_called()

    async def test_rate_limited_writes_nothing_and_skips_inference(
        self, conversation_store, memory_store, mock_inference, persona, identity, drain
    ):
        pipeline = ChatPipeline(
            rate_limiter=RateLimiter(max_requests=1, window_seconds=60),
            conversations=conversation_store,
            memory=memory_store,
            inference=mock_inference,
            model_id="replicate/meta/llama-2-13b-chat",
            memory_model_name="llama2-13b",
            memory_search_k=0,
        )
        await drain(await pipeline.handle(persona.id, "first", identity, ROUTE))
        mock_inference.invoke.reset_mock()

        with pytest.raises(RateLimitedError):
            await pipeline.handle(persona.id, "second", identity, ROUTE)

        mock_inference.invoke.assert_not_called()
        turns = await conversation_store.list_turns(persona.id)
        assert [t.content for t in turns if t.role == "user"] == ["first"]

    async def test_rate_limit_is_per_route(self, conversation_store, memory_store, mock_inference, persona, identity, drain):
        pipeline = ChatPipeline(
            rate_limiter=RateLimiter(max_requests=1, window_seconds=60),
            conversations=conversation_store,
            memory=memory_store,
            inference=mock_inference,
            model_id="replicate/meta/llama-2-13b-chat",
            memory_model_name="llama2-13b",
        )
        first = await pipeline.handle(persona.id, "a", identity, "/api/chat/one")
        await drain(first)
        second = await pipeline.handle(persona.id, "b", identity, "/api/chat/two")
        await drain(second)

        assert first.state == PipelineState.FINALIZED
        assert second.state == PipelineState.FINALIZED

        with pytest.raises(RateLimitedError):
            await pipeline.handle(persona.id, "c", identity, "/api/chat/one")

    async def test_unknown_companion_is_not_found(self, pipeline, identity, mock_inference):
        with pytest.raises(RecordNotFoundError):
            await pipeline.handle("no-such-companion", "Hi", identity, ROUTE)

        mock_inference.invoke.assert_not_called()


class TestInferenceFailure:

    async def test_user_turn_kept_no_reply_written(
        self, pipeline, persona, identity, mock_inference, conversation_store, memory_store
    ):
        mock_inference.invoke.side_effect = InferenceError(model="m", details="remote 500")

        with pytest.raises(InferenceError) as exc_info:
            await pipeline.handle(persona.id, "Hi Elon", identity, ROUTE)

        assert exc_info.value.context["aborted_from"] == "inferring"
        turns = await conversation_store.list_turns(persona.id)
        assert [(t.role, t.content) for t in turns] == [("user", "Hi Elon")]

        key = CompanionKey(persona_id=persona.id, user_id=identity.id, model_name="llama2-13b")
        assert await memory_store.recall(key) == []


class TestPersistenceFailureAfterInference:

    async def test_memory_failure_still_finalizes(self, pipeline, persona, identity, conversation_store, drain):
        pipeline.memory.remember = AsyncMock(side_effect=PersistenceError("write memory", "disk full"))

        stream = await pipeline.handle(persona.id, "Hi", identity, ROUTE)
        chunks = await drain(stream)

        assert chunks == ["Hello there friend!\n", "grins Ready for launch?\n"]
        assert stream.state == PipelineState.FINALIZED
        assert stream.persistence_failures == ["memory"]
        turns = await conversation_store.list_turns(persona.id)
        assert [t.role for t in turns] == ["user", "system"]

    async def test_system_turn_failure_still_finalizes(self, pipeline, persona, identity, memory_store, drain):
        pipeline.conversations.append_turn = AsyncMock(side_effect=PersistenceError("append turn", "db gone"))

        stream = await pipeline.handle(persona.id, "Hi", identity, ROUTE)
        chunks = await drain(stream)

        assert len(chunks) == 2
        assert stream.state == PipelineState.FINALIZED
        assert stream.persistence_failures == ["system_turn"]


class TestClientDisconnect:

    async def test_disconnect_stops_emission_but_keeps_persistence(
        self, pipeline, persona, identity, mock_inference, conversation_store
    ):
        mock_inference.invoke.return_value = "\n".join(f"line {i}" for i in range(20))

        stream = await pipeline.handle(persona.id, "Hi", identity, ROUTE)
        chunks = stream.chunks()
        assert await chunks.__anext__() == "line 0\n"
        await chunks.aclose()

        assert stream.state == PipelineState.ABORTED
        assert stream.run.abort_reason == "CLIENT_DISCONNECTED"

        await pipeline.drain()
        turns = await conversation_store.list_turns(persona.id)
        assert [t.role for t in turns] == ["user", "system"]
        assert turns[1].content == stream.content

    async def test_stream_consumed_once(self, pipeline, persona, identity, drain):
        stream = await pipeline.handle(persona.id, "Hi", identity, ROUTE)
        await drain(stream)

        with pytest.raises(RuntimeError):
            await drain(stream)


class TestConcurrentRequests:

    async def test_same_key_concurrent_requests(self, pipeline, persona, identity, conversation_store, memory_store, drain):
        async def one(i):
            return await drain(await pipeline.handle(persona.id, f"msg {i}", identity, ROUTE))

        results = await asyncio.gather(*[one(i) for i in range(3)])

        assert all(len(chunks) == 2 for chunks in results)
        turns = await conversation_store.list_turns(persona.id)
        assert sorted(t.role for t in turns) == ["system"] * 3 + ["user"] * 3

        key = CompanionKey(persona_id=persona.id, user_id=identity.id, model_name="llama2-13b")
        assert len(await memory_store.recall(key)) == 3

    async def test_concurrent_first_requests_seed_once(
        self, pipeline, seeded_persona, identity, mock_inference, memory_store, drain
    ):
        async def one(i):
            return await drain(await pipeline.handle(seeded_persona.id, f"hello {i}", identity, ROUTE))

        await asyncio.gather(*[one(i) for i in range(3)])

        key = CompanionKey(persona_id=seeded_persona.id, user_id=identity.id, model_name="llama2-13b")
        records = await memory_store.recall(key)
        seed_rows = [r for r in records if r.content.startswith("Human:")]
        assert len(seed_rows) == 2
        assert len(records) == 2 + 3

        for call in mock_inference.invoke.call_args_list:
            prompt = call.args[2]
            assert prompt.count("Human: Hi Elon, how's your day been?") == 1
