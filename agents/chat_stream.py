"""
Per-request chunk channel between the pipeline and the HTTP response.
"""

import asyncio
from typing import AsyncIterator, List, Optional

from agents.normalize import reassemble
from agents.pipeline_state import PipelineRun, PipelineState
from core import get_logger

logger = get_logger(__name__)


class ChatStream:
    """
    Ordered, single-producer single-consumer stream of reply lines.

    The producer pushes each line (newline-terminated) into a bounded
    queue and then a ``None`` sentinel; the consumer yields chunks until the
    sentinel arrives. After the last chunk the stream waits for the reply
    persistence task, then marks the run finalized.

    If the consumer goes away mid-stream, emission stops and the run is
    aborted, but persistence is left running: the reply was generated and
    is kept.
    """

    def __init__(
        self,
        run: PipelineRun,
        lines: List[str],
        persistence: "asyncio.Future[List[str]]",
        queue_size: int = 16,
    ):
        self.run = run
        self.lines = list(lines)
        self.content = reassemble(self.lines)
        self._persistence = persistence
        self._queue_size = queue_size
        self._started = False
        self.persistence_failures: Optional[List[str]] = None

    @property
    def state(self) -> PipelineState:
        return self.run.state

    def __aiter__(self) -> AsyncIterator[str]:
        return self.chunks()

    async def _produce(self, channel: "asyncio.Queue[Optional[str]]") -> None:
        for line in self.lines:
            await channel.put(line + "\n")
        await channel.put(None)

    async def chunks(self) -> AsyncIterator[str]:
        """Yield the reply chunk by chunk. A stream can be consumed once."""
        if self._started:
            raise RuntimeError("ChatStream can only be consumed once")
        self._started = True

        channel: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=self._queue_size)
        producer = asyncio.create_task(self._produce(channel))
        emitted = 0

        try:
            while True:
                chunk = await channel.get()
                if chunk is None:
                    break
                yield chunk
                emitted += 1
        except (asyncio.CancelledError, GeneratorExit):
            logger.info(
                "Client disconnected mid-stream",
                request_id=self.run.request_id,
                emitted=emitted,
                total=len(self.lines),
            )
            self.run.abort("CLIENT_DISCONNECTED")
            raise
        finally:
            if not producer.done():
                producer.cancel()

        await self.finalize()

    async def finalize(self) -> List[str]:
        """Wait for reply persistence and close the run."""
        failures = await self._persistence
        self.persistence_failures = failures

        if failures:
            # The reply is already delivered; it is not retracted
            logger.warning(
                "Reply delivered with persistence failures",
                request_id=self.run.request_id,
                failures=failures,
            )

        if not self.run.is_terminal:
            self.run.advance(PipelineState.FINALIZED)
            logger.info(
                "Chat request finalized",
                request_id=self.run.request_id,
                companion_id=self.run.companion_id,
                lines=len(self.lines),
            )
        return failures
