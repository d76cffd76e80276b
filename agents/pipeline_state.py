"""
Lifecycle of a single chat request.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from core import get_logger

logger = get_logger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "received"
    AUTHORIZED = "authorized"
    RATE_CHECKED = "rate_checked"
    USER_TURN_PERSISTED = "user_turn_persisted"
    COMPOSED = "composed"
    INFERRING = "inferring"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({PipelineState.FINALIZED, PipelineState.ABORTED})

# Each state may only move to the next one (or abort)
_NEXT_STATE = {
    PipelineState.RECEIVED: PipelineState.AUTHORIZED,
    PipelineState.AUTHORIZED: PipelineState.RATE_CHECKED,
    PipelineState.RATE_CHECKED: PipelineState.USER_TURN_PERSISTED,
    PipelineState.USER_TURN_PERSISTED: PipelineState.COMPOSED,
    PipelineState.COMPOSED: PipelineState.INFERRING,
    PipelineState.INFERRING: PipelineState.STREAMING,
    PipelineState.STREAMING: PipelineState.FINALIZED,
}


@dataclass
class PipelineRun:
    """State record for one request, shared by the pipeline and its stream."""

    companion_id: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    abort_reason: Optional[str] = None
    aborted_from: Optional[PipelineState] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: PipelineState) -> None:
        """Move to ``target``; only the next state in the sequence is accepted."""
        expected = _NEXT_STATE.get(self.state)
        if target != expected:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)
        logger.debug("Pipeline transition", request_id=self.request_id, state=target.value)

    def abort(self, reason: str) -> None:
        """Enter the aborted state. No-op once terminal."""
        if self.is_terminal:
            return
        self.aborted_from = self.state
        self.abort_reason = reason
        self.state = PipelineState.ABORTED
        self.history.append(PipelineState.ABORTED)
        logger.info(
            "Pipeline aborted",
            request_id=self.request_id,
            companion_id=self.companion_id,
            reason=reason,
            aborted_from=self.aborted_from.value,
        )
