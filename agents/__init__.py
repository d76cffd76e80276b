"""Chat pipeline modules for the companion service."""

from .chat_pipeline import ChatPipeline
from .chat_stream import ChatStream
from .pipeline_state import PipelineRun, PipelineState

__all__ = [
    "ChatPipeline",
    "ChatStream",
    "PipelineRun",
    "PipelineState",
]
