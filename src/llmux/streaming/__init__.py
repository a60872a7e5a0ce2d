"""Streaming pipeline: SSE decoding, delta normalization, delivery."""

from .channel import ChunkChannel
from .normalize import ChatDeltaNormalizer, Delta, DeltaNormalizer, MessagesEventNormalizer
from .pump import StreamPump
from .sse import SSEEvent, SSEFrame, iter_sse_events, iter_sse_frames

__all__ = [
    "ChatDeltaNormalizer",
    "ChunkChannel",
    "Delta",
    "DeltaNormalizer",
    "MessagesEventNormalizer",
    "SSEEvent",
    "SSEFrame",
    "StreamPump",
    "iter_sse_events",
    "iter_sse_frames",
]
