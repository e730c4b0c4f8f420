"""
Type definitions for assembled LLM streaming.

Provides the sink contract the stream assembler writes into and the
shape of the events re-emitted to the frontend.
"""

from typing import Literal, Protocol, TypedDict


class DeltaSink(Protocol):
    """Receives text deltas in arrival order"""

    def append(self, delta: str) -> None: ...


class ChatMessage(TypedDict):
    """A single chat turn as sent to the completion API"""

    role: Literal["system", "user", "assistant"]
    content: str


class StreamChunk(TypedDict):
    """
    A single chunk of assembled stream data sent to the frontend.

    Fields:
        type: Always "response" for assembled deltas
        content: The delta text
    """

    type: Literal["response"]
    content: str
