"""Completion provider interface and shared data types."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel


class GenerationRequest(BaseModel):
    """Everything a provider needs to make an API call.

    ``context`` is the rendered conversation thread; providers send it as a
    single user turn.
    """

    model: str
    context: str
    system_prompt: str | None = None
    max_tokens: int = 2048
    temperature: float | None = None


class GenerationResult(BaseModel):
    """Full response from a provider after generation completes."""

    content: str
    model: str
    finish_reason: str | None = None
    usage: dict[str, int] | None = None
    latency_ms: int | None = None
    raw_response: dict[str, Any] | None = None


class StreamChunk(BaseModel):
    """A single delta in a streaming response."""

    type: str  # "text_delta", "message_stop"
    text: str = ""
    is_final: bool = False
    result: GenerationResult | None = None


class CompletionProvider(ABC):
    """Abstract interface for completion providers."""

    suggested_models: list[str] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'anthropic')."""
        ...

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Send a non-streaming request. Returns the full result."""
        ...

    @abstractmethod
    def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        """Send a streaming request. Yields text deltas, then one final chunk."""
        ...
