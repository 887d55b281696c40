"""Anthropic (Claude) completion provider on the Messages API."""

import time
from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic

from canopy.providers.base import (
    CompletionProvider,
    GenerationRequest,
    GenerationResult,
    StreamChunk,
)


class AnthropicProvider(CompletionProvider):
    """Sends the rendered thread as one user turn.

    Streaming uses the SDK's ``messages.stream`` helper; the final chunk is
    built from the assembled message, so both paths report the same result.
    """

    suggested_models = [
        "claude-sonnet-4-5",
        "claude-opus-4-1",
        "claude-haiku-4-5",
    ]

    def __init__(
        self, *, client: AsyncAnthropic | None = None, api_key: str | None = None
    ) -> None:
        self._client = client if client is not None else AsyncAnthropic(api_key=api_key)

    @property
    def name(self) -> str:
        return "anthropic"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        started = time.monotonic()
        message = await self._client.messages.create(**_message_params(request))
        return _to_result(message, started, raw=True)

    async def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        started = time.monotonic()
        async with self._client.messages.stream(**_message_params(request)) as stream:
            async for text in stream.text_stream:
                if text:
                    yield StreamChunk(type="text_delta", text=text)
            message = await stream.get_final_message()
        yield StreamChunk(
            type="message_stop", is_final=True, result=_to_result(message, started)
        )


def _message_params(request: GenerationRequest) -> dict[str, Any]:
    params: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "messages": [{"role": "user", "content": request.context}],
    }
    # An empty system prompt is rejected by the API.
    if request.system_prompt:
        params["system"] = request.system_prompt
    if request.temperature is not None:
        params["temperature"] = request.temperature
    return params


def _to_result(message: Any, started: float, *, raw: bool = False) -> GenerationResult:
    # Thinking and tool blocks carry no reply text.
    text = "".join(block.text for block in message.content if block.type == "text")
    return GenerationResult(
        content=text,
        model=message.model,
        finish_reason=message.stop_reason,
        usage={
            "input_tokens": message.usage.input_tokens,
            "output_tokens": message.usage.output_tokens,
        },
        latency_ms=int((time.monotonic() - started) * 1000),
        raw_response=message.model_dump() if raw else None,
    )
