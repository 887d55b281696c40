"""OpenAI completion provider (Chat Completions API)."""

import time
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from canopy.providers.base import (
    CompletionProvider,
    GenerationRequest,
    GenerationResult,
    StreamChunk,
)


class OpenAIProvider(CompletionProvider):
    """Provider backed by OpenAI's chat completions protocol."""

    suggested_models = [
        "gpt-4o",
        "gpt-4o-mini",
        "o4-mini",
    ]

    def __init__(self, *, client: AsyncOpenAI | None = None, api_key: str | None = None) -> None:
        self._client = client if client is not None else AsyncOpenAI(api_key=api_key)

    @property
    def name(self) -> str:
        return "openai"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        params = self._build_params(request)
        start = time.monotonic()
        response = await self._client.chat.completions.create(**params)
        latency_ms = int((time.monotonic() - start) * 1000)

        choice = response.choices[0]
        return GenerationResult(
            content=choice.message.content or "",
            model=response.model,
            finish_reason=choice.finish_reason,
            usage={
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            },
            latency_ms=latency_ms,
            raw_response=response.model_dump(),
        )

    async def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        params = self._build_params(request)
        params["stream"] = True
        params["stream_options"] = {"include_usage": True}

        start = time.monotonic()
        accumulated_text = ""
        finish_reason: str | None = None
        model = request.model
        input_tokens = 0
        output_tokens = 0

        stream = await self._client.chat.completions.create(**params)
        async for chunk in stream:
            if chunk.model:
                model = chunk.model

            if chunk.choices:
                choice = chunk.choices[0]
                text = choice.delta.content
                if text:
                    accumulated_text += text
                    yield StreamChunk(type="text_delta", text=text)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason

            # Usage arrives on the last chunk, which has no choices
            if chunk.usage:
                input_tokens = chunk.usage.prompt_tokens
                output_tokens = chunk.usage.completion_tokens

        latency_ms = int((time.monotonic() - start) * 1000)
        yield StreamChunk(
            type="message_stop",
            is_final=True,
            result=GenerationResult(
                content=accumulated_text,
                model=model,
                finish_reason=finish_reason,
                usage={"input_tokens": input_tokens, "output_tokens": output_tokens},
                latency_ms=latency_ms,
            ),
        )

    @staticmethod
    def _build_params(request: GenerationRequest) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if request.system_prompt is not None:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.context})

        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": messages,
        }
        if request.temperature is not None:
            params["temperature"] = request.temperature
        return params
