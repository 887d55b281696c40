"""Contract tests for AnthropicProvider with a mocked AsyncAnthropic client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from canopy.providers.anthropic import AnthropicProvider
from canopy.providers.base import GenerationRequest


def _make_mock_message(text: str = "Hello from Claude") -> MagicMock:
    message = MagicMock()
    message.content = [
        SimpleNamespace(type="thinking", thinking="..."),
        SimpleNamespace(type="text", text=text),
    ]
    message.model = "claude-test"
    message.stop_reason = "end_turn"
    message.usage = SimpleNamespace(input_tokens=20, output_tokens=7)
    message.model_dump.return_value = {"id": "msg_test"}
    return message


async def _aiter(items):
    for item in items:
        yield item


class _FakeMessageStream:
    """Stands in for the SDK's stream manager and the stream it opens."""

    def __init__(self, texts: list[str], message: MagicMock, fail: bool = False) -> None:
        self._texts = texts
        self._message = message
        self._fail = fail
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        return False

    @property
    def text_stream(self):
        return self._iter_text()

    async def _iter_text(self):
        for text in self._texts:
            yield text
        if self._fail:
            raise ConnectionError("connection reset")

    async def get_final_message(self):
        return self._message


def _make_mock_client(message=None, stream=None) -> MagicMock:
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock(return_value=message)
    client.messages.stream = MagicMock(return_value=stream)
    return client


def _make_request(**overrides) -> GenerationRequest:
    return GenerationRequest(model="claude-test", context="User: Hi", **overrides)


class TestAnthropicGenerate:
    async def test_name(self):
        assert AnthropicProvider(client=_make_mock_client()).name == "anthropic"

    async def test_extracts_text_blocks_only(self):
        provider = AnthropicProvider(client=_make_mock_client(_make_mock_message("Answer")))
        result = await provider.generate(_make_request())
        assert result.content == "Answer"
        assert result.model == "claude-test"
        assert result.finish_reason == "end_turn"
        assert result.usage == {"input_tokens": 20, "output_tokens": 7}
        assert result.raw_response == {"id": "msg_test"}

    async def test_params(self):
        client = _make_mock_client(_make_mock_message())
        await AnthropicProvider(client=client).generate(
            _make_request(system_prompt="Be kind.", temperature=0.5, max_tokens=100)
        )
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "User: Hi"}]
        assert kwargs["system"] == "Be kind."
        assert kwargs["temperature"] == 0.5
        assert kwargs["max_tokens"] == 100

    async def test_empty_system_prompt_omitted(self):
        client = _make_mock_client(_make_mock_message())
        await AnthropicProvider(client=client).generate(_make_request(system_prompt=""))
        kwargs = client.messages.create.call_args.kwargs
        assert "system" not in kwargs
        assert "temperature" not in kwargs


class TestAnthropicStream:
    async def test_deltas_then_final_from_message(self):
        stream = _FakeMessageStream(["Hi ", "", "there"], _make_mock_message("Hi there"))
        client = _make_mock_client(stream=stream)
        chunks = [c async for c in AnthropicProvider(client=client).generate_stream(_make_request())]

        assert [c.text for c in chunks[:-1]] == ["Hi ", "there"]
        final = chunks[-1]
        assert final.is_final
        assert final.result.content == "Hi there"
        assert final.result.usage == {"input_tokens": 20, "output_tokens": 7}
        assert final.result.raw_response is None
        assert stream.closed
        assert client.messages.stream.call_args.kwargs["model"] == "claude-test"

    async def test_dropped_stream_raises_without_final(self):
        stream = _FakeMessageStream(["partial"], _make_mock_message(), fail=True)
        provider = AnthropicProvider(client=_make_mock_client(stream=stream))
        seen = []
        with pytest.raises(ConnectionError):
            async for chunk in provider.generate_stream(_make_request()):
                seen.append(chunk)
        assert [c.is_final for c in seen] == [False]
        assert stream.closed
