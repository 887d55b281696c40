"""Tests for the provider registry and the /api/providers endpoint."""

import pytest

from canopy.providers.anthropic import AnthropicProvider
from canopy.providers.openai import OpenAIProvider
from canopy.providers.registry import (
    ProviderNotFoundError,
    clear_providers,
    describe_providers,
    get_all_providers,
    get_provider,
    list_providers,
    register_from_env,
    register_provider,
    resolve_provider,
)
from tests.fixtures import FakeProvider


class _OtherProvider(FakeProvider):
    @property
    def name(self) -> str:
        return "other"


@pytest.fixture(autouse=True)
def clean_registry():
    clear_providers()
    yield
    clear_providers()


class TestRegistry:
    def test_register_and_get(self):
        provider = FakeProvider()
        register_provider(provider)
        assert get_provider("fake") is provider
        assert list_providers() == ["fake"]
        assert get_all_providers() == [provider]

    def test_unknown_provider(self):
        with pytest.raises(ProviderNotFoundError, match="\\(none\\)") as exc:
            get_provider("missing")
        assert exc.value.name == "missing"
        assert exc.value.available == []

    def test_reregister_replaces(self):
        register_provider(FakeProvider("first"))
        second = FakeProvider("second")
        register_provider(second)
        assert get_all_providers() == [second]

    def test_describe(self):
        register_provider(FakeProvider())
        assert describe_providers() == [
            {"name": "fake", "available": True, "models": ["fake-model"]}
        ]

    def test_clear(self):
        register_provider(FakeProvider())
        clear_providers()
        assert list_providers() == []


class TestResolveProvider:
    def test_name_wins_over_default(self):
        register_provider(FakeProvider())
        other = _OtherProvider()
        register_provider(other)
        assert resolve_provider("other", default="fake") is other

    def test_default_used_without_name(self):
        register_provider(FakeProvider())
        other = _OtherProvider()
        register_provider(other)
        assert resolve_provider(None, default="other") is other

    def test_first_registered_as_fallback(self):
        first = FakeProvider()
        register_provider(first)
        register_provider(_OtherProvider())
        assert resolve_provider() is first

    def test_nothing_registered(self):
        with pytest.raises(ProviderNotFoundError) as exc:
            resolve_provider()
        assert exc.value.name is None


class TestRegisterFromEnv:
    def test_keys_enable_providers(self):
        names = register_from_env({"ANTHROPIC_API_KEY": "sk-ant", "OPENAI_API_KEY": "sk-oai"})
        assert names == ["anthropic", "openai"]
        assert isinstance(get_provider("anthropic"), AnthropicProvider)
        assert isinstance(get_provider("openai"), OpenAIProvider)

    def test_empty_keys_ignored(self):
        assert register_from_env({"ANTHROPIC_API_KEY": "", "UNRELATED": "x"}) == []
        assert list_providers() == []


class TestEndpoints:
    async def test_providers_endpoint(self, client):
        register_provider(FakeProvider())
        resp = await client.get("/api/providers")
        assert resp.status_code == 200
        assert resp.json() == [{"name": "fake", "available": True, "models": ["fake-model"]}]

    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.json()["status"] == "ok"
