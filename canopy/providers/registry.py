"""Process-wide table of completion providers, keyed by provider name."""

import logging
import os
from collections.abc import Mapping

from canopy.providers.anthropic import AnthropicProvider
from canopy.providers.base import CompletionProvider
from canopy.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)

_providers: dict[str, CompletionProvider] = {}

# Environment variable -> factory for the provider it enables.
_ENV_PROVIDERS = {
    "ANTHROPIC_API_KEY": lambda key: AnthropicProvider(api_key=key),
    "OPENAI_API_KEY": lambda key: OpenAIProvider(api_key=key),
}


def register_provider(provider: CompletionProvider) -> None:
    if provider.name in _providers:
        logger.warning("Replacing registered provider %s", provider.name)
    _providers[provider.name] = provider


def register_from_env(environ: Mapping[str, str] | None = None) -> list[str]:
    """Register a provider for every API key set in ``environ``.

    Returns the names registered, in registration order.
    """
    environ = os.environ if environ is None else environ
    registered: list[str] = []
    for variable, factory in _ENV_PROVIDERS.items():
        key = environ.get(variable)
        if key:
            provider = factory(key)
            register_provider(provider)
            registered.append(provider.name)
    logger.info("Providers from environment: %s", ", ".join(registered) or "(none)")
    return registered


def get_provider(name: str) -> CompletionProvider:
    provider = _providers.get(name)
    if provider is None:
        raise ProviderNotFoundError(name, list(_providers))
    return provider


def resolve_provider(name: str | None = None, default: str | None = None) -> CompletionProvider:
    """The named provider, else ``default``, else the first one registered."""
    chosen = name or default
    if chosen is None:
        if not _providers:
            raise ProviderNotFoundError(None, [])
        chosen = next(iter(_providers))
    return get_provider(chosen)


def list_providers() -> list[str]:
    return list(_providers)


def get_all_providers() -> list[CompletionProvider]:
    return list(_providers.values())


def describe_providers() -> list[dict]:
    """Name and suggested models of each provider, for the providers endpoint."""
    return [
        {"name": p.name, "available": True, "models": list(p.suggested_models)}
        for p in _providers.values()
    ]


def clear_providers() -> None:
    _providers.clear()


class ProviderNotFoundError(Exception):
    def __init__(self, name: str | None, available: list[str]) -> None:
        self.name = name
        self.available = available
        listed = ", ".join(available) or "(none)"
        if name is None:
            message = f"No provider requested and no default set. Available: {listed}"
        else:
            message = f"Provider '{name}' not registered. Available: {listed}"
        super().__init__(message)
