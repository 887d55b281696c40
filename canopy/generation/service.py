"""Generation service: asks a provider to answer a new prompt beneath a node."""

import logging
from collections.abc import AsyncIterator

from canopy.config import Settings
from canopy.models import Node
from canopy.providers.base import (
    CompletionProvider,
    GenerationRequest,
    GenerationResult,
    StreamChunk,
)
from canopy.providers.registry import resolve_provider
from canopy.workspaces.service import WorkspaceService

logger = logging.getLogger(__name__)


class GenerationService:
    """Builds the thread context, calls the provider, and stores the exchange.

    The new child node is created only once the provider has finished. A
    failed or abandoned generation leaves the tree unchanged.
    """

    def __init__(self, workspace_service: WorkspaceService, settings: Settings | None = None) -> None:
        self._workspaces = workspace_service
        self._settings = settings or Settings()

    def resolve_provider(self, name: str | None) -> CompletionProvider:
        """Named provider, else the configured default, else the first registered."""
        return resolve_provider(name, self._settings.default_provider)

    async def generate_child(
        self,
        workspace_id: str,
        parent_id: str,
        provider: CompletionProvider,
        prompt: str,
        *,
        model: str | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Node:
        request = await self._build_request(
            workspace_id, parent_id, provider, prompt,
            model, system_prompt, max_tokens, temperature,
        )
        result = await provider.generate(request)
        return await self._store_exchange(workspace_id, parent_id, provider, prompt, result)

    async def generate_child_stream(
        self,
        workspace_id: str,
        parent_id: str,
        provider: CompletionProvider,
        prompt: str,
        *,
        model: str | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield text deltas; the final chunk carries the new node's id."""
        request = await self._build_request(
            workspace_id, parent_id, provider, prompt,
            model, system_prompt, max_tokens, temperature,
        )
        async for chunk in provider.generate_stream(request):
            if chunk.is_final and chunk.result is not None:
                node = await self._store_exchange(
                    workspace_id, parent_id, provider, prompt, chunk.result
                )
                # Attach node_id to the final chunk for the SSE handler
                chunk = StreamChunk(
                    type=chunk.type,
                    text=chunk.text,
                    is_final=True,
                    result=chunk.result.model_copy(
                        update={"raw_response": {"node_id": node.id}}
                    ),
                )
            yield chunk

    async def _build_request(
        self,
        workspace_id: str,
        parent_id: str,
        provider: CompletionProvider,
        prompt: str,
        model: str | None,
        system_prompt: str | None,
        max_tokens: int | None,
        temperature: float | None,
    ) -> GenerationRequest:
        context = await self._workspaces.build_context(workspace_id, parent_id, prompt)
        resolved_model = model or self._settings.default_model
        if resolved_model is None and provider.suggested_models:
            resolved_model = provider.suggested_models[0]
        if resolved_model is None:
            raise ModelNotConfiguredError(provider.name)

        return GenerationRequest(
            model=resolved_model,
            context=context,
            system_prompt=system_prompt if system_prompt is not None else self._settings.system_prompt,
            max_tokens=max_tokens or self._settings.max_tokens,
            temperature=temperature,
        )

    async def _store_exchange(
        self,
        workspace_id: str,
        parent_id: str,
        provider: CompletionProvider,
        prompt: str,
        result: GenerationResult,
    ) -> Node:
        node = await self._workspaces.create_generated_node(
            workspace_id, parent_id, prompt, result.content
        )
        logger.info(
            "Generated node %s under %s via %s/%s (%s ms)",
            node.id, parent_id, provider.name, result.model, result.latency_ms,
        )
        return node


class ModelNotConfiguredError(Exception):
    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"No model given and no default configured for provider {provider_name}")
