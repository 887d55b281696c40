"""Shared test helpers."""

from collections.abc import AsyncIterator

from httpx import AsyncClient

from canopy.models import Block
from canopy.providers.base import (
    CompletionProvider,
    GenerationRequest,
    GenerationResult,
    StreamChunk,
)
from canopy.tree.store import NodeStore, make_block


def exchange(prompt: str = "", response: str = "") -> list[Block]:
    """A prompt/response block pair."""
    return [make_block("prompt", prompt, 0), make_block("response", response, 1)]


def build_scenario_tree(store: NodeStore) -> dict[str, str]:
    """R with two children C1 and C2, both holding a filled exchange.

    Returns {"R": id, "C1": id, "C2": id}.
    """
    root = store.create_node(None, exchange("Root question", "Root answer"), name="Root")
    c1 = store.create_node(root.id, exchange("First follow-up", "First reply"), name="C1")
    c2 = store.create_node(root.id, exchange("Second follow-up", "Second reply"))
    return {"R": root.id, "C1": c1.id, "C2": c2.id}


def build_chain(store: NodeStore, length: int) -> list[str]:
    """A single line of ``length`` nodes, root first."""
    ids: list[str] = []
    parent_id: str | None = None
    for i in range(length):
        node = store.create_node(parent_id, exchange(f"Prompt {i}", f"Reply {i}"))
        ids.append(node.id)
        parent_id = node.id
    return ids


class FakeProvider(CompletionProvider):
    """Test provider that returns canned responses."""

    suggested_models = ["fake-model"]

    def __init__(self, text: str = "Fake response", fail_after: int | None = None) -> None:
        self.text = text
        self.fail_after = fail_after
        self.requests: list[GenerationRequest] = []

    @property
    def name(self) -> str:
        return "fake"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        return GenerationResult(
            content=self.text,
            model=request.model,
            finish_reason="end_turn",
            usage={"input_tokens": 10, "output_tokens": 5},
            latency_ms=42,
        )

    async def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        words = self.text.split(" ")
        for i, word in enumerate(words):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("stream dropped")
            yield StreamChunk(type="text_delta", text=word if i == 0 else f" {word}")
        yield StreamChunk(
            type="message_stop",
            is_final=True,
            result=GenerationResult(
                content=self.text,
                model=request.model,
                finish_reason="end_turn",
                usage={"input_tokens": 10, "output_tokens": 5},
                latency_ms=42,
            ),
        )


# -- API-level helpers --


async def create_test_workspace(
    client: AsyncClient,
    title: str = "Test Workspace",
    root_prompt: str = "",
) -> dict:
    """Create a workspace via the API and return the response JSON."""
    body: dict = {"title": title}
    if root_prompt:
        body["root_prompt"] = root_prompt
    resp = await client.post("/api/workspaces", json=body)
    assert resp.status_code == 201
    return resp.json()


async def create_api_node(
    client: AsyncClient,
    workspace_id: str,
    parent_id: str | None = None,
    prompt: str = "Hello",
    response: str = "Hi there",
    **extra: object,
) -> dict:
    """Create a node holding a prompt/response exchange via the API."""
    body: dict = {
        "parent_id": parent_id,
        "blocks": [
            {"type": "prompt", "content": prompt},
            {"type": "response", "content": response},
        ],
        **extra,
    }
    resp = await client.post(f"/api/workspaces/{workspace_id}/nodes", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()
