"""Tests for GenerationService: context assembly and deferred node creation."""

import pytest

from canopy.config import Settings
from canopy.generation.service import GenerationService, ModelNotConfiguredError
from canopy.providers.registry import ProviderNotFoundError, clear_providers, register_provider
from canopy.workspaces.schemas import CreateNodeRequest, CreateWorkspaceRequest
from canopy.workspaces.service import WorkspaceNotFoundError
from tests.fixtures import FakeProvider


@pytest.fixture(autouse=True)
def clean_registry():
    clear_providers()
    yield
    clear_providers()


@pytest.fixture
async def seeded(workspace_service):
    """A workspace with one root node holding a filled exchange."""
    ws = await workspace_service.create_workspace(CreateWorkspaceRequest(title="Gen"))
    root = await workspace_service.create_node(
        ws.workspace_id,
        CreateNodeRequest(blocks=[
            {"type": "prompt", "content": "What is 2 + 2?"},
            {"type": "response", "content": "4"},
        ]),
    )
    return ws.workspace_id, root.id


@pytest.fixture
def gen_service(workspace_service):
    return GenerationService(workspace_service)


class TestGenerateChild:
    async def test_creates_child_with_prompt_and_response(
        self, gen_service, workspace_service, seeded
    ):
        wid, root_id = seeded
        provider = FakeProvider("Six")
        node = await gen_service.generate_child(wid, root_id, provider, "And 3 + 3?")

        assert node.parent_id == root_id
        assert [(b.type, b.content) for b in node.blocks] == [
            ("prompt", "And 3 + 3?"), ("response", "Six"),
        ]
        detail = await workspace_service.get_workspace(wid)
        assert len(detail.nodes) == 2

    async def test_context_includes_thread_and_new_prompt(self, gen_service, seeded):
        wid, root_id = seeded
        provider = FakeProvider()
        await gen_service.generate_child(wid, root_id, provider, "And 3 + 3?")

        request = provider.requests[0]
        assert request.context == "User: What is 2 + 2?\n\nAssistant: 4\n\nUser: And 3 + 3?"
        assert request.model == "fake-model"

    async def test_settings_defaults_applied(self, workspace_service, seeded):
        wid, root_id = seeded
        settings = Settings(default_model="m-1", system_prompt="Terse.", max_tokens=99)
        service = GenerationService(workspace_service, settings)
        provider = FakeProvider()
        await service.generate_child(wid, root_id, provider, "hi")

        request = provider.requests[0]
        assert (request.model, request.system_prompt, request.max_tokens) == ("m-1", "Terse.", 99)

    async def test_no_model_available(self, gen_service, seeded):
        wid, root_id = seeded
        provider = FakeProvider()
        provider.suggested_models = []
        with pytest.raises(ModelNotConfiguredError):
            await gen_service.generate_child(wid, root_id, provider, "hi")

    async def test_unknown_workspace(self, gen_service):
        with pytest.raises(WorkspaceNotFoundError):
            await gen_service.generate_child("nope", "node_x", FakeProvider(), "hi")


class TestGenerateChildStream:
    async def test_node_created_only_at_the_end(
        self, gen_service, workspace_service, seeded
    ):
        """No node exists while deltas are still arriving."""
        wid, root_id = seeded
        counts: list[int] = []
        final = None
        async for chunk in gen_service.generate_child_stream(
            wid, root_id, FakeProvider("one two three"), "count"
        ):
            counts.append(len((await workspace_service.get_workspace(wid)).nodes))
            if chunk.is_final:
                final = chunk

        assert counts == [1, 1, 1, 2]
        node_id = final.result.raw_response["node_id"]
        thread = await workspace_service.get_thread(wid, node_id)
        assert thread.messages[-1].content == "one two three"

    async def test_failed_stream_leaves_tree_unchanged(
        self, gen_service, workspace_service, seeded
    ):
        wid, root_id = seeded
        with pytest.raises(RuntimeError):
            async for _ in gen_service.generate_child_stream(
                wid, root_id, FakeProvider("a b c", fail_after=2), "go"
            ):
                pass
        assert len((await workspace_service.get_workspace(wid)).nodes) == 1


class TestResolveProvider:
    def test_named(self, gen_service):
        provider = FakeProvider()
        register_provider(provider)
        assert gen_service.resolve_provider("fake") is provider

    def test_falls_back_to_first_registered(self, gen_service):
        provider = FakeProvider()
        register_provider(provider)
        assert gen_service.resolve_provider(None) is provider

    def test_default_from_settings(self, workspace_service):
        service = GenerationService(workspace_service, Settings(default_provider="other"))
        register_provider(FakeProvider())
        with pytest.raises(ProviderNotFoundError):
            service.resolve_provider(None)

    def test_nothing_registered(self, gen_service):
        with pytest.raises(ProviderNotFoundError):
            gen_service.resolve_provider(None)
