"""Tests for ThreadBuilder: root-to-node conversation reconstruction."""

import pytest

from canopy.history.store import VersionHistory
from canopy.tree.branching import BranchingEngine
from canopy.tree.errors import NodeNotFound, TreeStructureError
from canopy.tree.store import NodeStore, make_block
from canopy.tree.thread import ThreadBuilder
from tests.fixtures import build_chain, build_scenario_tree, exchange


@pytest.fixture
def threads(store):
    return ThreadBuilder(store)


class TestBuildPath:
    def test_path_length_is_depth_plus_one(self, store, threads):
        ids = build_chain(store, 6)
        path = threads.build_path(ids[-1])
        assert path == ids
        assert len(path) == store.get_node(ids[-1]).depth + 1

    def test_root_path(self, store, threads):
        root = store.create_node(None)
        assert threads.build_path(root.id) == [root.id]

    def test_unknown_node(self, threads):
        with pytest.raises(NodeNotFound):
            threads.build_path("node_missing")

    def test_corrupted_parent_link_detected(self, store, threads):
        ids = build_chain(store, 2)
        child = store.get_node(ids[1])
        store._nodes[ids[1]] = child.model_copy(update={"parent_id": "node_gone"})
        with pytest.raises(TreeStructureError) as exc:
            threads.build_path(ids[1])
        assert exc.value.violation == "orphan"

    def test_cycle_detected(self, store, threads):
        ids = build_chain(store, 2)
        root = store.get_node(ids[0])
        store._nodes[ids[0]] = root.model_copy(update={"parent_id": ids[1]})
        with pytest.raises(TreeStructureError) as exc:
            threads.build_path(ids[1])
        assert exc.value.violation == "cycle"


class TestBuildThread:
    def test_messages_root_first_in_block_order(self, store, threads):
        ids = build_chain(store, 3)
        messages = threads.build_thread_from_node_to_root(ids[2])
        assert [(m.type, m.content) for m in messages] == [
            ("prompt", "Prompt 0"), ("response", "Reply 0"),
            ("prompt", "Prompt 1"), ("response", "Reply 1"),
            ("prompt", "Prompt 2"), ("response", "Reply 2"),
        ]
        assert messages[0].node_id == ids[0]
        assert messages[0].block_id == store.get_node(ids[0]).blocks[0].id

    def test_notes_included(self, store, threads):
        node = store.create_node(None, exchange("q", "a"))
        store.add_block(node.id, "note", "remember", index=1)
        types = [m.type for m in threads.build_thread_from_node_to_root(node.id)]
        assert types == ["prompt", "note", "response"]

    def test_branch_thread_excludes_original(self, store: NodeStore, threads):
        """The thread of an edited sibling never shows the original's content."""
        ids = build_scenario_tree(store)
        engine = BranchingEngine(store, VersionHistory())
        prompt_id = store.get_node(ids["C1"]).blocks[0].id
        result = engine.create_branch_from_edit(ids["C1"], prompt_id, "Edited follow-up")

        contents = [m.content for m in threads.build_thread_from_node_to_root(result.new_node_id)]
        assert "Edited follow-up" in contents
        assert "First follow-up" not in contents

    def test_conversation_thread_model(self, store, threads):
        ids = build_chain(store, 4)
        thread = threads.build_thread(ids[2])
        assert thread.root_node_id == ids[0]
        assert thread.target_node_id == ids[2]
        assert thread.node_path == ids[:3]
        assert thread.depth == 2
        assert len(thread.messages) == 6


class TestConversationContext:
    def test_speaker_labels(self, store, threads):
        node = store.create_node(None, exchange("Hi", "Hello!"))
        store.add_block(node.id, "note", "be brief")
        assert threads.build_conversation_context(node.id) == (
            "User: Hi\n\nAssistant: Hello!\n\n[User Note: be brief]"
        )

    def test_content_unescaped(self, store, threads):
        node = store.create_node(None, exchange("is 1 < 2 & 'yes'?", ""))
        assert threads.build_conversation_context(node.id) == "User: is 1 < 2 & 'yes'?"

    def test_empty_blocks_skipped_and_pending_prompt(self, store, threads):
        blocks = [make_block("prompt", "Q", 0), make_block("response", "", 1)]
        node = store.create_node(None, blocks)
        context = threads.build_conversation_context(node.id, pending_prompt="Next?")
        assert context == "User: Q\n\nUser: Next?"
