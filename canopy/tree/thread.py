"""Linear conversation view of one node: its ancestors' blocks, root first.

Because the walk follows parent links only, a branch's thread never includes
the content of the original it was forked from.
"""

import html

from canopy.models import ConversationThread, Message
from canopy.tree.errors import TreeStructureError
from canopy.tree.store import NodeStore

_SPEAKER_FORMATS = {
    "prompt": "User: {}",
    "response": "Assistant: {}",
    "note": "[User Note: {}]",
}


class ThreadBuilder:
    """Read-only; never mutates the store."""

    def __init__(self, store: NodeStore) -> None:
        self.store = store

    def build_path(self, node_id: str) -> list[str]:
        """Node ids from the root down to ``node_id``."""
        node = self.store.get_node(node_id)
        limit = len(self.store)
        path = [node.id]
        while node.parent_id is not None:
            parent = self.store.find_node(node.parent_id)
            if parent is None:
                raise TreeStructureError(
                    "orphan", node.id, f"parent {node.parent_id} does not exist"
                )
            node = parent
            path.append(node.id)
            if len(path) > limit:
                raise TreeStructureError("cycle", node_id, "walk to root did not terminate")
        path.reverse()
        return path

    def build_thread_from_node_to_root(self, node_id: str) -> list[Message]:
        messages: list[Message] = []
        for path_id in self.build_path(node_id):
            node = self.store.get_node(path_id)
            for block in node.blocks:
                messages.append(
                    Message(
                        node_id=node.id,
                        block_id=block.id,
                        type=block.type,
                        content=block.content,
                    )
                )
        return messages

    def build_thread(self, node_id: str) -> ConversationThread:
        path = self.build_path(node_id)
        return ConversationThread(
            root_node_id=path[0],
            target_node_id=node_id,
            node_path=path,
            messages=self.build_thread_from_node_to_root(node_id),
            depth=len(path) - 1,
        )

    def build_conversation_context(
        self, node_id: str, pending_prompt: str | None = None
    ) -> str:
        """Render the thread as plain text for a completion provider.

        Stored content is HTML-escaped; it is unescaped here. Empty blocks are
        skipped. ``pending_prompt`` is appended as a final user turn.
        """
        parts = [
            _SPEAKER_FORMATS[m.type].format(html.unescape(m.content))
            for m in self.build_thread_from_node_to_root(node_id)
            if m.content.strip()
        ]
        if pending_prompt:
            parts.append(_SPEAKER_FORMATS["prompt"].format(pending_prompt))
        return "\n\n".join(parts)
