"""NodeStore: the canonical id -> Node map and its structural invariants.

Every mutation is validate-then-commit: the store builds the post-state as a
new mapping (records are replaced, never edited in place), runs the full
integrity check against it, and only then swaps it in. A rejected operation
therefore leaves nothing observable behind.

Records returned by the read methods are the live ones; treat them as
read-only.
"""

import logging
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from uuid import uuid4

from canopy.models import BLOCK_TYPES, Block, Node, Position, StructuralChange
from canopy.tree.errors import BlockNotFound, NodeNotFound, TreeStructureError, ValidationError
from canopy.tree.validation import (
    BLOCK_MAX_HEIGHT,
    BLOCK_MIN_HEIGHT,
    MAX_CONTENT_LENGTH,
    MAX_NAME_LENGTH,
    NODE_MAX_SIZE,
    NODE_MIN_SIZE,
    check_dimension,
    check_integrity,
    check_stored_content,
    check_stored_name,
    sanitize_content,
    sanitize_name,
    validate_blocks,
)

logger = logging.getLogger(__name__)

# Substituted when a node is created without blocks.
DEFAULT_BLOCK_TYPES: tuple[str, ...] = ("prompt", "response")

Listener = Callable[[StructuralChange], None]


def new_node_id() -> str:
    return f"node_{uuid4()}"


def new_block_id() -> str:
    return f"block_{uuid4()}"


def make_block(
    block_type: str,
    content: str = "",
    order: int = 0,
    **presentation: object,
) -> Block:
    """Build a Block with a fresh id."""
    return Block(
        id=new_block_id(), type=block_type, content=content, order=order, **presentation
    )


def default_blocks() -> list[Block]:
    return [make_block(t, order=i) for i, t in enumerate(DEFAULT_BLOCK_TYPES)]


class NodeStore:
    """Owns node records and enforces the tree invariants on every mutation."""

    def __init__(
        self,
        *,
        max_content_length: int = MAX_CONTENT_LENGTH,
        max_name_length: int = MAX_NAME_LENGTH,
    ) -> None:
        self.max_content_length = max_content_length
        self.max_name_length = max_name_length
        self._nodes: dict[str, Node] = {}
        self._issued_ids: set[str] = set()
        self._listeners: list[Listener] = []
        self._pending: deque[StructuralChange] = deque()
        self._dispatching = False

    # -- Reads --

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def find_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def get_children(self, node_id: str) -> list[Node]:
        node = self.get_node(node_id)
        return [self._nodes[child_id] for child_id in node.children]

    def get_all_nodes(self) -> list[Node]:
        """All nodes in creation order."""
        return list(self._nodes.values())

    def get_roots(self) -> list[Node]:
        return [n for n in self._nodes.values() if n.parent_id is None]

    def validate_integrity(self) -> None:
        check_integrity(self._nodes)

    # -- Subscriptions --

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    # -- Node lifecycle --

    def create_node(
        self,
        parent_id: str | None,
        blocks: Sequence[Block] | None = None,
        *,
        name: str = "",
        insert_after: str | None = None,
        branched_from: str | None = None,
        sanitize: bool = True,
    ) -> Node:
        """Create a node under ``parent_id`` (None creates a root).

        Empty ``blocks`` is replaced by the default prompt/response pair.
        ``insert_after`` places the node right after that sibling instead of
        at the end of the parent's child list. Pass ``sanitize=False`` only
        for content and names that already came out of this store.
        """
        parent = None
        if parent_id is not None:
            parent = self.get_node(parent_id)

        prepared = self._prepare_blocks(blocks or default_blocks(), sanitize=sanitize)
        if sanitize:
            clean_name = sanitize_name(name, self.max_name_length)
        else:
            check_stored_name(name, self.max_name_length)
            clean_name = name
        node_id = self._reserve_id()
        now = datetime.now(UTC)

        node = Node(
            id=node_id,
            parent_id=parent_id,
            depth=parent.depth + 1 if parent is not None else 0,
            blocks=prepared,
            name=clean_name,
            branched_from=branched_from,
            created_at=now,
            updated_at=now,
        )

        candidate = dict(self._nodes)
        if parent is not None:
            children = list(parent.children)
            if insert_after is None:
                children.append(node_id)
            elif insert_after in children:
                children.insert(children.index(insert_after) + 1, node_id)
            else:
                raise ValidationError(
                    "insert_after", f"{insert_after} is not a child of {parent_id}"
                )
            candidate[parent.id] = parent.model_copy(update={"children": children})
        candidate[node_id] = node

        self._commit(
            candidate,
            [StructuralChange(kind="node_added", node_id=node_id, parent_id=parent_id)],
        )
        logger.info("Created node %s under %s (depth %d)", node_id, parent_id, node.depth)
        return node

    def delete_node(self, node_id: str) -> None:
        """Delete a leaf. Internal nodes are rejected; remove descendants first."""
        node = self.get_node(node_id)
        if node.children:
            logger.warning(
                "Refusing to delete %s: it has %d children", node_id, len(node.children)
            )
            raise TreeStructureError("has_children", node_id, "has children")

        candidate = dict(self._nodes)
        del candidate[node_id]
        if node.parent_id is not None:
            parent = candidate[node.parent_id]
            candidate[parent.id] = parent.model_copy(
                update={"children": [c for c in parent.children if c != node_id]}
            )

        self._commit(
            candidate,
            [StructuralChange(kind="node_removed", node_id=node_id, parent_id=node.parent_id)],
        )
        logger.info("Deleted node %s", node_id)

    # -- Block edits --

    def update_block_content(self, node_id: str, block_id: str, content: str) -> Node:
        """Replace a block's content in place (escaped and length-capped)."""
        node = self.get_node(node_id)
        index = self._block_index(node, block_id)
        sanitized = sanitize_content(content, self.max_content_length)

        blocks = list(node.blocks)
        blocks[index] = blocks[index].model_copy(update={"content": sanitized})
        return self._replace(self._touch(node, blocks=blocks))

    def add_block(
        self,
        node_id: str,
        block_type: str,
        content: str = "",
        *,
        index: int | None = None,
    ) -> Block:
        node = self.get_node(node_id)
        if block_type not in BLOCK_TYPES:
            raise ValidationError("block.type", f"unknown block type {block_type!r}")
        if index is not None and not 0 <= index <= len(node.blocks):
            raise ValidationError("index", f"must be between 0 and {len(node.blocks)}")

        block = make_block(block_type, sanitize_content(content, self.max_content_length))
        blocks = list(node.blocks)
        blocks.insert(len(blocks) if index is None else index, block)
        blocks = _renumber(blocks)
        self._replace(self._touch(node, blocks=blocks))
        return next(b for b in blocks if b.id == block.id)

    def remove_block(self, node_id: str, block_id: str) -> Node:
        node = self.get_node(node_id)
        index = self._block_index(node, block_id)
        blocks = list(node.blocks)
        del blocks[index]
        return self._replace(self._touch(node, blocks=_renumber(blocks)))

    def update_block_presentation(
        self,
        node_id: str,
        block_id: str,
        *,
        minimized: bool | None = None,
        width: float | None = None,
        height: float | None = None,
    ) -> Node:
        node = self.get_node(node_id)
        index = self._block_index(node, block_id)
        check_dimension("block.height", height, BLOCK_MIN_HEIGHT, BLOCK_MAX_HEIGHT)
        check_dimension("block.width", width, NODE_MIN_SIZE, NODE_MAX_SIZE)

        changes: dict[str, object] = {}
        if minimized is not None:
            changes["minimized"] = minimized
        if width is not None:
            changes["width"] = width
        if height is not None:
            changes["height"] = height
        blocks = list(node.blocks)
        blocks[index] = blocks[index].model_copy(update=changes)
        return self._replace(self._touch(node, blocks=blocks))

    # -- Display metadata --

    def rename_node(self, node_id: str, name: str) -> Node:
        node = self.get_node(node_id)
        return self._replace(self._touch(node, name=sanitize_name(name, self.max_name_length)))

    def set_collapsed(self, node_id: str, collapsed: bool) -> Node:
        node = self.get_node(node_id)
        return self._replace(self._touch(node, collapsed=collapsed))

    def toggle_collapsed(self, node_id: str) -> Node:
        return self.set_collapsed(node_id, not self.get_node(node_id).collapsed)

    def resize_node(self, node_id: str, width: float | None, height: float | None) -> Node:
        """Set explicit size overrides. None clears an override."""
        node = self.get_node(node_id)
        check_dimension("width", width, NODE_MIN_SIZE, NODE_MAX_SIZE)
        check_dimension("height", height, NODE_MIN_SIZE, NODE_MAX_SIZE)
        return self._replace(self._touch(node, width=width, height=height))

    # -- Layout and bulk load --

    def apply_layout(self, positions: dict[str, Position]) -> list[str]:
        """Write LayoutEngine output. Returns the ids whose position changed.

        Positions are not structural, so no integrity pass runs here.
        """
        unknown = set(positions) - set(self._nodes)
        if unknown:
            raise NodeNotFound(sorted(unknown)[0])

        moved: list[str] = []
        candidate = dict(self._nodes)
        for node_id, position in positions.items():
            node = candidate[node_id]
            if node.position != position:
                candidate[node_id] = node.model_copy(update={"position": position})
                moved.append(node_id)
        if not moved:
            return moved

        self._nodes = candidate
        self._notify(
            StructuralChange(
                kind="node_moved",
                node_id=node_id,
                parent_id=candidate[node_id].parent_id,
                position=candidate[node_id].position,
            )
            for node_id in moved
        )
        logger.debug("Layout moved %d nodes", len(moved))
        return moved

    def load_records(self, nodes: Iterable[Node]) -> None:
        """Replace the whole store with ``nodes`` after validating them.

        Records must already be in stored form: escaped content within the
        length cap and render-safe names. Nothing is rewritten on the way in.
        """
        candidate: dict[str, Node] = {}
        for node in nodes:
            if node.id in candidate:
                raise TreeStructureError("duplicate_id", node.id, "appears twice in input")
            check_stored_name(node.name, self.max_name_length)
            for block in node.blocks:
                check_stored_content(block.content, self.max_content_length)
            candidate[node.id] = node.model_copy(
                update={"blocks": validate_blocks(node.blocks)}
            )

        check_integrity(candidate)
        removed = [nid for nid in self._nodes if nid not in candidate]
        self._nodes = candidate
        self._issued_ids.update(candidate)
        logger.info("Loaded %d nodes into store", len(candidate))

        self._notify(
            [StructuralChange(kind="node_removed", node_id=nid) for nid in removed]
            + [
                StructuralChange(kind="node_added", node_id=n.id, parent_id=n.parent_id)
                for n in candidate.values()
            ]
        )

    # -- Internal --

    def _reserve_id(self) -> str:
        node_id = new_node_id()
        while node_id in self._issued_ids:
            node_id = new_node_id()
        self._issued_ids.add(node_id)
        return node_id

    def _prepare_blocks(self, blocks: Sequence[Block], *, sanitize: bool) -> list[Block]:
        ordered = validate_blocks(blocks)
        if not sanitize:
            for block in ordered:
                check_stored_content(block.content, self.max_content_length)
            return [b.model_copy() for b in ordered]
        return [
            b.model_copy(update={"content": sanitize_content(b.content, self.max_content_length)})
            for b in ordered
        ]

    @staticmethod
    def _block_index(node: Node, block_id: str) -> int:
        for i, block in enumerate(node.blocks):
            if block.id == block_id:
                return i
        raise BlockNotFound(node.id, block_id)

    @staticmethod
    def _touch(node: Node, **changes: object) -> Node:
        return node.model_copy(
            update={**changes, "version": node.version + 1, "updated_at": datetime.now(UTC)}
        )

    def _replace(self, node: Node) -> Node:
        candidate = dict(self._nodes)
        candidate[node.id] = node
        self._commit(
            candidate,
            [StructuralChange(kind="node_updated", node_id=node.id, parent_id=node.parent_id)],
        )
        return node

    def _commit(self, candidate: dict[str, Node], changes: list[StructuralChange]) -> None:
        check_integrity(candidate)
        self._nodes = candidate
        self._notify(changes)

    def _notify(self, changes: Iterable[StructuralChange]) -> None:
        """Deliver changes in order. Changes raised by listeners are queued
        behind the ones already being delivered rather than nested."""
        self._pending.extend(changes)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                change = self._pending.popleft()
                for listener in list(self._listeners):
                    listener(change)
        except Exception:
            self._pending.clear()
            raise
        finally:
            self._dispatching = False


def _renumber(blocks: list[Block]) -> list[Block]:
    return [
        b if b.order == i else b.model_copy(update={"order": i})
        for i, b in enumerate(blocks)
    ]
