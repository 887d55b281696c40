"""Input sanitization and the whole-tree integrity check.

``check_integrity`` is the single source of truth for "is this tree
well-formed". It runs against any id -> Node mapping so the store can check
a hypothetical post-state before making it visible.
"""

import html
import logging
import re
from collections.abc import Mapping, Sequence

from canopy.models import BLOCK_TYPES, Block, Node
from canopy.tree.errors import TreeStructureError, ValidationError

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 50_000
MAX_NAME_LENGTH = 100

NODE_MIN_SIZE = 100
NODE_MAX_SIZE = 1200
BLOCK_MIN_HEIGHT = 60
BLOCK_MAX_HEIGHT = 400

_NAME_DISALLOWED = re.compile(r"[^A-Za-z0-9\s\-_.]")
_NAME_UNSAFE = re.compile(r"[<>\"'&]")
# A raw HTML-significant character, or an ampersand that does not start a
# complete character reference.
_UNESCAPED = re.compile(
    r"[<>\"']|&(?!(?:[A-Za-z][A-Za-z0-9]*|#[0-9]+|#[xX][0-9A-Fa-f]+);)"
)


def sanitize_content(content: object, max_length: int = MAX_CONTENT_LENGTH) -> str:
    """Escape HTML-significant characters and cap the stored length.

    The cut never splits a character reference: a trailing partial ``&...``
    is dropped along with the rest of the overflow.
    """
    if not isinstance(content, str):
        raise ValidationError("content", f"expected text, got {type(content).__name__}")
    escaped = html.escape(content, quote=True)
    if len(escaped) > max_length:
        logger.warning(
            "Content too long (%d chars), truncating to %d", len(escaped), max_length
        )
        escaped = escaped[:max_length]
        amp = escaped.rfind("&")
        if amp != -1 and ";" not in escaped[amp:]:
            escaped = escaped[:amp]
    return escaped


def check_stored_content(content: str, max_length: int = MAX_CONTENT_LENGTH) -> None:
    """Reject content that could not have come out of ``sanitize_content``."""
    if len(content) > max_length:
        raise ValidationError("content", f"longer than {max_length} characters")
    match = _UNESCAPED.search(content)
    if match:
        raise ValidationError(
            "content", f"unescaped {match.group()[0]!r} at offset {match.start()}"
        )


def check_stored_name(name: str, max_length: int = MAX_NAME_LENGTH) -> None:
    if len(name) > max_length:
        raise ValidationError("name", f"longer than {max_length} characters")
    if _NAME_UNSAFE.search(name):
        raise ValidationError("name", "contains HTML-significant characters")


def sanitize_name(name: object, max_length: int = MAX_NAME_LENGTH) -> str:
    if not isinstance(name, str):
        raise ValidationError("name", f"expected text, got {type(name).__name__}")
    trimmed = name.strip()
    if len(trimmed) > max_length:
        raise ValidationError("name", f"longer than {max_length} characters")
    if _NAME_DISALLOWED.search(trimmed):
        logger.warning("Node name %r contains invalid characters, stripping", trimmed)
        trimmed = _NAME_DISALLOWED.sub("", trimmed)
    return trimmed


def check_dimension(field: str, value: float | None, low: float, high: float) -> None:
    if value is None:
        return
    if not low <= value <= high:
        raise ValidationError(field, f"must be between {low} and {high}, got {value}")


def validate_blocks(blocks: Sequence[Block]) -> list[Block]:
    """Check a block list supplied by a caller and return it sorted by order."""
    seen: set[str] = set()
    for block in blocks:
        if block.type not in BLOCK_TYPES:
            raise ValidationError("block.type", f"unknown block type {block.type!r}")
        if not block.id:
            raise ValidationError("block.id", "must be non-empty")
        if block.id in seen:
            raise ValidationError("block.id", f"duplicate block id {block.id}")
        seen.add(block.id)
        check_dimension("block.height", block.height, BLOCK_MIN_HEIGHT, BLOCK_MAX_HEIGHT)

    ordered = sorted(blocks, key=lambda b: b.order)
    if [b.order for b in ordered] != list(range(len(ordered))):
        raise ValidationError(
            "block.order", "order values must be a permutation of 0..n-1"
        )
    return ordered


def check_integrity(nodes: Mapping[str, Node]) -> None:
    """Raise TreeStructureError naming the first violation found. O(n)."""
    for key, node in nodes.items():
        if node.id != key:
            raise TreeStructureError(
                "duplicate_id", key, f"record stored under {key} carries id {node.id}"
            )

    for node in nodes.values():
        if node.parent_id is None:
            continue
        if node.parent_id == node.id:
            raise TreeStructureError("cycle", node.id, "node is its own parent")
        if node.parent_id not in nodes:
            raise TreeStructureError(
                "orphan", node.id, f"parent {node.parent_id} does not exist"
            )

    child_sets: dict[str, set[str]] = {}
    for node in nodes.values():
        child_set = set(node.children)
        if len(child_set) != len(node.children):
            raise TreeStructureError(
                "inconsistent_children", node.id, "child list contains duplicates"
            )
        for child_id in node.children:
            child = nodes.get(child_id)
            if child is None:
                raise TreeStructureError(
                    "inconsistent_children", node.id, f"child {child_id} does not exist"
                )
            if child.parent_id != node.id:
                raise TreeStructureError(
                    "inconsistent_children",
                    node.id,
                    f"child {child_id} points at parent {child.parent_id}",
                )
        child_sets[node.id] = child_set

    for node in nodes.values():
        if node.parent_id is not None and node.id not in child_sets[node.parent_id]:
            raise TreeStructureError(
                "inconsistent_children",
                node.parent_id,
                f"node {node.id} is missing from its parent's child list",
            )

    # Every parent exists and child lists mirror parent links, so anything not
    # reachable from a root sits on a parent-pointer cycle.
    visited = 0
    stack = [n for n in nodes.values() if n.parent_id is None]
    for root in stack:
        if root.depth != 0:
            raise TreeStructureError("depth_mismatch", root.id, "root depth must be 0")
    while stack:
        node = stack.pop()
        visited += 1
        _check_block_order(node)
        for child_id in node.children:
            child = nodes[child_id]
            if child.depth != node.depth + 1:
                raise TreeStructureError(
                    "depth_mismatch",
                    child.id,
                    f"depth {child.depth} under parent depth {node.depth}",
                )
            stack.append(child)

    if visited != len(nodes):
        unreachable = next(
            nid for nid in nodes if not _reaches_root(nodes, nid)
        )
        raise TreeStructureError(
            "cycle", unreachable, "parent links never reach a root"
        )


def _check_block_order(node: Node) -> None:
    block_ids = [b.id for b in node.blocks]
    if len(set(block_ids)) != len(block_ids):
        raise TreeStructureError("duplicate_block_id", node.id)
    if [b.order for b in node.blocks] != list(range(len(node.blocks))):
        raise TreeStructureError(
            "block_order", node.id, "block orders are not 0..n-1 in sequence"
        )


def _reaches_root(nodes: Mapping[str, Node], node_id: str) -> bool:
    seen: set[str] = set()
    current = nodes[node_id]
    while current.parent_id is not None:
        if current.id in seen:
            return False
        seen.add(current.id)
        current = nodes[current.parent_id]
    return True
