"""Deterministic tidy-tree layout.

Each subtree is given a horizontal band as wide as the subtree needs; a
parent sits centered over the span of its children's bands. Sibling bands
never overlap and are separated by at least ``h_spacing``. Vertical position
is per depth level: each level is as tall as its tallest node.
"""

import logging

from canopy.config import LayoutSettings
from canopy.models import Node, Position
from canopy.tree.store import NodeStore

logger = logging.getLogger(__name__)


class LayoutEngine:
    """Pure function from a NodeStore snapshot to node positions."""

    def __init__(self, settings: LayoutSettings | None = None) -> None:
        self.settings = settings or LayoutSettings()

    def compute_layout(self, store: NodeStore) -> dict[str, Position]:
        nodes = {n.id: n for n in store.get_all_nodes()}
        roots = store.get_roots()
        widths = self.subtree_widths(nodes, roots)
        level_tops = self.level_offsets(nodes)

        positions: dict[str, Position] = {}
        h_spacing = self.settings.h_spacing
        cursor = 0.0
        for root in roots:
            # Stack entries: (node, left edge of its band)
            stack: list[tuple[Node, float]] = [(root, cursor)]
            while stack:
                node, left = stack.pop()
                width = widths[node.id]
                positions[node.id] = Position(x=left + width / 2, y=level_tops[node.depth])

                if node.children:
                    span = sum(widths[c] for c in node.children)
                    span += (len(node.children) - 1) * h_spacing
                    child_left = left + (width - span) / 2
                    for child_id in node.children:
                        stack.append((nodes[child_id], child_left))
                        child_left += widths[child_id] + h_spacing
            cursor += widths[root.id] + h_spacing

        logger.debug("Computed layout for %d nodes across %d roots", len(positions), len(roots))
        return positions

    def subtree_widths(self, nodes: dict[str, Node], roots: list[Node]) -> dict[str, float]:
        """Band width per node, computed bottom-up without recursion."""
        order: list[Node] = []
        stack = list(roots)
        while stack:
            node = stack.pop()
            order.append(node)
            stack.extend(nodes[c] for c in node.children)

        node_width = self.settings.node_width
        h_spacing = self.settings.h_spacing
        widths: dict[str, float] = {}
        # Reverse preorder visits every child before its parent.
        for node in reversed(order):
            if not node.children:
                widths[node.id] = node_width
                continue
            total = sum(widths[c] for c in node.children)
            total += (len(node.children) - 1) * h_spacing
            widths[node.id] = max(node_width, total)
        return widths

    def node_height(self, node: Node) -> float:
        s = self.settings
        if node.collapsed:
            return s.collapsed_node_height
        if node.height is not None:
            return node.height
        total = s.node_header_height
        for block in node.blocks:
            if block.minimized:
                total += s.minimized_block_height
            elif block.height is not None:
                total += block.height
            else:
                total += s.default_block_height
        return total

    def level_offsets(self, nodes: dict[str, Node]) -> dict[int, float]:
        """Top y of each depth level."""
        tallest: dict[int, float] = {}
        for node in nodes.values():
            tallest[node.depth] = max(tallest.get(node.depth, 0.0), self.node_height(node))

        tops: dict[int, float] = {}
        y = 0.0
        for depth in range(len(tallest)):
            tops[depth] = y
            y += tallest.get(depth, 0.0) + self.settings.v_spacing
        return tops

    def canvas_bounds(self, store: NodeStore) -> tuple[float, float]:
        """(width, height) of the area the laid-out tree occupies."""
        nodes = {n.id: n for n in store.get_all_nodes()}
        if not nodes:
            return (0.0, 0.0)
        roots = store.get_roots()
        widths = self.subtree_widths(nodes, roots)
        width = sum(widths[r.id] for r in roots) + (len(roots) - 1) * self.settings.h_spacing

        tops = self.level_offsets(nodes)
        deepest = max(tops)
        bottom = max(self.node_height(n) for n in nodes.values() if n.depth == deepest)
        return (width, tops[deepest] + bottom)
