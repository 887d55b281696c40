"""Node tree core: store, branching, layout and thread reconstruction."""

from canopy.tree.branching import BranchingEngine, BranchResult, EditOutcome
from canopy.tree.layout import LayoutEngine
from canopy.tree.store import NodeStore
from canopy.tree.thread import ThreadBuilder

__all__ = [
    "BranchResult",
    "BranchingEngine",
    "EditOutcome",
    "LayoutEngine",
    "NodeStore",
    "ThreadBuilder",
]
