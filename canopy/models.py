"""Canonical data structures for Canopy.

Defined once here, referenced everywhere else. Nodes and blocks are the
records held by the NodeStore; branch metadata is what the BranchingEngine
hands to the VersionHistory; structural changes are what the store tells
the rendering layer about.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

BlockType = Literal["prompt", "response", "note"]
BLOCK_TYPES: tuple[str, ...] = ("prompt", "response", "note")

EditSource = Literal["inline_edit", "chat_interface_edit"]
BranchReason = Literal["prompt_edit", "response_edit", "note_edit"]
ChangeKind = Literal["node_added", "node_removed", "node_updated", "node_moved"]

# ---------------------------------------------------------------------------
# Tree records
# ---------------------------------------------------------------------------


class Position(BaseModel):
    x: float = 0.0  # horizontal center of the node
    y: float = 0.0  # top edge of the node's depth band


class Block(BaseModel):
    id: str
    type: BlockType
    content: str = ""
    order: int = 0

    # Presentation state
    minimized: bool = False
    width: float | None = None
    height: float | None = None


class Node(BaseModel):
    """One element of the tree. Links are identifiers into the store's map."""

    id: str
    parent_id: str | None = None
    children: list[str] = Field(default_factory=list)
    depth: int = 0
    position: Position = Field(default_factory=Position)
    blocks: list[Block] = Field(default_factory=list)

    # Display metadata
    name: str = ""
    collapsed: bool = False
    width: float | None = None
    height: float | None = None
    branched_from: str | None = None
    created_at: datetime
    updated_at: datetime
    version: int = 1

    def find_block(self, block_id: str) -> Block | None:
        return next((b for b in self.blocks if b.id == block_id), None)


# ---------------------------------------------------------------------------
# Branching
# ---------------------------------------------------------------------------


class BranchMetadata(BaseModel):
    """Record of one fork-on-edit. Appended to the VersionHistory."""

    branch_id: str
    original_node_id: str
    branch_node_id: str
    block_id: str  # block on the original whose content differed
    branch_block_id: str  # its counterpart on the branch
    edit_source: EditSource
    reason: BranchReason
    previous_content: str
    new_content: str
    timestamp: datetime


class HistorySummary(BaseModel):
    total_branches: int = 0
    original_node_count: int = 0
    oldest_branch: datetime | None = None
    newest_branch: datetime | None = None


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


class Message(BaseModel):
    node_id: str
    block_id: str
    type: BlockType
    content: str


class ConversationThread(BaseModel):
    root_node_id: str
    target_node_id: str
    node_path: list[str]
    messages: list[Message]
    depth: int


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class StructuralChange(BaseModel):
    """Delivered to store subscribers after a change has been committed."""

    kind: ChangeKind
    node_id: str
    parent_id: str | None = None
    position: Position | None = None
