"""Fork-on-edit: editing prior content creates a sibling instead of rewriting it."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from canopy.history.store import VersionHistory
from canopy.models import BranchMetadata, EditSource, Node
from canopy.tree.errors import BlockNotFound, BranchCreationError
from canopy.tree.store import NodeStore, new_block_id
from canopy.tree.validation import sanitize_content

logger = logging.getLogger(__name__)

BRANCHING_BLOCK_TYPES = frozenset({"prompt", "response"})
BRANCH_NAME_SUFFIX = " (branch)"


@dataclass
class BranchResult:
    success: bool
    original_node_id: str
    new_node_id: str | None = None
    branch_metadata: BranchMetadata | None = None
    error: BranchCreationError | None = None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


@dataclass
class EditOutcome:
    """What ``edit_block`` did: an in-place update or a new branch."""

    node_id: str
    branched: bool
    branch: BranchResult | None = None


class BranchingEngine:
    def __init__(self, store: NodeStore, history: VersionHistory) -> None:
        self.store = store
        self.history = history

    @staticmethod
    def should_branch(block_type: str) -> bool:
        return block_type in BRANCHING_BLOCK_TYPES

    def create_branch_from_edit(
        self,
        original_node_id: str,
        block_id: str,
        new_content: str,
        edit_source: EditSource = "inline_edit",
    ) -> BranchResult:
        """Create a sibling of the original carrying the edited content.

        Missing node or block raises. Anything that goes wrong after that is
        rolled back and reported through the returned BranchResult. The
        original node is left untouched either way.
        """
        original = self.store.get_node(original_node_id)
        block = original.find_block(block_id)
        if block is None:
            raise BlockNotFound(original_node_id, block_id)
        sanitized = sanitize_content(new_content, self.store.max_content_length)

        branch: Node | None = None
        try:
            blocks = []
            branch_block_id = ""
            for b in original.blocks:
                clone = b.model_copy(update={"id": new_block_id()})
                if b.id == block_id:
                    clone = clone.model_copy(update={"content": sanitized})
                    branch_block_id = clone.id
                blocks.append(clone)

            branch = self.store.create_node(
                original.parent_id,
                blocks,
                name=self._branch_name(original.name),
                insert_after=original.id if original.parent_id is not None else None,
                branched_from=original.id,
                sanitize=False,
            )

            metadata = BranchMetadata(
                branch_id=f"branch_{uuid4()}",
                original_node_id=original.id,
                branch_node_id=branch.id,
                block_id=block_id,
                branch_block_id=branch_block_id,
                edit_source=edit_source,
                reason=f"{block.type}_edit",
                previous_content=block.content,
                new_content=sanitized,
                timestamp=datetime.now(UTC),
            )
            self.history.record_branch(metadata)
        except Exception as e:
            logger.exception("Branch creation from %s failed", original_node_id)
            if branch is not None and branch.id in self.store:
                self.store.delete_node(branch.id)
            return BranchResult(
                success=False,
                original_node_id=original_node_id,
                error=BranchCreationError(original_node_id, e),
            )

        logger.info(
            "Branched %s -> %s (%s, %s)",
            original.id, branch.id, metadata.reason, edit_source,
        )
        return BranchResult(
            success=True,
            original_node_id=original.id,
            new_node_id=branch.id,
            branch_metadata=metadata,
        )

    def edit_block(
        self,
        node_id: str,
        block_id: str,
        content: str,
        edit_source: EditSource = "chat_interface_edit",
    ) -> EditOutcome:
        """Apply an edit the way the chat surface expects.

        Notes and still-empty prompt/response blocks are updated in place.
        Edits to filled prompt/response blocks fork a branch; a failed fork
        raises its BranchCreationError.
        """
        node = self.store.get_node(node_id)
        block = node.find_block(block_id)
        if block is None:
            raise BlockNotFound(node_id, block_id)

        sanitized = sanitize_content(content, self.store.max_content_length)
        if sanitized == block.content:
            return EditOutcome(node_id=node_id, branched=False)

        if not self.should_branch(block.type) or block.content == "":
            self.store.update_block_content(node_id, block_id, content)
            return EditOutcome(node_id=node_id, branched=False)

        result = self.create_branch_from_edit(node_id, block_id, content, edit_source)
        if not result.success:
            raise result.error
        return EditOutcome(node_id=result.new_node_id, branched=True, branch=result)

    def get_branch_history(self, node_id: str) -> list[BranchMetadata]:
        return self.history.get_version_chain(node_id)

    def _branch_name(self, name: str) -> str:
        if not name:
            return ""
        room = self.store.max_name_length - len(BRANCH_NAME_SUFFIX)
        return name[:room].rstrip() + BRANCH_NAME_SUFFIX
