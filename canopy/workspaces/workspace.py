"""A Workspace wires one tree's components together.

The store notifies the workspace of every structural change, and the
workspace answers by recomputing the layout and writing it back, so
positions are always current when a mutation returns.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from canopy.config import LayoutSettings, LimitSettings
from canopy.export.schemas import ExportDocument
from canopy.export.service import export_store, import_document
from canopy.history.store import VersionHistory
from canopy.models import BranchMetadata, StructuralChange
from canopy.tree.branching import BranchingEngine
from canopy.tree.layout import LayoutEngine
from canopy.tree.store import Listener, NodeStore
from canopy.tree.thread import ThreadBuilder

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(
        self,
        workspace_id: str,
        title: str = "",
        *,
        layout: LayoutSettings | None = None,
        limits: LimitSettings | None = None,
        history: Iterable[BranchMetadata] = (),
        created_at: datetime | None = None,
    ) -> None:
        limits = limits or LimitSettings()
        self.id = workspace_id
        self.title = title
        self.created_at = created_at or datetime.now(UTC)
        self.updated_at = self.created_at

        self.store = NodeStore(
            max_content_length=limits.max_content_length,
            max_name_length=limits.max_name_length,
        )
        self.history = VersionHistory(history)
        self.branching = BranchingEngine(self.store, self.history)
        self.threads = ThreadBuilder(self.store)
        self.layout_engine = LayoutEngine(layout)
        self.store.subscribe(self._on_change)

    @classmethod
    def from_export(
        cls,
        workspace_id: str,
        data: ExportDocument | dict[str, Any],
        title: str = "",
        **kwargs: Any,
    ) -> "Workspace":
        """Build a workspace from an export document (fully validated)."""
        workspace = cls(workspace_id, title, **kwargs)
        workspace.store.unsubscribe(workspace._on_change)
        try:
            import_document(workspace.store, data)
        finally:
            workspace.store.subscribe(workspace._on_change)
        workspace.relayout()
        return workspace

    def subscribe(self, listener: Listener) -> None:
        self.store.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self.store.unsubscribe(listener)

    def relayout(self) -> list[str]:
        positions = self.layout_engine.compute_layout(self.store)
        return self.store.apply_layout(positions)

    def export(self) -> ExportDocument:
        return export_store(self.store)

    def _on_change(self, change: StructuralChange) -> None:
        if change.kind == "node_moved":
            return
        self.updated_at = datetime.now(UTC)
        self.relayout()
