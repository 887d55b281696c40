"""Snapshot persistence for workspaces."""

import logging
from datetime import datetime

from canopy.config import LayoutSettings, LimitSettings
from canopy.db.connection import Database
from canopy.export.schemas import ExportDocument
from canopy.models import BranchMetadata
from canopy.workspaces.workspace import Workspace

logger = logging.getLogger(__name__)

_HISTORY_COLUMNS = (
    "branch_id",
    "original_node_id",
    "branch_node_id",
    "block_id",
    "branch_block_id",
    "edit_source",
    "reason",
    "previous_content",
    "new_content",
    "timestamp",
)


class WorkspaceRepository:
    """Stores each workspace as an export-shaped JSON snapshot plus its
    branch history rows. Loading goes back through the import path, so a
    stored snapshot is re-validated before it is used."""

    def __init__(
        self,
        db: Database,
        *,
        layout: LayoutSettings | None = None,
        limits: LimitSettings | None = None,
    ) -> None:
        self._db = db
        self._layout = layout
        self._limits = limits

    async def save(self, workspace: Workspace) -> None:
        """Write the snapshot and any new history rows in one transaction."""
        snapshot = workspace.export()
        entries = workspace.history.all_entries()
        async with self._db.transaction() as conn:
            await conn.execute(
                """INSERT INTO workspaces
                   (workspace_id, title, snapshot, node_count, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(workspace_id) DO UPDATE SET
                     title = excluded.title,
                     snapshot = excluded.snapshot,
                     node_count = excluded.node_count,
                     updated_at = excluded.updated_at""",
                (
                    workspace.id,
                    workspace.title,
                    snapshot.model_dump_json(),
                    snapshot.metadata.node_count,
                    workspace.created_at.isoformat(),
                    workspace.updated_at.isoformat(),
                ),
            )
            if entries:
                placeholders = ", ".join("?" for _ in range(len(_HISTORY_COLUMNS) + 1))
                await conn.executemany(
                    f"INSERT OR IGNORE INTO branch_history "
                    f"(workspace_id, {', '.join(_HISTORY_COLUMNS)}) VALUES ({placeholders})",
                    [_history_row(workspace.id, e) for e in entries],
                )
        logger.debug("Saved workspace %s (%d nodes)", workspace.id, snapshot.metadata.node_count)

    async def load(self, workspace_id: str) -> Workspace | None:
        row = await self._db.fetchone(
            "SELECT * FROM workspaces WHERE workspace_id = ?", (workspace_id,)
        )
        if row is None:
            return None

        history_rows = await self._db.fetchall(
            "SELECT * FROM branch_history WHERE workspace_id = ? ORDER BY rowid",
            (workspace_id,),
        )
        history = [BranchMetadata.model_validate(dict(r)) for r in history_rows]
        document = ExportDocument.model_validate_json(row["snapshot"])

        workspace = Workspace.from_export(
            workspace_id,
            document,
            title=row["title"],
            layout=self._layout,
            limits=self._limits,
            history=history,
            created_at=_parse_timestamp(row["created_at"]),
        )
        workspace.updated_at = _parse_timestamp(row["updated_at"])
        return workspace

    async def list_rows(self) -> list[dict]:
        rows = await self._db.fetchall(
            "SELECT workspace_id, title, node_count, created_at, updated_at "
            "FROM workspaces ORDER BY created_at DESC"
        )
        return [dict(r) for r in rows]

    async def exists(self, workspace_id: str) -> bool:
        row = await self._db.fetchone(
            "SELECT 1 FROM workspaces WHERE workspace_id = ?", (workspace_id,)
        )
        return row is not None


def _history_row(workspace_id: str, entry: BranchMetadata) -> tuple:
    values = entry.model_dump(mode="json")
    return (workspace_id, *(values[c] for c in _HISTORY_COLUMNS))


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)
