"""Append-only log of branch metadata."""

from collections.abc import Iterable

from canopy.models import BranchMetadata, HistorySummary


class VersionHistory:
    """In-memory, append-only record of every fork-on-edit.

    Entries are kept in insertion order and never removed.
    """

    def __init__(self, entries: Iterable[BranchMetadata] = ()) -> None:
        self._entries: list[BranchMetadata] = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record_branch(self, metadata: BranchMetadata) -> None:
        self._entries.append(metadata)

    def get_version_chain(self, node_id: str) -> list[BranchMetadata]:
        """Entries where the node is the original or the branch, oldest first."""
        chain = [
            e for e in self._entries
            if e.original_node_id == node_id or e.branch_node_id == node_id
        ]
        return sorted(chain, key=lambda e: e.timestamp)

    def get_branches(self, node_id: str) -> list[str]:
        return [e.branch_node_id for e in self._entries if e.original_node_id == node_id]

    def all_entries(self) -> list[BranchMetadata]:
        return list(self._entries)

    def summary(self) -> HistorySummary:
        if not self._entries:
            return HistorySummary()
        timestamps = [e.timestamp for e in self._entries]
        return HistorySummary(
            total_branches=len(self._entries),
            original_node_count=len({e.original_node_id for e in self._entries}),
            oldest_branch=min(timestamps),
            newest_branch=max(timestamps),
        )
