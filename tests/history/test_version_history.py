"""Tests for the append-only VersionHistory."""

from datetime import UTC, datetime, timedelta

from canopy.history.store import VersionHistory
from canopy.models import BranchMetadata

BASE = datetime(2025, 1, 1, tzinfo=UTC)


def _entry(original: str, branch: str, minutes: int = 0) -> BranchMetadata:
    return BranchMetadata(
        branch_id=f"branch_{original}_{branch}",
        original_node_id=original,
        branch_node_id=branch,
        block_id="block_1",
        branch_block_id="block_2",
        edit_source="inline_edit",
        reason="prompt_edit",
        previous_content="before",
        new_content="after",
        timestamp=BASE + timedelta(minutes=minutes),
    )


class TestRecording:
    def test_starts_empty(self):
        history = VersionHistory()
        assert len(history) == 0
        assert history.all_entries() == []

    def test_entries_kept_in_insertion_order(self):
        history = VersionHistory()
        first, second = _entry("a", "b"), _entry("a", "c")
        history.record_branch(first)
        history.record_branch(second)
        assert history.all_entries() == [first, second]
        assert len(history) == 2

    def test_all_entries_is_a_copy(self):
        history = VersionHistory([_entry("a", "b")])
        history.all_entries().clear()
        assert len(history) == 1


class TestQueries:
    def test_version_chain_is_chronological(self):
        late, early = _entry("a", "b", minutes=10), _entry("a", "c", minutes=1)
        history = VersionHistory([late, early])
        assert history.get_version_chain("a") == [early, late]

    def test_version_chain_includes_branch_side(self):
        forked, refork = _entry("a", "b", 0), _entry("b", "c", 5)
        history = VersionHistory([forked, refork])
        assert history.get_version_chain("b") == [forked, refork]
        assert history.get_version_chain("z") == []

    def test_get_branches(self):
        history = VersionHistory([_entry("a", "b"), _entry("a", "c"), _entry("b", "d")])
        assert history.get_branches("a") == ["b", "c"]
        assert history.get_branches("d") == []


class TestSummary:
    def test_empty_summary(self):
        summary = VersionHistory().summary()
        assert summary.total_branches == 0
        assert summary.oldest_branch is None

    def test_summary_counts(self):
        history = VersionHistory([
            _entry("a", "b", 3), _entry("a", "c", 1), _entry("x", "y", 7),
        ])
        summary = history.summary()
        assert summary.total_branches == 3
        assert summary.original_node_count == 2
        assert summary.oldest_branch == BASE + timedelta(minutes=1)
        assert summary.newest_branch == BASE + timedelta(minutes=7)
