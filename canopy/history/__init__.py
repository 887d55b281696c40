"""Branch history: append-only record of fork-on-edit events."""

from canopy.history.store import VersionHistory

__all__ = ["VersionHistory"]
