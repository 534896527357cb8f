# epochsnap/ports/storage.py
from __future__ import annotations

from typing import Protocol, Sequence
from ..domain.models import EpochRecord


class SnapshotStore(Protocol):
    """Port for the persisted, epoch-ordered sequence of EpochRecords (e.g., JSON, Parquet)."""

    async def load(self) -> list[EpochRecord]:
        """Return the persisted sequence, or [] if nothing was persisted yet."""

    async def save(self, records: Sequence[EpochRecord]) -> None:
        """Replace the persisted sequence with `records` (always the full sequence, never a diff)."""
