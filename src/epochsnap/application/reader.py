from __future__ import annotations
import logging

from ..domain.decoding import normalize_summary
from ..domain.models import SnapshotView
from ..domain.value_types import DomainId, HandleId, Height
from ..ports.ledger import LedgerClient

log = logging.getLogger(__name__)


class StateReader:
    """Height -> handle -> staking summary, normalized. Read-only."""

    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger

    async def head_height(self) -> Height:
        return await self.ledger.latest_height()

    async def resolve_handle(self, height: Height) -> HandleId:
        return await self.ledger.resolve_handle(height)

    async def read(self, domain_id: DomainId, height: Height) -> SnapshotView | None:
        handle = await self.ledger.resolve_handle(height)
        raw = await self.ledger.read_state(handle, domain_id)
        if raw is None:
            # domain not active yet at this height
            return None
        return normalize_summary(raw, height=height, handle_id=handle)


class EpochOracle:
    """
    Epoch index visible at a height, or None when no summary exists there.
    Memoized per run: reads go against finalized blocks, so a height's answer
    never changes.
    """

    def __init__(self, reader: StateReader) -> None:
        self.reader = reader
        self._cache: dict[tuple[int, int], int | None] = {}
        self.reads = 0

    async def epoch_at(self, domain_id: DomainId, height: Height) -> int | None:
        key = (int(domain_id), int(height))
        if key in self._cache:
            return self._cache[key]
        view = await self.reader.read(domain_id, height)
        self.reads += 1
        epoch = None if view is None else view.epoch_index
        self._cache[key] = epoch
        return epoch
