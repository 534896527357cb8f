"""Shared fakes: an in-memory ledger driven by a step function and a recording store."""

from __future__ import annotations

from typing import Callable, Sequence

import pytest

from epochsnap.domain.errors import TransportError
from epochsnap.domain.models import EpochRecord, ensure_ascending


def step_function(starts: dict[int, int]) -> Callable[[int], int | None]:
    """epoch -> first height  ==>  height -> epoch (None before the first start)."""
    ordered = sorted(starts.items(), key=lambda kv: kv[1])

    def epoch_of(height: int) -> int | None:
        current = None
        for epoch, first in ordered:
            if height >= first:
                current = epoch
        return current

    return epoch_of


def default_summary(height: int, epoch: int) -> dict:
    return {
        "current_epoch_index": epoch,
        "current_total_stake": 2**60 + epoch,
        "current_operators": {0: 10**24 + epoch, 1: 5 * 10**20},
        "current_epoch_rewards": {0: height * 10, 1: height},
    }


class FakeLedger:
    """LedgerClient over a synthetic chain; handles are the height as 0x-hex."""

    def __init__(
        self,
        epoch_of: Callable[[int], int | None],
        head: int,
        summary: Callable[[int, int], dict] = default_summary,
        fail_at: set[int] | None = None,
    ) -> None:
        self.epoch_of = epoch_of
        self.head = head
        self.summary = summary
        self.fail_at = fail_at or set()
        self.state_reads = 0
        self.closed = False

    async def latest_height(self) -> int:
        return self.head

    async def resolve_handle(self, height: int) -> str:
        if height < 1 or height > self.head:
            raise TransportError(f"no block hash at height {height}")
        return f"0x{height:064x}"

    async def read_state(self, handle: str, domain_id: int) -> dict | None:
        height = int(handle, 16)
        if height in self.fail_at:
            raise TransportError(f"boom at {height}")
        self.state_reads += 1
        epoch = self.epoch_of(height)
        if epoch is None:
            return None
        return self.summary(height, epoch)

    async def aclose(self) -> None:
        self.closed = True


class MemoryStore:
    """SnapshotStore keeping every saved sequence so tests can inspect each write."""

    def __init__(self, initial: Sequence[EpochRecord] = ()) -> None:
        self.saved: list[list[EpochRecord]] = []
        self._current = list(initial)

    async def load(self) -> list[EpochRecord]:
        return list(self._current)

    async def save(self, records: Sequence[EpochRecord]) -> None:
        ensure_ascending(records)
        self._current = list(records)
        self.saved.append(list(records))

    @property
    def current(self) -> list[EpochRecord]:
        return list(self._current)


@pytest.fixture
def scenario_ledger() -> FakeLedger:
    """Epoch 0 on [1,99], 1 on [100,199], 2 from 200; finalized head at 250."""
    return FakeLedger(step_function({0: 1, 1: 100, 2: 200}), head=250)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()
