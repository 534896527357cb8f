from __future__ import annotations
import logging
from typing import Awaitable, Callable

from ..domain.errors import BoundarySearchInconsistent, EpochIndexUnavailable, EpochNotYetReached
from ..domain.value_types import DomainId, Height
from .reader import EpochOracle, StateReader

log = logging.getLogger(__name__)

EpochAt = Callable[[int], Awaitable["int | None"]]


async def locate_epoch_start(epoch_at: EpochAt, target: int, *, head_height: int) -> int:
    """
    First height in [1, head_height] whose epoch index is `target`.

    `epoch_at` must be non-decreasing over height wherever it is not None, and
    None may only occur before the first height with a record. The answer is
    re-checked after the search; a mismatch raises BoundarySearchInconsistent.
    """
    if target < 0:
        raise ValueError(f"target epoch must be non-negative, got {target}")
    if head_height < 1:
        raise EpochIndexUnavailable(f"no blocks to search (head={head_height})")

    head_epoch = await epoch_at(head_height)
    if head_epoch is None:
        raise EpochIndexUnavailable(f"could not read epoch index at head #{head_height}")
    if target > head_epoch:
        raise EpochNotYetReached(target, head_epoch)

    lo, hi = 1, head_height
    steps = 0
    while lo < hi:
        steps += 1
        mid = (lo + hi) // 2
        e = await epoch_at(mid)
        if e is None:
            # summary not stored yet this early
            lo = mid + 1
        elif e >= target:
            hi = mid
        else:
            lo = mid + 1
        if steps % 5 == 0:
            log.debug("[bs] step=%d mid=%d epoch@mid=%s lo=%d hi=%d", steps, mid, e, lo, hi)

    found = await epoch_at(lo)
    if found != target:
        raise BoundarySearchInconsistent(target, lo, found)
    log.debug("[bs] epoch %d starts at #%d after %d steps", target, lo, steps)
    return lo


class EpochBoundaryLocator:
    """Ledger-bound locator; re-reads the finalized head on every search."""

    def __init__(self, reader: StateReader, oracle: EpochOracle | None = None) -> None:
        self.reader = reader
        self.oracle = oracle or EpochOracle(reader)

    async def head_epoch(self, domain_id: DomainId) -> int:
        head = await self.reader.head_height()
        e = await self.oracle.epoch_at(domain_id, head)
        if e is None:
            raise EpochIndexUnavailable(f"could not read current epoch at head #{head}")
        return e

    async def locate_start(self, domain_id: DomainId, target: int) -> Height:
        head = await self.reader.head_height()

        async def epoch_at(h: int) -> int | None:
            return await self.oracle.epoch_at(domain_id, Height(h))

        return Height(await locate_epoch_start(epoch_at, target, head_height=head))

    async def locate_end(self, domain_id: DomainId, epoch: int) -> Height | None:
        """Last height of `epoch`, or None while the epoch is still open."""
        try:
            next_start = await self.locate_start(domain_id, epoch + 1)
        except EpochNotYetReached:
            return None
        return Height(next_start - 1)
