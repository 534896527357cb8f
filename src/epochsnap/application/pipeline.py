from __future__ import annotations
import asyncio
import logging
from typing import Callable, Sequence

from ..domain.errors import EpochNotYetReached
from ..domain.models import EpochRecord
from ..domain.value_types import CURRENT, DomainId, EpochSpec
from ..ports.storage import SnapshotStore
from .assembler import SnapshotAssembler
from .locator import EpochBoundaryLocator

log = logging.getLogger(__name__)

OnEpoch = Callable[[int, "EpochRecord | None"], None]


async def resolve_epoch_range(
    locator: EpochBoundaryLocator,
    domain_id: DomainId,
    start_epoch: EpochSpec,
    end_epoch: EpochSpec,
) -> tuple[int, int]:
    """Resolve 'current' against the finalized head, once, before any epoch is processed."""
    head_epoch = 0
    if start_epoch == CURRENT or end_epoch == CURRENT:
        head_epoch = await locator.head_epoch(domain_id)
    s = head_epoch if start_epoch == CURRENT else int(start_epoch)
    e = head_epoch if end_epoch == CURRENT else int(end_epoch)
    if s > e:
        raise ValueError(f"start_epoch ({s}) must be <= end_epoch ({e})")
    return s, e


async def run_extraction(
    *,
    locator: EpochBoundaryLocator,
    assembler: SnapshotAssembler,
    store: SnapshotStore,
    domain_id: DomainId,
    start_epoch: EpochSpec,
    end_epoch: EpochSpec,
    existing: Sequence[EpochRecord] = (),
    cancel: asyncio.Event | None = None,
    on_epoch: OnEpoch | None = None,
) -> list[EpochRecord]:
    """
    Extract complete epochs in [start_epoch, end_epoch], ascending.

    `existing` is the already-persisted prefix (append mode). Epochs at or below
    its last epoch for this domain are skipped. The whole accumulated sequence
    is saved after every completed epoch. The run stops normally at the first
    epoch whose successor has not started yet, and between epochs once
    `cancel` is set. Ledger errors propagate; saved progress stays saved.
    """
    s, e = await resolve_epoch_range(locator, domain_id, start_epoch, end_epoch)
    rows: list[EpochRecord] = list(existing)
    last_written = len(rows)
    done_upto = max((r.epoch for r in rows if r.domain_id == domain_id), default=-1)
    log.info("[range] domain=%d epochs %d…%d (existing=%d)", domain_id, s, e, len(rows))

    for ep in range(s, e + 1):
        if cancel is not None and cancel.is_set():
            log.warning("[cancel] stopping before epoch %d", ep)
            break
        if ep <= done_upto:
            log.info("[skip] epoch %d already persisted", ep)
            if on_epoch: on_epoch(ep, None)
            continue

        log.info("[epoch] %d", ep)
        try:
            start_h = await locator.locate_start(domain_id, ep)
        except EpochNotYetReached as exc:
            log.info("[skip] epoch %d not reached yet (head epoch %d)", ep, exc.head_epoch)
            break
        end_h = await locator.locate_end(domain_id, ep)
        if end_h is None:
            # rewards of an open epoch are not final; never persist a provisional row
            log.info("[skip] epoch %d has no confirmed end block yet; will retry on next run", ep)
            break

        record = await assembler.assemble(domain_id, ep, start_h, end_h)
        rows.append(record)
        await store.save(rows)
        last_written = len(rows)
        log.info("[epoch] %d done: #%d…#%d", ep, start_h, end_h)
        if on_epoch: on_epoch(ep, record)

    if len(rows) > last_written:
        await store.save(rows)
    return rows
