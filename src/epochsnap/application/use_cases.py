from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass

from epochsnap.adapters.ledger_substrate import SubstrateLedger
from epochsnap.adapters.store_json import JSONSnapshotStore
from epochsnap.adapters.store_parquet import ParquetSnapshotStore
from epochsnap.application.assembler import SnapshotAssembler
from epochsnap.application.config import RunConfig
from epochsnap.application.locator import EpochBoundaryLocator
from epochsnap.application.pipeline import OnEpoch, run_extraction
from epochsnap.application.reader import EpochOracle, StateReader
from ..domain.models import SnapshotView
from ..domain.value_types import CURRENT, DomainId, EpochSpec, Height
from ..ports.ledger import LedgerClient
from ..ports.storage import SnapshotStore

log = logging.getLogger(__name__)


def open_store(path: str) -> SnapshotStore:
    """Parquet for *.parquet, JSON for everything else."""
    if path.lower().endswith(".parquet"):
        return ParquetSnapshotStore(path)
    return JSONSnapshotStore(path)


async def backfill_epochs(
    *,
    ledger: LedgerClient,
    store: SnapshotStore,
    domain_id: DomainId,
    start_epoch: EpochSpec,
    end_epoch: EpochSpec,
    append: bool,
    cancel: asyncio.Event | None = None,
    on_epoch: OnEpoch | None = None,
) -> dict[str, int]:
    existing = await store.load() if append else []
    reader = StateReader(ledger)
    oracle = EpochOracle(reader)
    locator = EpochBoundaryLocator(reader, oracle)
    rows = await run_extraction(
        locator=locator,
        assembler=SnapshotAssembler(reader),
        store=store,
        domain_id=domain_id,
        start_epoch=start_epoch,
        end_epoch=end_epoch,
        existing=existing,
        cancel=cancel,
        on_epoch=on_epoch,
    )
    return {
        "existing": len(existing),
        "appended": len(rows) - len(existing),
        "total": len(rows),
        "last_epoch": rows[-1].epoch if rows else -1,
        "ledger_reads": oracle.reads,
    }


async def backfill_from_config(
    cfg: RunConfig,
    *,
    cancel: asyncio.Event | None = None,
    on_epoch: OnEpoch | None = None,
) -> dict[str, int]:
    ledger = SubstrateLedger(cfg.ws_url, timeout_s=cfg.timeout_s)
    try:
        return await backfill_epochs(
            ledger=ledger,
            store=open_store(cfg.out),
            domain_id=cfg.domain_id,
            start_epoch=cfg.start_epoch,
            end_epoch=cfg.end_epoch,
            append=cfg.append,
            cancel=cancel,
            on_epoch=on_epoch,
        )
    finally:
        await ledger.aclose()


@dataclass(slots=True, frozen=True)
class EpochReading:
    """One epoch as seen now. `end`/`end_height` stay None while the epoch is open."""
    domain_id: DomainId
    epoch: int
    head_epoch: int
    start_height: Height
    start: SnapshotView | None
    end_height: Height | None
    end: SnapshotView | None

    @property
    def complete(self) -> bool: return self.end_height is not None


async def read_epoch(*, ledger: LedgerClient, domain_id: DomainId, epoch: EpochSpec = CURRENT) -> EpochReading:
    reader = StateReader(ledger)
    locator = EpochBoundaryLocator(reader)
    head_epoch = await locator.head_epoch(domain_id)
    target = head_epoch if epoch == CURRENT else int(epoch)
    log.info("[epoch] target = %d (current head epoch is %d)", target, head_epoch)

    start_h = await locator.locate_start(domain_id, target)
    end_h = await locator.locate_end(domain_id, target)
    if end_h is None:
        log.info("[epoch] %d is still open; rewards not final", target)
    return EpochReading(
        domain_id=domain_id,
        epoch=target,
        head_epoch=head_epoch,
        start_height=start_h,
        start=await reader.read(domain_id, start_h),
        end_height=end_h,
        end=None if end_h is None else await reader.read(domain_id, end_h),
    )

