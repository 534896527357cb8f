from __future__ import annotations
import logging

from ..domain.models import EpochRecord, SnapshotView
from ..domain.value_types import DomainId, HandleId, Height
from .reader import StateReader

log = logging.getLogger(__name__)


class SnapshotAssembler:
    """Stakes from the first block of an epoch, rewards from its last block."""

    def __init__(self, reader: StateReader) -> None:
        self.reader = reader

    async def _handle(self, view: SnapshotView | None, height: Height) -> HandleId:
        return view.handle_id if view is not None else await self.reader.resolve_handle(height)

    async def assemble(self, domain_id: DomainId, epoch: int, start_height: Height, end_height: Height) -> EpochRecord:
        start = await self.reader.read(domain_id, start_height)
        end = await self.reader.read(domain_id, end_height)
        if start is None:
            log.warning("epoch %d: no staking summary at start #%d; stakes left empty", epoch, start_height)
        if end is None:
            log.warning("epoch %d: no staking summary at end #%d; rewards left empty", epoch, end_height)

        return EpochRecord(
            domain_id=domain_id,
            epoch=epoch,
            start_height=start_height,
            end_height=end_height,
            start_handle_id=await self._handle(start, start_height),
            end_handle_id=await self._handle(end, end_height),
            total_stake=start.total_stake if start is not None else None,
            operator_stakes=dict(start.operator_stakes) if start is not None else {},
            rewards=dict(end.rewards) if end is not None else {},
        )
