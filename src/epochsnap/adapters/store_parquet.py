from __future__ import annotations
import os, asyncio, logging
from typing import Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from ..ports.storage import SnapshotStore
from ..domain.errors import SnapshotStoreError
from ..domain.models import EpochRecord, ensure_ascending
from ..domain.value_types import Amount, DomainId, HandleId, Height, OperatorId

log = logging.getLogger(__name__)

_AMOUNTS = pa.map_(pa.int64(), pa.large_string())

# big ints stay strings; Parquet readers must never see them as floats
EPOCHS_SCHEMA = pa.schema([
    pa.field("domain_id",       pa.int64()),
    pa.field("epoch",           pa.int64()),
    pa.field("start_height",    pa.int64()),
    pa.field("start_handle_id", pa.large_string()),
    pa.field("end_height",      pa.int64()),
    pa.field("end_handle_id",   pa.large_string()),
    pa.field("total_stake",     pa.large_string()),
    pa.field("operator_stakes", _AMOUNTS),
    pa.field("rewards",         _AMOUNTS),
])

def _records_to_table(records: Sequence[EpochRecord]) -> pa.Table:
    rs = list(records)
    return pa.Table.from_arrays(
        arrays=[
            pa.array([r.domain_id for r in rs],       pa.int64()),
            pa.array([r.epoch for r in rs],           pa.int64()),
            pa.array([r.start_height for r in rs],    pa.int64()),
            pa.array([r.start_handle_id for r in rs], pa.large_string()),
            pa.array([r.end_height for r in rs],      pa.int64()),
            pa.array([r.end_handle_id for r in rs],   pa.large_string()),
            pa.array([r.total_stake for r in rs],     pa.large_string()),
            pa.array([sorted(r.operator_stakes.items()) for r in rs], _AMOUNTS),
            pa.array([sorted(r.rewards.items()) for r in rs],         _AMOUNTS),
        ],
        schema=EPOCHS_SCHEMA,
    )

def _table_to_records(table: pa.Table) -> list[EpochRecord]:
    def amounts(pairs: list[tuple[int, str]] | None) -> dict[OperatorId, Amount]:
        return {OperatorId(k): Amount(v) for k, v in (pairs or [])}
    return [
        EpochRecord(
            domain_id=DomainId(row["domain_id"]),
            epoch=row["epoch"],
            start_height=Height(row["start_height"]),
            end_height=Height(row["end_height"]),
            start_handle_id=None if row["start_handle_id"] is None else HandleId(row["start_handle_id"]),
            end_handle_id=None if row["end_handle_id"] is None else HandleId(row["end_handle_id"]),
            total_stake=None if row["total_stake"] is None else Amount(row["total_stake"]),
            operator_stakes=amounts(row["operator_stakes"]),
            rewards=amounts(row["rewards"]),
        )
        for row in table.to_pylist()
    ]


class ParquetSnapshotStore(SnapshotStore):
    """Single Parquet file holding the whole epoch sequence, rewritten on every save."""

    def __init__(self, path: str, codec: str = "zstd") -> None:
        self.path = path
        self.codec = codec

    async def load(self) -> list[EpochRecord]:
        return await asyncio.to_thread(self._read)

    async def save(self, records: Sequence[EpochRecord]) -> None:
        try:
            ensure_ascending(records)
        except ValueError as e:
            raise SnapshotStoreError(f"refusing to write {self.path}: {e}") from e
        table = _records_to_table(records)
        await asyncio.to_thread(self._write, table)
        log.info("[write] %s • count=%d", self.path, len(table))

    def _read(self) -> list[EpochRecord]:
        if not os.path.exists(self.path):
            return []
        try:
            table = pq.read_table(self.path).combine_chunks()
            return _table_to_records(table)
        except (pa.ArrowException, OSError, ValueError, KeyError) as e:
            raise SnapshotStoreError(f"cannot load {self.path}: {e}") from e

    def _write(self, table: pa.Table) -> None:
        tmp = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            pq.write_table(table, tmp, compression=self.codec)
            os.replace(tmp, self.path)
        except OSError as e:
            raise SnapshotStoreError(f"cannot write {self.path}: {e}") from e
