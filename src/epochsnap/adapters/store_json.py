from __future__ import annotations
import os, json, asyncio, logging
from typing import Sequence
from ..ports.storage import SnapshotStore
from ..domain.errors import SnapshotStoreError
from ..domain.models import EpochRecord, ensure_ascending

log = logging.getLogger(__name__)


class JSONSnapshotStore(SnapshotStore):
    """Whole-file JSON array of epoch rows; the format the dashboard reads."""

    def __init__(self, path: str) -> None:
        self.path = path

    async def load(self) -> list[EpochRecord]:
        return await asyncio.to_thread(self._read, self.path)

    async def save(self, records: Sequence[EpochRecord]) -> None:
        try:
            ensure_ascending(records)
        except ValueError as e:
            raise SnapshotStoreError(f"refusing to write {self.path}: {e}") from e
        body = json.dumps([r.to_json() for r in records], indent=2) + "\n"
        await asyncio.to_thread(self._write, self.path, body)
        log.info("[write] %s • count=%d", self.path, len(records))

    @staticmethod
    def _read(path: str) -> list[EpochRecord]:
        if not os.path.exists(path):
            return []
        try:
            with open(path, "r") as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                raise ValueError(f"expected a JSON array, got {type(rows).__name__}")
            return [EpochRecord.from_json(r) for r in rows]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SnapshotStoreError(f"cannot load {path}: {e}") from e

    @staticmethod
    def _write(path: str, body: str) -> None:
        tmp = path + ".tmp"
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(tmp, "w") as f:
                f.write(body); f.flush(); os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as e:
            raise SnapshotStoreError(f"cannot write {path}: {e}") from e
