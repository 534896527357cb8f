"""Tests for the JSON and Parquet snapshot stores."""

import json

import pytest

from epochsnap.adapters.store_json import JSONSnapshotStore
from epochsnap.adapters.store_parquet import ParquetSnapshotStore
from epochsnap.application.use_cases import open_store
from epochsnap.domain.errors import SnapshotStoreError
from epochsnap.domain.models import EpochRecord

BIG = 2**64 + 12345


def rows(n=3):
    out = []
    for ep in range(n):
        out.append(EpochRecord(
            domain_id=0, epoch=ep, start_height=ep * 100 + 1, end_height=ep * 100 + 100,
            start_handle_id=f"0x{ep:02x}", end_handle_id=None if ep == 1 else f"0x{ep + 1:02x}",
            total_stake=None if ep == 2 else str(BIG + ep),
            operator_stakes={} if ep == 2 else {0: str(BIG), 5: "1"},
            rewards={1: str(2**53 + 1)},
        ))
    return out


@pytest.fixture(params=["json", "parquet"])
def store_path(request, tmp_path):
    return str(tmp_path / "data" / f"epochs.{request.param}")


class TestStores:

    @pytest.mark.asyncio
    async def test_missing_file_loads_empty(self, store_path):
        assert await open_store(store_path).load() == []

    @pytest.mark.asyncio
    async def test_round_trip_exact(self, store_path):
        store = open_store(store_path)
        await store.save(rows())
        loaded = await open_store(store_path).load()
        assert loaded == rows()
        assert int(loaded[0].total_stake) == BIG
        assert int(loaded[0].rewards[1]) == 2**53 + 1

    @pytest.mark.asyncio
    async def test_save_replaces_whole_sequence(self, store_path):
        store = open_store(store_path)
        await store.save(rows(3))
        await store.save(rows(1))
        assert [r.epoch for r in await store.load()] == [0]

    @pytest.mark.asyncio
    async def test_no_temp_file_left(self, store_path, tmp_path):
        await open_store(store_path).save(rows())
        assert sorted(p.name for p in (tmp_path / "data").iterdir()) == [store_path.rsplit("/", 1)[1]]

    @pytest.mark.asyncio
    async def test_out_of_order_rejected(self, store_path):
        store = open_store(store_path)
        bad = rows(2)[::-1]
        with pytest.raises(SnapshotStoreError):
            await store.save(bad)

    @pytest.mark.asyncio
    async def test_corrupt_file(self, store_path, tmp_path):
        (tmp_path / "data").mkdir()
        with open(store_path, "w") as f:
            f.write("{not json")
        with pytest.raises(SnapshotStoreError):
            await open_store(store_path).load()

    @pytest.mark.asyncio
    async def test_unwritable_location(self, store_path, tmp_path):
        # "data" is a plain file, so the store's directory cannot be created
        (tmp_path / "data").write_text("")
        with pytest.raises(SnapshotStoreError, match="cannot write"):
            await open_store(store_path).save(rows())


class TestJsonFormat:

    @pytest.mark.asyncio
    async def test_big_integers_written_as_strings(self, tmp_path):
        path = tmp_path / "epochs.json"
        await JSONSnapshotStore(str(path)).save(rows(1))
        raw = json.loads(path.read_text())
        assert raw[0]["totalStake"] == str(BIG)
        assert raw[0]["operatorStakes"] == {"0": str(BIG), "5": "1"}

    @pytest.mark.asyncio
    async def test_not_an_array(self, tmp_path):
        path = tmp_path / "epochs.json"
        path.write_text('{"epoch": 1}')
        with pytest.raises(SnapshotStoreError):
            await JSONSnapshotStore(str(path)).load()


def test_open_store_picks_adapter_by_suffix():
    assert isinstance(open_store("x/epochs.parquet"), ParquetSnapshotStore)
    assert isinstance(open_store("x/epochs.PARQUET"), ParquetSnapshotStore)
    assert isinstance(open_store("x/epochs.json"), JSONSnapshotStore)
