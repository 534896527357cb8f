"""Tests for the substrate-interface adapter with the connection replaced by a stub."""

import asyncio
import time

import pytest
from scalecodec.exceptions import RemainingScaleBytesNotEmptyException
from substrateinterface.exceptions import BlockNotFound, StorageFunctionNotFound, SubstrateRequestException

from epochsnap.adapters import ledger_substrate
from epochsnap.adapters.ledger_substrate import SubstrateLedger
from epochsnap.domain.errors import TransportError


class _Obj:
    def __init__(self, value):
        self.value = value


class StubSubstrate:
    """Mimics the handful of SubstrateInterface calls the adapter uses."""

    def __init__(self, url=None, ws_options=None, **kwargs):
        self.url = url
        self.ws_options = ws_options
        self.closed = False
        self.summaries = {"0xb10c": {"current_epoch_index": 4}}
        self.queries = []

    def get_chain_finalised_head(self):
        return "0xhead"

    def get_block_number(self, block_hash):
        return 1234 if block_hash == "0xhead" else None

    def get_block_hash(self, block_id):
        return "0xB10C" if block_id == 7 else None

    def query(self, module, storage_function, params=None, block_hash=None):
        self.queries.append((module, storage_function, params, block_hash))
        if block_hash == "0xslow":
            time.sleep(0.5)
        if block_hash == "0xerr":
            raise SubstrateRequestException("state pruned")
        return _Obj(self.summaries.get(block_hash))

    def close(self):
        self.closed = True


@pytest.fixture
def stub(monkeypatch):
    monkeypatch.setattr(ledger_substrate, "SubstrateInterface", StubSubstrate)


class TestSubstrateLedger:

    @pytest.mark.asyncio
    async def test_latest_height_is_finalized_head(self, stub):
        ledger = SubstrateLedger("ws://node")
        assert await ledger.latest_height() == 1234

    @pytest.mark.asyncio
    async def test_resolve_handle_lowercases(self, stub):
        assert await SubstrateLedger("ws://node").resolve_handle(7) == "0xb10c"

    @pytest.mark.asyncio
    async def test_missing_block_is_transport_error(self, stub):
        with pytest.raises(TransportError):
            await SubstrateLedger("ws://node").resolve_handle(8)

    @pytest.mark.asyncio
    async def test_read_state(self, stub):
        ledger = SubstrateLedger("ws://node")
        assert await ledger.read_state("0xb10c", 0) == {"current_epoch_index": 4}
        assert ledger._substrate.queries == [("Domains", "DomainStakingSummary", [0], "0xb10c")]

    @pytest.mark.asyncio
    async def test_absent_summary_is_none(self, stub):
        assert await SubstrateLedger("ws://node").read_state("0xdead", 0) is None

    @pytest.mark.asyncio
    async def test_rpc_error_is_transport_error(self, stub):
        with pytest.raises(TransportError, match="state pruned"):
            await SubstrateLedger("ws://node").read_state("0xerr", 0)

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self, stub):
        ledger = SubstrateLedger("ws://node", timeout_s=0.05)
        await ledger.latest_height()
        with pytest.raises(TransportError, match="timed out"):
            await ledger.read_state("0xslow", 0)

    @pytest.mark.asyncio
    async def test_unreachable_node(self, monkeypatch):
        def refuse(url=None, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(ledger_substrate, "SubstrateInterface", refuse)
        with pytest.raises(TransportError):
            await SubstrateLedger("ws://nowhere").latest_height()

    @pytest.mark.asyncio
    async def test_aclose(self, stub):
        ledger = SubstrateLedger("ws://node")
        await ledger.latest_height()
        conn = ledger._substrate
        await ledger.aclose()
        assert conn.closed
        await ledger.aclose()

    @pytest.mark.asyncio
    async def test_socket_timeout_matches_call_timeout(self, stub):
        ledger = SubstrateLedger("ws://node", timeout_s=7)
        await ledger.latest_height()
        assert ledger._substrate.ws_options == {"timeout": 7}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [
        BlockNotFound("gone"),
        StorageFunctionNotFound("no such item"),
        RemainingScaleBytesNotEmptyException("trailing bytes"),
        ValueError("bad json"),
    ])
    async def test_library_errors_are_transport_errors(self, monkeypatch, exc):
        class Failing(StubSubstrate):
            def query(self, *args, **kwargs):
                raise exc

        monkeypatch.setattr(ledger_substrate, "SubstrateInterface", Failing)
        with pytest.raises(TransportError) as info:
            await SubstrateLedger("ws://node").read_state("0xb10c", 0)
        assert info.value.__cause__ is exc

    @pytest.mark.asyncio
    async def test_late_connection_is_closed_after_connect_timeout(self, monkeypatch):
        built = []

        class SlowConnect(StubSubstrate):
            def __init__(self, *args, **kwargs):
                time.sleep(0.3)
                super().__init__(*args, **kwargs)
                built.append(self)

        monkeypatch.setattr(ledger_substrate, "SubstrateInterface", SlowConnect)
        ledger = SubstrateLedger("ws://node", timeout_s=0.05)
        with pytest.raises(TransportError, match="connect timed out"):
            await ledger.latest_height()
        await asyncio.sleep(0.6)
        assert len(built) == 1 and built[0].closed
        assert ledger._substrate is None
