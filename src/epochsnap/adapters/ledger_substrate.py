from __future__ import annotations
import asyncio
import logging
import threading
from typing import Any, Callable, Mapping, TypeVar

from scalecodec.exceptions import InvalidScaleTypeValueException, RemainingScaleBytesNotEmptyException
from substrateinterface import SubstrateInterface
from substrateinterface.exceptions import BlockNotFound, StorageFunctionNotFound, SubstrateRequestException
from websocket import WebSocketException

from ..domain.errors import TransportError
from ..domain.value_types import DomainId, HandleId, Height
from ..ports.ledger import LedgerClient

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WS = "wss://rpc.mainnet.subspace.foundation/ws"

# Everything the node or the SCALE decoder can throw at us is a transport failure.
_TRANSPORT_EXC = (
    SubstrateRequestException,
    BlockNotFound,
    StorageFunctionNotFound,
    RemainingScaleBytesNotEmptyException,
    InvalidScaleTypeValueException,
    WebSocketException,
    ConnectionError,
    OSError,
    ValueError,
)


class SubstrateLedger(LedgerClient):
    """
    Reads `Domains.DomainStakingSummary` through substrate-interface.

    substrate-interface is blocking, so every call runs in a worker thread under
    `asyncio.wait_for`. Calls are strictly sequential; after a timeout the run
    is over, so the abandoned thread never races a later call.
    """
    def __init__(
        self,
        url: str = DEFAULT_WS,
        *,
        timeout_s: float = 30.0,
        pallet: str = "Domains",
        storage_item: str = "DomainStakingSummary",
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.pallet = pallet
        self.storage_item = storage_item
        self._substrate: SubstrateInterface | None = None

    async def _call(self, what: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{what} timed out after {self.timeout_s:g}s") from e
        except _TRANSPORT_EXC as e:
            raise TransportError(f"{what} failed: {type(e).__name__}: {e}") from e

    async def _conn(self) -> SubstrateInterface:
        if self._substrate is not None:
            return self._substrate
        log.info("[connect] %s", self.url)
        lock = threading.Lock()
        built: list[SubstrateInterface] = []
        abandoned = False

        def connect() -> SubstrateInterface:
            s = SubstrateInterface(url=self.url, ws_options={"timeout": self.timeout_s})
            with lock:
                late = abandoned
                if not late:
                    built.append(s)
            if late:
                s.close()
            return s

        try:
            self._substrate = await self._call("connect", connect)
        except TransportError:
            # a connect that finishes after the timeout must not outlive the run
            with lock:
                abandoned = True
                stale = list(built)
            for s in stale:
                await asyncio.to_thread(s.close)
            raise
        return self._substrate

    async def latest_height(self) -> Height:
        s = await self._conn()
        head = await self._call("chain_getFinalizedHead", s.get_chain_finalised_head)
        number = await self._call("chain_getHeader", s.get_block_number, head)
        if number is None:
            raise TransportError(f"no header for finalized head {head}")
        return Height(int(number))

    async def resolve_handle(self, height: Height) -> HandleId:
        s = await self._conn()
        h = await self._call(f"chain_getBlockHash({height})", s.get_block_hash, int(height))
        if not h:
            raise TransportError(f"no block hash at height {height} (beyond chain head?)")
        return HandleId(str(h).lower())

    async def read_state(self, handle: HandleId, domain_id: DomainId) -> Mapping[str, Any] | None:
        s = await self._conn()
        obj = await self._call(
            f"{self.pallet}.{self.storage_item}({domain_id})@{handle}",
            s.query, self.pallet, self.storage_item, [int(domain_id)], block_hash=handle,
        )
        value = getattr(obj, "value", obj)
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise TransportError(f"unexpected {self.storage_item} shape at {handle}: {type(value).__name__}")
        return value

    async def aclose(self) -> None:
        if self._substrate is not None:
            s, self._substrate = self._substrate, None
            await asyncio.to_thread(s.close)
