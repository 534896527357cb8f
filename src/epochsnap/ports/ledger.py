# epochsnap/ports/ledger.py
from __future__ import annotations

from typing import Any, Mapping, Protocol
from ..domain.value_types import DomainId, HandleId, Height


class LedgerClient(Protocol):
    """Port defining the read-only contract for a staking ledger node."""

    async def latest_height(self) -> Height:
        """Return the number of the latest finalized block."""

    async def resolve_handle(self, height: Height) -> HandleId:
        """Return the block hash at `height`; raise TransportError if it cannot be resolved."""

    async def read_state(self, handle: HandleId, domain_id: DomainId) -> Mapping[str, Any] | None:
        """Return the decoded staking summary for `domain_id` at `handle`, or None if absent."""

    async def aclose(self) -> None:
        """Release the underlying connection."""
