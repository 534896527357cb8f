# epochsnap/domain/errors.py
from __future__ import annotations


class EpochSnapError(Exception):
    """Base class for every error surfaced to the caller of a run."""


class TransportError(EpochSnapError):
    """The ledger could not be reached or returned something unusable (network, timeout, malformed record)."""


class EpochNotYetReached(EpochSnapError):
    """Target epoch is above the epoch observed at the finalized head."""

    def __init__(self, target: int, head_epoch: int) -> None:
        super().__init__(f"target epoch {target} > current epoch {head_epoch}")
        self.target = target
        self.head_epoch = head_epoch


class EpochIndexUnavailable(EpochSnapError):
    """The finalized head exposes no staking summary, so no search can start."""


class BoundarySearchInconsistent(EpochSnapError):
    """Binary search ended on a height whose epoch is not the target.

    Means the epoch index is not monotonic over height, or a field alias
    resolved to the wrong value. Never downgraded to a warning.
    """

    def __init__(self, target: int, height: int, observed: int | None) -> None:
        super().__init__(
            f"failed to isolate start of epoch {target}: epoch@{height}={observed}"
        )
        self.target = target
        self.height = height
        self.observed = observed


class SnapshotStoreError(EpochSnapError):
    """Persisted snapshot sequence is unreadable or would be written out of order."""
