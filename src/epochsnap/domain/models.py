from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .value_types import Amount, DomainId, HandleId, Height, OperatorId


def _check_amount(name: str, v: object) -> None:
    if not isinstance(v, str) or not v.isdigit() or not v.isascii():
        raise ValueError(f"{name} must be an unsigned decimal string, got {v!r}")
    if len(v) > 1 and v[0] == "0":
        raise ValueError(f"{name} has leading zeros: {v!r}")


@dataclass(slots=True, frozen=True)
class SnapshotView:
    """Normalized staking summary read at one height."""
    height: Height
    handle_id: HandleId
    epoch_index: int | None
    total_stake: Amount | None
    operator_stakes: dict[OperatorId, Amount] = field(default_factory=dict)
    rewards: dict[OperatorId, Amount] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class EpochRecord:
    domain_id: DomainId
    epoch: int
    start_height: Height
    end_height: Height
    start_handle_id: HandleId | None
    end_handle_id: HandleId | None
    total_stake: Amount | None                  # at epoch start
    operator_stakes: dict[OperatorId, Amount]   # at epoch start
    rewards: dict[OperatorId, Amount]           # final, at epoch end

    def __post_init__(self) -> None:
        if self.domain_id < 0 or self.epoch < 0:
            raise ValueError(f"domain_id/epoch must be non-negative ({self.domain_id}, {self.epoch})")
        if self.start_height > self.end_height:
            raise ValueError(
                f"epoch {self.epoch}: start_height {self.start_height} > end_height {self.end_height}"
            )
        if self.total_stake is not None:
            _check_amount("total_stake", self.total_stake)
        for op, v in self.operator_stakes.items():
            _check_amount(f"operator_stakes[{op}]", v)
        for op, v in self.rewards.items():
            _check_amount(f"rewards[{op}]", v)

    def span(self) -> int: return self.end_height - self.start_height + 1

    def to_json(self) -> dict[str, Any]:
        return {
            "domainId": self.domain_id,
            "epoch": self.epoch,
            "startHeight": self.start_height,
            "startHandleId": self.start_handle_id,
            "endHeight": self.end_height,
            "endHandleId": self.end_handle_id,
            "totalStake": self.total_stake,
            "operatorStakes": {str(k): v for k, v in sorted(self.operator_stakes.items())},
            "rewards": {str(k): v for k, v in sorted(self.rewards.items())},
        }

    @classmethod
    def from_json(cls, obj: Mapping[str, Any]) -> "EpochRecord":
        """Inverse of `to_json`; also reads rows written with the older block/hash key names."""
        def pick(*keys: str) -> Any:
            for k in keys:
                if k in obj:
                    return obj[k]
            raise KeyError(keys[0])

        def amounts(m: Mapping[str, Any] | None) -> dict[OperatorId, Amount]:
            return {OperatorId(int(k)): Amount(str(v)) for k, v in (m or {}).items()}

        total = obj.get("totalStake")
        return cls(
            domain_id=DomainId(int(pick("domainId"))),
            epoch=int(pick("epoch")),
            start_height=Height(int(pick("startHeight", "startBlock"))),
            end_height=Height(int(pick("endHeight", "endBlock"))),
            start_handle_id=obj.get("startHandleId", obj.get("startHash")),
            end_handle_id=obj.get("endHandleId", obj.get("endHash")),
            total_stake=None if total is None else Amount(str(total)),
            operator_stakes=amounts(obj.get("operatorStakes")),
            rewards=amounts(obj.get("rewards")),
        )


def ensure_ascending(records: Sequence[EpochRecord]) -> None:
    """Raise ValueError unless epochs are strictly ascending within each domain."""
    last: dict[int, int] = {}
    for r in records:
        prev = last.get(r.domain_id)
        if prev is not None and r.epoch <= prev:
            raise ValueError(f"domain {r.domain_id}: epoch {r.epoch} follows epoch {prev}")
        last[r.domain_id] = r.epoch
