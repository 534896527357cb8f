from __future__ import annotations
from dataclasses import dataclass

from ..domain.value_types import CURRENT, DomainId, EpochSpec

DEFAULT_OUT = "public/data/epochs.json"


def parse_epoch_spec(value: str | int) -> EpochSpec:
    """'current' (any case) or a non-negative integer."""
    if isinstance(value, int):
        n = value
    else:
        s = value.strip().lower()
        if s == CURRENT:
            return CURRENT
        if not s.isdigit():
            raise ValueError(f"epoch must be a non-negative integer or 'current', got {value!r}")
        n = int(s)
    if n < 0:
        raise ValueError(f"epoch must be non-negative, got {n}")
    return n


@dataclass(slots=True, frozen=True)
class RunConfig:
    ws_url: str
    domain_id: DomainId = DomainId(0)
    start_epoch: EpochSpec = 0
    end_epoch: EpochSpec = CURRENT
    append: bool = False
    out: str = DEFAULT_OUT
    timeout_s: float = 30.0

    def __post_init__(self) -> None:
        if self.domain_id < 0:
            raise ValueError(f"domain_id must be non-negative, got {self.domain_id}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout_s}")
