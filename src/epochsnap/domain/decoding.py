from __future__ import annotations

from typing import Any, Iterable, Mapping

from epochsnap.domain.errors import TransportError
from epochsnap.domain.models import SnapshotView
from epochsnap.domain.value_types import Amount, HandleId, Height, OperatorId


# Field aliases, highest priority first. Runtime upgrades and client libraries
# (snake_case from SCALE metadata, camelCase from JS tooling) disagree on names.
EPOCH_INDEX_KEYS    = ("current_epoch_index", "currentEpochIndex", "epoch_index", "epochIndex", "epoch")
TOTAL_STAKE_KEYS    = ("current_total_stake", "currentTotalStake", "total_stake", "totalStake")
OPERATOR_STAKE_KEYS = ("current_operators", "currentOperators", "operators")
REWARD_KEYS         = ("current_epoch_rewards", "currentEpochRewards", "epoch_rewards", "epochRewards")

# ---------- scalar helpers ----------------------------------------------------

def first_present(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Value of the first alias that exists with a non-null value, else None."""
    for k in keys:
        v = raw.get(k)
        if v is not None:
            return v
    return None

def to_uint(v: Any) -> int:
    """Handles native ints, decimal strings and 0x-hex strings. Floats are rejected."""
    if isinstance(v, bool) or isinstance(v, float):
        raise ValueError(f"refusing non-integer amount {v!r}")
    if isinstance(v, int):
        out = v
    elif isinstance(v, str):
        s = v.strip().lower()
        out = int(s, 16) if s.startswith("0x") else int(s, 10)
    elif isinstance(v, Mapping) and "value" in v:
        return to_uint(v["value"])
    else:
        raise ValueError(f"unsupported amount type {type(v).__name__}")
    if out < 0:
        raise ValueError(f"negative amount {v!r}")
    return out

def to_amount(v: Any) -> Amount:
    return Amount(str(to_uint(v)))

# ---------- map helpers -------------------------------------------------------

def _pairs(m: Any) -> Iterable[tuple[Any, Any]]:
    if isinstance(m, Mapping):
        return m.items()
    if isinstance(m, (list, tuple)):
        out: list[tuple[Any, Any]] = []
        for item in m:
            if isinstance(item, Mapping):
                out.append((item["key"], item["value"]))
            else:
                k, v = item
                out.append((k, v))
        return out
    raise ValueError(f"unsupported map type {type(m).__name__}")

def to_amount_map(m: Any) -> dict[OperatorId, Amount]:
    """Operator-keyed map of amounts, ordered by operator id. None -> {}."""
    if m is None:
        return {}
    out = {OperatorId(int(to_uint(k))): to_amount(v) for k, v in _pairs(m)}
    return dict(sorted(out.items()))

# ---------------------------- public API --------------------------------------

def normalize_summary(raw: Mapping[str, Any], *, height: int, handle_id: str) -> SnapshotView:
    """
    Map a decoded staking-summary record onto SnapshotView. A record without an
    epoch index yields `epoch_index=None`; anything unparseable is reported as a
    malformed ledger response.
    """
    if not isinstance(raw, Mapping):
        raise TransportError(f"malformed staking summary at #{height}: {type(raw).__name__}")
    try:
        epoch = first_present(raw, EPOCH_INDEX_KEYS)
        total = first_present(raw, TOTAL_STAKE_KEYS)
        return SnapshotView(
            height=Height(height),
            handle_id=HandleId(handle_id),
            epoch_index=None if epoch is None else to_uint(epoch),
            total_stake=None if total is None else to_amount(total),
            operator_stakes=to_amount_map(first_present(raw, OPERATOR_STAKE_KEYS)),
            rewards=to_amount_map(first_present(raw, REWARD_KEYS)),
        )
    except (ValueError, TypeError, KeyError) as e:
        raise TransportError(f"malformed staking summary at #{height}: {e}") from e
