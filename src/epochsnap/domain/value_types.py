from __future__ import annotations
from typing import NewType, Literal, Union

DomainId   = NewType("DomainId", int)
Height     = NewType("Height", int)
HandleId   = NewType("HandleId", str)    # 0x-prefixed block hash
OperatorId = NewType("OperatorId", int)
Amount     = NewType("Amount", str)      # unsigned big int as decimal string

CURRENT: Literal["current"] = "current"
EpochSpec = Union[int, Literal["current"]]
