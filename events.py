from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import List, Optional


# -----------------------------
# Pair events
# -----------------------------
@dataclass(frozen=True)
class Transfer:
    sender: str
    to: str
    value: int


@dataclass(frozen=True)
class Sync:
    reserve0: int
    reserve1: int


@dataclass(frozen=True)
class Mint:
    sender: str
    amount0: int
    amount1: int


@dataclass(frozen=True)
class Burn:
    sender: str
    amount0: int
    amount1: int


@dataclass(frozen=True)
class Swap:
    sender: str
    zero_for_one: bool
    amount_in: int
    amount_out: int
    to: str


@dataclass(frozen=True)
class SwapFeeChanged:
    old_fee: int
    new_fee: int


@dataclass(frozen=True)
class PlatformFeeChanged:
    old_fee: int
    new_fee: int


# -----------------------------
# Registry events
# -----------------------------
@dataclass(frozen=True)
class PairCreated:
    asset0: str
    asset1: str
    pair: str
    pair_count: int
    swap_fee: int
    platform_fee: int


@dataclass(frozen=True)
class Emitted:
    """An event together with the address that emitted it."""
    emitter: str
    event: object


class EventLog:
    """
    Append-only log of committed events.

    Operations buffer their events and only commit them once the whole call
    has succeeded, so a failed call leaves no trace here.
    """

    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def commit(self, emitted: List[Emitted]) -> None:
        self.events.extend(emitted)

    def tail(self, n: int = 200) -> List[Emitted]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def of_type(self, event_type: type, emitter: Optional[str] = None) -> List[object]:
        return [
            e.event for e in self.events
            if isinstance(e.event, event_type) and (emitter is None or e.emitter == emitter)
        ]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)
