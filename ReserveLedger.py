import copy
from typing import Dict, Tuple

import numpy as np

from config import ZERO_ADDRESS
from errors import InsufficientAmountError, ReserveOverflowError
from fixed_width import (
    MAX_UINT_104,
    Q112,
    checked_mul,
    elapsed_uint32,
    to_uint32,
    verify_uint,
    wrapping_add,
)

# Locked to the zero address on the first mint, never redeemable
MINIMUM_LIQUIDITY = 1000


class ReserveLedger:
    """
    Reserve and pool-share bookkeeping of a pair.

    Holds the tracked reserves (each bounded to 104 bits), the pool-share
    supply and per-holder balances, the K checkpoint used for the platform fee
    and the cumulative price accumulators.

    Attributes:
        reserve0 (int), reserve1 (int): Tracked reserves.
        totalSupply (int): Pool shares outstanding, including the locked minimum.
        balances (Dict[str, int]): Shares per holder.
        kLast (int): reserve0 * reserve1 after the latest mint/burn with the
            platform fee on, 0 otherwise.
        blockTimestampLast (np.uint32): Wrapping timestamp of the last update.
        price0CumulativeLast (int), price1CumulativeLast (int): UQ112x112
            price-seconds, wrapping at 256 bits.
    """

    def __init__(self):
        self.reserve0 = 0
        self.reserve1 = 0
        self.totalSupply = 0
        self.balances: Dict[str, int] = {}
        self.kLast = 0
        self.blockTimestampLast = np.uint32(0)
        self.price0CumulativeLast = 0
        self.price1CumulativeLast = 0

    def __repr__(self) -> str:
        return (f"ReserveLedger(reserve0={self.reserve0}, reserve1={self.reserve1}, "
                f"totalSupply={self.totalSupply}, k={self.k()})")

    def k(self) -> int:
        return self.reserve0 * self.reserve1

    def getReserves(self) -> Tuple[int, int, np.uint32]:
        return self.reserve0, self.reserve1, self.blockTimestampLast

    # --- Shares ---

    def balanceOf(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def mintShares(self, to: str, value: int) -> None:
        verify_uint(value, 256, "value")
        self.totalSupply += value
        self.balances[to] = self.balances.get(to, 0) + value

    def burnShares(self, holder: str, value: int) -> None:
        if self.balanceOf(holder) < value:
            raise InsufficientAmountError("INSUFFICIENT_SHARE_BALANCE", f"{holder} holds {self.balanceOf(holder)}")
        self.balances[holder] -= value
        self.totalSupply -= value

    def transferShares(self, sender: str, to: str, value: int) -> None:
        if sender == ZERO_ADDRESS:
            raise InsufficientAmountError("INSUFFICIENT_SHARE_BALANCE", "locked liquidity cannot move")
        if self.balanceOf(sender) < value:
            raise InsufficientAmountError("INSUFFICIENT_SHARE_BALANCE", f"{sender} holds {self.balanceOf(sender)}")
        self.balances[sender] -= value
        self.balances[to] = self.balances.get(to, 0) + value

    # --- Reserves ---

    @staticmethod
    def checkBounds(balance0: int, balance1: int) -> None:
        """
        Raises:
            ReserveOverflowError: If either balance exceeds 104 bits
        """
        if balance0 > MAX_UINT_104 or balance1 > MAX_UINT_104:
            raise ReserveOverflowError(f"balances ({balance0}, {balance1}) exceed uint104")

    def update(self, balance0: int, balance1: int, timestamp: int) -> None:
        """
        Set reserves to the given balances and advance the price accumulators.

        Accumulators move once per block boundary, using the reserves as they
        were before this update.
        """
        self.checkBounds(balance0, balance1)
        block_timestamp = to_uint32(timestamp)
        elapsed = elapsed_uint32(block_timestamp, self.blockTimestampLast)
        if elapsed > 0 and self.reserve0 != 0 and self.reserve1 != 0:
            # * never overflows, and + overflow is desired
            self.price0CumulativeLast = wrapping_add(
                self.price0CumulativeLast, checked_mul(self.reserve1 * Q112 // self.reserve0, int(elapsed))
            )
            self.price1CumulativeLast = wrapping_add(
                self.price1CumulativeLast, checked_mul(self.reserve0 * Q112 // self.reserve1, int(elapsed))
            )
        self.reserve0 = balance0
        self.reserve1 = balance1
        self.blockTimestampLast = block_timestamp

    def copy(self) -> "ReserveLedger":
        clone = copy.copy(self)
        clone.balances = dict(self.balances)
        return clone
