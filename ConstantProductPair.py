import logging
from contextlib import contextmanager
from typing import Optional, Tuple

import numpy as np

from AssetLedger import AssetLedger
from FeeConfig import FEE_ACCURACY, FeeConfig, calcPlatformFee
from ReserveLedger import MINIMUM_LIQUIDITY, ReserveLedger
from config import ZERO_ADDRESS
from errors import (
    InsufficientAmountError,
    InvalidRecoveryTargetError,
    InvariantViolationError,
    PairError,
    ReentrancyError,
    ReserveOverflowError,
    UnauthorizedError,
)
from events import Burn, Mint, PlatformFeeChanged, Swap, SwapFeeChanged, Sync, Transfer
from fixed_width import MAX_UINT_104, div_up, isqrt, mul_div

logger = logging.getLogger(__name__)


class ConstantProductPair:
    """
    Constant-product pair of two assets held on an AssetLedger.

    Callers move assets to the pair's address first and then call ``mint``,
    ``swap`` or ``burn``. Each operation reads the balances the pair actually
    holds, prices against the tracked reserves and re-syncs them. Every public
    operation is all-or-nothing: a failure restores the pair, the ledger's
    balances and the event buffer to their state before the call.

    The pair is Uninitialized while ``totalSupply == 0`` and Active after the
    first mint, which locks MINIMUM_LIQUIDITY shares to the zero address.

    Attributes:
        address (str): Address of the pair on the ledger.
        token0 (str), token1 (str): Tracked assets, sorted.
        curveId (int): Curve identifier the pair was created under.
        factory (str): Address of the registry holding configuration authority.
        reserves (ReserveLedger): Reserve and share bookkeeping.
        fees (FeeConfig): Swap and platform fee state.
    """

    def __init__(self, registry, address: str, token0: str, token1: str, curveId: int,
                 ledger: AssetLedger, fees: FeeConfig):
        self.registry = registry
        self.factory = registry.address
        self.address = address
        self.token0 = token0
        self.token1 = token1
        self.curveId = curveId
        self.ledger = ledger
        self.reserves = ReserveLedger()
        self.fees = fees
        self._locked = False

    def __repr__(self) -> str:
        return (f"ConstantProductPair(address={self.address}, reserve0={self.reserve0}, "
                f"reserve1={self.reserve1}, totalSupply={self.totalSupply})")

    # --- Read-only views ---

    @property
    def reserve0(self) -> int:
        return self.reserves.reserve0

    @property
    def reserve1(self) -> int:
        return self.reserves.reserve1

    @property
    def totalSupply(self) -> int:
        return self.reserves.totalSupply

    @property
    def kLast(self) -> int:
        return self.reserves.kLast

    @property
    def price0CumulativeLast(self) -> int:
        return self.reserves.price0CumulativeLast

    @property
    def price1CumulativeLast(self) -> int:
        return self.reserves.price1CumulativeLast

    @property
    def swapFee(self) -> int:
        return self.fees.swapFee

    @property
    def platformFee(self) -> int:
        return self.fees.platformFee

    @property
    def platformFeeTo(self) -> str:
        return self.registry.platformFeeTo

    def balanceOf(self, holder: str) -> int:
        return self.reserves.balanceOf(holder)

    def getReserves(self) -> Tuple[int, int, np.uint32]:
        return self.reserves.getReserves()

    def k(self) -> int:
        return self.reserves.k()

    # --- Invocation envelope ---

    def _snapshot(self):
        return self.reserves.copy(), self.fees.copy()

    def _restore(self, state) -> None:
        self.reserves, self.fees = state

    @contextmanager
    def _invocation(self, operation: str, lock: bool = True):
        if lock:
            if self._locked:
                raise ReentrancyError(f"{operation} re-entered {self.address}")
            self._locked = True
        try:
            with self.ledger.atomic():
                self.ledger.journal(self)
                yield
        except PairError as e:
            logger.warning("%s on %s rejected: %s", operation, self.address, e)
            raise
        finally:
            if lock:
                self._locked = False

    def _emit(self, event) -> None:
        self.ledger.emit(self.address, event)

    def _balances(self) -> Tuple[int, int]:
        return (self.ledger.balance_of(self.token0, self.address),
                self.ledger.balance_of(self.token1, self.address))

    def _mint(self, to: str, value: int) -> None:
        self.reserves.mintShares(to, value)
        self._emit(Transfer(ZERO_ADDRESS, to, value))

    def _burn(self, holder: str, value: int) -> None:
        self.reserves.burnShares(holder, value)
        self._emit(Transfer(holder, ZERO_ADDRESS, value))

    def _update(self, balance0: int, balance1: int) -> None:
        self.reserves.update(balance0, balance1, self.ledger.block_timestamp())
        self._emit(Sync(self.reserves.reserve0, self.reserves.reserve1))

    def _mintFee(self, reserve0: int, reserve1: int) -> bool:
        """
        Mint the platform's share of sqrt(K) growth since the last checkpoint.

        Returns:
            bool: True if the platform fee is on.
        """
        platform_fee_to = self.platformFeeTo
        fee_on = platform_fee_to != ZERO_ADDRESS and self.fees.platformFee > 0
        k_last = self.reserves.kLast
        if fee_on:
            if k_last != 0:
                root_k = isqrt(reserve0 * reserve1)
                root_k_last = isqrt(k_last)
                if root_k > root_k_last:
                    liquidity = calcPlatformFee(self.totalSupply, root_k_last, root_k, self.fees.platformFee)
                    if liquidity > 0:
                        self._mint(platform_fee_to, liquidity)
                        logger.debug("Minted %d platform-fee shares to %s", liquidity, platform_fee_to)
        elif k_last != 0:
            self.reserves.kLast = 0
        return fee_on

    # --- Share transfers ---

    def transfer(self, sender: str, to: str, value: int) -> bool:
        """Move pool shares between holders (used to hand shares to the pair before ``burn``)."""
        with self._invocation("transfer", lock=False):
            self.reserves.transferShares(sender, to, value)
            self._emit(Transfer(sender, to, value))
        return True

    # --- Liquidity ---

    def mint(self, to: str, sender: Optional[str] = None) -> int:
        """
        Issue pool shares for the assets deposited since the last sync.

        Args:
            to (str): Recipient of the new shares.
            sender (str): Caller identity for the Mint event, defaults to ``to``.

        Returns:
            int: Shares minted to ``to``.

        Raises:
            ReserveOverflowError: If a post-deposit balance exceeds 104 bits.
            InsufficientAmountError: If the deposit is worth no shares.
        """
        with self._invocation("mint"):
            reserve0, reserve1, _ = self.getReserves()
            balance0, balance1 = self._balances()
            ReserveLedger.checkBounds(balance0, balance1)
            amount0 = balance0 - reserve0
            amount1 = balance1 - reserve1

            fee_on = self._mintFee(reserve0, reserve1)
            total_supply = self.totalSupply  # after the platform fee mint
            if total_supply == 0:
                liquidity = isqrt(amount0 * amount1) - MINIMUM_LIQUIDITY
                if liquidity <= 0:
                    raise InsufficientAmountError(
                        "INSUFFICIENT_LIQUIDITY_MINTED", "initial deposit does not exceed the minimum liquidity"
                    )
                self._mint(ZERO_ADDRESS, MINIMUM_LIQUIDITY)
            else:
                liquidity = min(mul_div(amount0, total_supply, reserve0),
                                mul_div(amount1, total_supply, reserve1))
            if liquidity <= 0:
                raise InsufficientAmountError("INSUFFICIENT_LIQUIDITY_MINTED")
            self._mint(to, liquidity)

            self._update(balance0, balance1)
            if fee_on:
                self.reserves.kLast = self.reserves.k()
            self._emit(Mint(sender or to, amount0, amount1))
        logger.debug("Minted %d shares to %s for (%d, %d)", liquidity, to, amount0, amount1)
        return liquidity

    def burn(self, to: str, sender: Optional[str] = None) -> Tuple[int, int]:
        """
        Redeem the shares held by the pair itself for a pro-rata share of both assets.

        Returns:
            Tuple[int, int]: Amounts of token0 and token1 sent to ``to``.

        Raises:
            InsufficientAmountError: If either redeemed amount rounds to zero.
        """
        with self._invocation("burn"):
            reserve0, reserve1, _ = self.getReserves()
            balance0, balance1 = self._balances()
            liquidity = self.balanceOf(self.address)

            fee_on = self._mintFee(reserve0, reserve1)
            total_supply = self.totalSupply
            if total_supply == 0:
                raise InsufficientAmountError("INSUFFICIENT_LIQUIDITY_BURNED", "pair is uninitialized")
            amount0 = mul_div(liquidity, balance0, total_supply)
            amount1 = mul_div(liquidity, balance1, total_supply)
            if amount0 == 0 or amount1 == 0:
                raise InsufficientAmountError("INSUFFICIENT_LIQUIDITY_BURNED")

            self._burn(self.address, liquidity)
            self.ledger.transfer(self.token0, self.address, to, amount0)
            self.ledger.transfer(self.token1, self.address, to, amount1)
            balance0, balance1 = self._balances()

            self._update(balance0, balance1)
            if fee_on:
                self.reserves.kLast = self.reserves.k()
            self._emit(Burn(sender or to, amount0, amount1))
        logger.debug("Burnt %d shares for (%d, %d) to %s", liquidity, amount0, amount1, to)
        return amount0, amount1

    # --- Pricing ---

    @staticmethod
    def getInputPrice(amountIn: int, reserveIn: int, reserveOut: int, swapFee: int) -> int:
        """
        Output for an exact input.

        The fee is taken from the input (rounded down), and the output side of
        the new product is rounded up. The pool therefore never gives away more
        than the invariant allows.
        """
        amount_in_after_fee = mul_div(amountIn, FEE_ACCURACY - swapFee, FEE_ACCURACY)
        new_reserve_in = reserveIn + amount_in_after_fee
        if new_reserve_in == 0:
            return 0
        return reserveOut - div_up(reserveIn * reserveOut, new_reserve_in)

    @staticmethod
    def getOutputPrice(amountOut: int, reserveIn: int, reserveOut: int, swapFee: int) -> int:
        """Input required for an exact output; rounds up at both steps."""
        if amountOut >= reserveOut:
            raise InsufficientAmountError("INSUFFICIENT_LIQUIDITY", "output must be less than the reserve")
        amount_in_after_fee = div_up(reserveIn * amountOut, reserveOut - amountOut)
        return div_up(amount_in_after_fee * FEE_ACCURACY, FEE_ACCURACY - swapFee)

    # --- Trading ---

    def swap(self, amountSpecified: int, inOrOut: bool, to: str, data: bytes = b"",
             sender: Optional[str] = None) -> int:
        """
        Trade one asset for the other.

        Args:
            amountSpecified (int): Signed trade size. Positive names token0 and
                negative names token1.
            inOrOut (bool): True if the named asset is the exact input, False if
                it is the exact output.
            to (str): Recipient of the output.
            data (bytes): If non-empty, the recipient's registered callee gets
                ``pairCall(sender, amount0Out, amount1Out, data)`` after the
                output is sent and before balances are checked (flash swap).
            sender (str): Caller identity for the Swap event, defaults to ``to``.

        Returns:
            int: The computed side of the trade: the output for exact input,
            or the required input for exact output.

        Raises:
            ReserveOverflowError: If balances exceed 104 bits.
            InsufficientAmountError: For zero amounts, an empty output, an
                output exceeding the reserve, or input that never arrived.
            InvariantViolationError: If the fee-adjusted product decreased.
        """
        with self._invocation("swap"):
            if amountSpecified == 0:
                raise InsufficientAmountError("INSUFFICIENT_INPUT_AMOUNT")
            if abs(amountSpecified) > MAX_UINT_104:
                raise ReserveOverflowError(f"amount {amountSpecified} exceeds uint104")
            reserve0, reserve1, _ = self.getReserves()
            ReserveLedger.checkBounds(*self._balances())
            if reserve0 == 0 or reserve1 == 0:
                raise InsufficientAmountError("INSUFFICIENT_LIQUIDITY", "pair is uninitialized")

            swap_fee = self.fees.swapFee
            # token0 goes in for exact input of token0 or exact output of token1
            zero_for_one = (amountSpecified > 0) == bool(inOrOut)
            reserve_in, reserve_out = (reserve0, reserve1) if zero_for_one else (reserve1, reserve0)
            if inOrOut:
                amount_in = abs(amountSpecified)
                amount_out = self.getInputPrice(amount_in, reserve_in, reserve_out, swap_fee)
            else:
                amount_out = abs(amountSpecified)
                amount_in = self.getOutputPrice(amount_out, reserve_in, reserve_out, swap_fee)

            if amount_out <= 0:
                raise InsufficientAmountError("INSUFFICIENT_OUTPUT_AMOUNT")
            if amount_out >= reserve_out:
                raise InsufficientAmountError("INSUFFICIENT_LIQUIDITY")
            if to in (self.token0, self.token1):
                raise InsufficientAmountError("INVALID_TO", "recipient cannot be a tracked asset")

            token_out = self.token1 if zero_for_one else self.token0
            amount0_out, amount1_out = (0, amount_out) if zero_for_one else (amount_out, 0)
            self.ledger.transfer(token_out, self.address, to, amount_out)
            if data:
                callee = self.ledger.callee_of(to)
                if callee is None:
                    raise InsufficientAmountError("INVALID_CALLEE", f"{to} cannot receive swap data")
                callee.pairCall(sender or to, amount0_out, amount1_out, data)

            # Balances are read only after control returned from the recipient.
            balance0, balance1 = self._balances()
            ReserveLedger.checkBounds(balance0, balance1)
            amount0_in = max(balance0 - (reserve0 - amount0_out), 0)
            amount1_in = max(balance1 - (reserve1 - amount1_out), 0)
            received = amount0_in if zero_for_one else amount1_in
            if received < amount_in:
                raise InsufficientAmountError("INSUFFICIENT_AMOUNT_IN", f"received {received}, required {amount_in}")

            balance0_adjusted = balance0 * FEE_ACCURACY - amount0_in * swap_fee
            balance1_adjusted = balance1 * FEE_ACCURACY - amount1_in * swap_fee
            if balance0_adjusted * balance1_adjusted < reserve0 * reserve1 * FEE_ACCURACY**2:
                raise InvariantViolationError("fee-adjusted product decreased")

            self._update(balance0, balance1)
            self._emit(Swap(sender or to, zero_for_one, amount_in, amount_out, to))
        logger.debug("Swapped %d in for %d out (zeroForOne=%s) to %s", amount_in, amount_out, zero_for_one, to)
        return amount_out if inOrOut else amount_in

    # --- Balance reconciliation ---

    def sync(self) -> None:
        """Force reserves to match the balances actually held."""
        with self._invocation("sync"):
            self._update(*self._balances())

    def skim(self, to: str) -> Tuple[int, int]:
        """Send any balance in excess of the reserves to ``to``."""
        with self._invocation("skim"):
            balance0, balance1 = self._balances()
            excess0 = max(balance0 - self.reserve0, 0)
            excess1 = max(balance1 - self.reserve1, 0)
            self.ledger.transfer(self.token0, self.address, to, excess0)
            self.ledger.transfer(self.token1, self.address, to, excess1)
        return excess0, excess1

    # --- Asset recovery ---

    def recoverToken(self, token: str) -> int:
        """
        Send the pair's whole balance of an untracked asset to the registry's recoverer.

        Returns:
            int: Amount recovered (0 if the pair holds none).

        Raises:
            InvalidRecoveryTargetError: If ``token`` is a tracked asset or no
                recoverer is configured.
            UnknownAssetError: If ``token`` does not exist on the ledger.
        """
        with self._invocation("recoverToken"):
            if token in (self.token0, self.token1):
                raise InvalidRecoveryTargetError("INVALID_TOKEN_TO_RECOVER", token)
            recoverer = self.registry.defaultRecoverer
            if recoverer == ZERO_ADDRESS:
                raise InvalidRecoveryTargetError("RECOVERER_ZERO_ADDRESS")
            amount = self.ledger.balance_of(token, self.address)
            self.ledger.transfer(token, self.address, recoverer, amount)
        logger.info("Recovered %d of %s from %s to %s", amount, token, self.address, recoverer)
        return amount

    # --- Fee configuration (registry authority only) ---

    def _onlyFactory(self, caller) -> None:
        # identity of the registry object, not its address
        if caller is not self.registry:
            raise UnauthorizedError(f"{caller!r} is not the registry of {self.address}")

    def _applySwapFee(self, value: int) -> None:
        self.fees.allowedChangePerSecond = self.registry.allowedChangePerSecond
        old = self.fees.setSwapFee(value, self.ledger.block_timestamp())
        if old != value:
            self._emit(SwapFeeChanged(old, value))

    def _applyPlatformFee(self, value: int) -> None:
        self.fees.allowedChangePerSecond = self.registry.allowedChangePerSecond
        old = self.fees.setPlatformFee(value, self.ledger.block_timestamp())
        if old != value:
            self._emit(PlatformFeeChanged(old, value))

    def setCustomSwapFee(self, value: Optional[int], caller) -> None:
        """Pin a pair-specific swap fee, or clear it with None to follow the registry default."""
        self._onlyFactory(caller)
        with self._invocation("setCustomSwapFee"):
            self.fees.customSwapFee = value
            self._applySwapFee(self.registry.defaultSwapFee(self.curveId) if value is None else value)

    def setCustomPlatformFee(self, value: Optional[int], caller) -> None:
        """Pin a pair-specific platform fee, or clear it with None to follow the registry default."""
        self._onlyFactory(caller)
        with self._invocation("setCustomPlatformFee"):
            self.fees.customPlatformFee = value
            self._applyPlatformFee(self.registry.defaultPlatformFee(self.curveId) if value is None else value)

    def updateSwapFee(self) -> None:
        """Move the swap fee to the custom value, or to the registry default when none is set."""
        with self._invocation("updateSwapFee"):
            custom = self.fees.customSwapFee
            self._applySwapFee(self.registry.defaultSwapFee(self.curveId) if custom is None else custom)

    def updatePlatformFee(self) -> None:
        """Move the platform fee to the custom value, or to the registry default when none is set."""
        with self._invocation("updatePlatformFee"):
            custom = self.fees.customPlatformFee
            self._applyPlatformFee(self.registry.defaultPlatformFee(self.curveId) if custom is None else custom)


# --- Example Usage ---
if __name__ == '__main__':
    from PairRegistry import PairRegistry

    logging.basicConfig(level=logging.DEBUG)

    ledger = AssetLedger(timestamp=1_700_000_000)
    owner = "0x" + "a" * 40
    ledger.create_asset("0x" + "1" * 40, 10**24, owner)
    ledger.create_asset("0x" + "2" * 40, 10**24, owner)

    registry = PairRegistry(ledger, owner)
    pair = registry.pair(registry.createPair("0x" + "1" * 40, "0x" + "2" * 40, 0))
    print("Initial Pool State:")
    print(pair)
    print("-" * 30)

    print("1. Adding liquidity (5e18 / 10e18):")
    ledger.transfer(pair.token0, owner, pair.address, 5 * 10**18)
    ledger.transfer(pair.token1, owner, pair.address, 10 * 10**18)
    print(f"Minted {pair.mint(owner)} shares.")
    print(pair)
    print("-" * 30)

    print("2. Swapping 1e18 of token0 for token1:")
    ledger.transfer(pair.token0, owner, pair.address, 10**18)
    print(f"Received {pair.swap(10**18, True, owner)} of token1.")
    print(pair)
