import copy
import logging
from typing import Optional

from errors import InvalidFeeError
from fixed_width import (
    checked_div,
    checked_mul,
    checked_sub,
    mul_div,
    verify_uint,
)

logger = logging.getLogger(__name__)

# Fees are expressed as parts of FEE_ACCURACY (1_000_000 == 100%)
FEE_ACCURACY = 1_000_000
MAX_SWAP_FEE = 20_000          # 2%
MAX_PLATFORM_FEE = 500_000     # 50%

# Fixed-point scale of the platform-fee closed form
ACCURACY = 10**38
ACCURACY_SQRD = 10**76

# allowedChangePerSecond is an 18-decimal fraction of FEE_ACCURACY
RATE_PRECISION = 10**18


def calcPlatformFee(totalSupply: int, rootKLast: int, rootK: int, platformFee: int) -> int:
    """
    Shares to mint to the platform so that it owns ``platformFee`` of the
    growth in sqrt(K) since the last checkpoint.

    Closed form of ``x / (totalSupply + x) == platformFee * (1 - rootKLast / rootK)``,
    evaluated in fixed point at ACCURACY. It agrees with the floating-point
    equation ``totalSupply * (K2 - K1) / ((1 / fee - 1) * K2 + K1)`` to within
    one unit.

    Args:
        totalSupply (int): Pool shares outstanding before the fee mint.
        rootKLast (int): sqrt(reserve0 * reserve1) at the last checkpoint.
        rootK (int): sqrt(reserve0 * reserve1) now.
        platformFee (int): Platform fee in parts of FEE_ACCURACY.

    Returns:
        int: The number of shares to mint (0 when there is no growth or no fee).

    Raises:
        ArithmeticBoundError: If an intermediate term breaches its ceiling.
    """
    verify_uint(totalSupply, 104, "totalSupply")
    verify_uint(rootKLast, 104, "rootKLast")
    verify_uint(rootK, 104, "rootK")
    verify_uint(platformFee, 20, "platformFee")
    if platformFee == 0 or rootKLast == 0 or rootK <= rootKLast:
        return 0

    scaled_growth = verify_uint(mul_div(rootK, ACCURACY, rootKLast), 256, "scaledGrowth")
    scaled_multiplier = verify_uint(
        checked_sub(ACCURACY, checked_div(ACCURACY_SQRD, scaled_growth)), 128, "scaledMultiplier"
    )
    scaled_target = verify_uint(
        mul_div(scaled_multiplier, platformFee, FEE_ACCURACY), 128, "scaledTargetOwnership"
    )
    return checked_div(checked_mul(scaled_target, totalSupply), checked_sub(ACCURACY, scaled_target))


class FeeConfig:
    """
    Swap and platform fee state of a single pair.

    Both fees move under a ramp limiter: between two changes of the same fee,
    it may move by at most
    ``allowedChangePerSecond * elapsed * FEE_ACCURACY / 10**18`` units.

    Attributes:
        swapFee (int): Fee deducted from swap input, parts of FEE_ACCURACY.
        platformFee (int): Share of sqrt(K) growth minted to the platform.
        customSwapFee (Optional[int]): Pair-specific override, None when the
            registry default applies.
        customPlatformFee (Optional[int]): As above, for the platform fee.
        allowedChangePerSecond (int): Ramp rate, 18-decimal fixed point.
        lastSwapFeeChange (int), lastPlatformFeeChange (int): Timestamps of the
            latest accepted change of each fee.
    """

    def __init__(self, swapFee: int, platformFee: int, allowedChangePerSecond: int, createdAt: int = 0):
        self._check_bound(swapFee, MAX_SWAP_FEE, "INVALID_SWAP_FEE")
        self._check_bound(platformFee, MAX_PLATFORM_FEE, "INVALID_PLATFORM_FEE")
        verify_uint(allowedChangePerSecond, 256, "allowedChangePerSecond")

        self.swapFee = swapFee
        self.platformFee = platformFee
        self.customSwapFee: Optional[int] = None
        self.customPlatformFee: Optional[int] = None
        self.allowedChangePerSecond = allowedChangePerSecond
        self.lastSwapFeeChange = int(createdAt)
        self.lastPlatformFeeChange = int(createdAt)

    def __repr__(self) -> str:
        return (f"FeeConfig(swapFee={self.swapFee}, platformFee={self.platformFee}, "
                f"allowedChangePerSecond={self.allowedChangePerSecond})")

    @staticmethod
    def _check_bound(value: int, maximum: int, reason: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"fee must be int, got {type(value)}")
        if value < 0 or value > maximum:
            raise InvalidFeeError(reason, f"{value} outside [0, {maximum}]")

    def maxFeeChange(self, since: int, now: int) -> int:
        """Largest fee move the ramp limiter allows after ``now - since`` seconds."""
        elapsed = max(0, int(now) - int(since))
        return self.allowedChangePerSecond * elapsed * FEE_ACCURACY // RATE_PRECISION

    def _check_ramp(self, old: int, new: int, since: int, now: int) -> None:
        allowed = self.maxFeeChange(since, now)
        if abs(new - old) > allowed:
            raise InvalidFeeError(
                "FEE_CHANGE_TOO_FAST",
                f"change of {abs(new - old)} exceeds {allowed} allowed after {int(now) - int(since)}s",
            )

    def setSwapFee(self, value: int, now: int) -> int:
        """Apply a new swap fee; returns the previous one."""
        self._check_bound(value, MAX_SWAP_FEE, "INVALID_SWAP_FEE")
        old = self.swapFee
        if value == old:
            return old
        self._check_ramp(old, value, self.lastSwapFeeChange, now)
        self.swapFee = value
        self.lastSwapFeeChange = int(now)
        logger.info("Swap fee changed %d -> %d", old, value)
        return old

    def setPlatformFee(self, value: int, now: int) -> int:
        """Apply a new platform fee; returns the previous one."""
        self._check_bound(value, MAX_PLATFORM_FEE, "INVALID_PLATFORM_FEE")
        old = self.platformFee
        if value == old:
            return old
        self._check_ramp(old, value, self.lastPlatformFeeChange, now)
        self.platformFee = value
        self.lastPlatformFeeChange = int(now)
        logger.info("Platform fee changed %d -> %d", old, value)
        return old

    def copy(self) -> "FeeConfig":
        return copy.copy(self)
