"""
Checked fixed-width unsigned arithmetic for the pair engine.

Reserves, share supplies and intermediate fee terms are plain Python integers,
but each one has a declared bit-width ceiling. Every helper in this module
verifies the ceiling and raises instead of wrapping. The exception is block
timestamps, which are np.uint32 values that wrap on purpose.
"""

import math

import numpy as np

from errors import ArithmeticBoundError

MAX_UINT_32 = 2**32 - 1
MAX_UINT_104 = 2**104 - 1
MAX_UINT_128 = 2**128 - 1
MAX_UINT_256 = 2**256 - 1

# UQ112x112 scale used by the cumulative price accumulators
Q112 = 2**112


def max_uint(bits: int) -> int:
    """Largest unsigned value representable in ``bits`` bits."""
    return (1 << bits) - 1


def verify_uint(value: int, bits: int, param_name: str) -> int:
    """
    Verify that ``value`` is a non-negative integer fitting in ``bits`` bits.

    Args:
        value: The value to verify
        bits: Bit-width ceiling
        param_name (str): The parameter name for error messages

    Returns:
        The value itself, so the call can be used inline.

    Raises:
        TypeError: If value is not an integer
        ArithmeticBoundError: If value is negative or exceeds the ceiling
    """
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise TypeError(f"{param_name} must be an integer, got {type(value)}")
    value = int(value)
    if value < 0 or value > max_uint(bits):
        raise ArithmeticBoundError(f"{param_name}={value} does not fit in uint{bits}")
    return value


def checked_mul(a: int, b: int, bits: int = 256) -> int:
    """Multiply two unsigned values, failing if the product exceeds ``bits``."""
    return verify_uint(a * b, bits, "product")


def checked_sub(a: int, b: int, bits: int = 256) -> int:
    """Subtract, failing on underflow."""
    return verify_uint(a - b, bits, "difference")


def checked_div(a: int, b: int) -> int:
    """Floor division of unsigned values; dividing by zero is a bound error."""
    if b == 0:
        raise ArithmeticBoundError("division by zero")
    return a // b


def mul_div(a: int, b: int, denominator: int, bits: int = 256) -> int:
    """floor(a * b / denominator) with the product checked against ``bits``."""
    return checked_div(checked_mul(a, b, bits), denominator)


def div_up(a: int, b: int) -> int:
    """ceil(a / b) for unsigned a, b."""
    quotient = checked_div(a, b)
    if quotient * b < a:
        quotient += 1
    return quotient


def isqrt(value: int) -> int:
    """Integer square root (floor), as used for share issuance."""
    return math.isqrt(verify_uint(value, 256, "sqrt operand"))


# --- Block timestamps ---

def to_uint32(timestamp: int) -> np.uint32:
    """Truncate a ledger timestamp (seconds) to the wrapping uint32 width."""
    return np.uint32(int(timestamp) % (MAX_UINT_32 + 1))


def elapsed_uint32(now: np.uint32, last: np.uint32) -> np.uint32:
    """
    Seconds elapsed between two uint32 timestamps, wrapping on overflow.

    Raises:
        TypeError: If either timestamp is not np.uint32
    """
    for value, name in ((now, "now"), (last, "last")):
        if not isinstance(value, np.uint32):
            raise TypeError(f"{name} must be np.uint32, got {type(value)}")
    return np.uint32((int(now) - int(last)) % (MAX_UINT_32 + 1))


def wrapping_add(a: int, b: int, bits: int = 256) -> int:
    """Addition modulo 2**bits, for accumulators whose overflow is expected."""
    return (a + b) & max_uint(bits)
