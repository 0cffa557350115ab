"""
Exception taxonomy for the pair engine and its registry.

Every failure carries a short ``reason`` code. The engine never clamps or
retries. It raises, and the caller's invocation is rolled back.
"""


class PairError(Exception):
    """Base class for all pair and registry failures."""

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        super().__init__(f"{reason}: {message}" if message else reason)


class ReserveOverflowError(PairError, OverflowError):
    """A balance or reserve no longer fits in 104 bits."""

    def __init__(self, message: str = ""):
        super().__init__("OVERFLOW", message)


class InvariantViolationError(PairError, ArithmeticError):
    """The fee-adjusted K check failed after a swap."""

    def __init__(self, message: str = ""):
        super().__init__("K", message)


class InsufficientAmountError(PairError, ValueError):
    pass


class UnauthorizedError(PairError, PermissionError):
    def __init__(self, message: str = ""):
        super().__init__("FORBIDDEN", message)


class InvalidRecoveryTargetError(PairError, ValueError):
    pass


class InvalidFeeError(PairError, ValueError):
    pass


class ReentrancyError(PairError, RuntimeError):
    def __init__(self, message: str = ""):
        super().__init__("LOCKED", message)


class RegistryError(PairError, ValueError):
    pass


class UnknownAssetError(PairError, LookupError):
    def __init__(self, asset: str):
        super().__init__("UNKNOWN_ASSET", asset)


class ArithmeticBoundError(OverflowError):
    """
    An intermediate value breached its declared bit-width ceiling.

    For bounded reserves this never happens. It signals a bug in the
    arithmetic, not a rejected call, and sits outside the PairError hierarchy.
    """
