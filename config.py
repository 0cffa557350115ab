from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from FeeConfig import MAX_PLATFORM_FEE, MAX_SWAP_FEE
from errors import InvalidFeeError, RegistryError

ZERO_ADDRESS = "0x" + "0" * 40

CONSTANT_PRODUCT_CURVE = 0
CURVE_NAMES: Dict[int, str] = {CONSTANT_PRODUCT_CURVE: "CP"}
SHARED_NAMESPACE = "Shared"


@dataclass
class SharedConfig:
    # Fees, scaled to FEE_ACCURACY (1_000_000)
    swap_fee: int = 3_000
    platform_fee: int = 0

    # Addresses read by every pair at call time
    platform_fee_to: str = ZERO_ADDRESS
    default_recoverer: str = ZERO_ADDRESS

    # Fee ramp limiter: 18-decimal fraction of FEE_ACCURACY per second
    allowed_change_per_second: int = 5 * 10**14


@dataclass
class CurveConfig:
    # None falls back to the shared value
    swap_fee: Optional[int] = None
    platform_fee: Optional[int] = None


# key suffix -> (shared attribute, curve attribute or None)
_FIELDS: Dict[str, Tuple[str, Optional[str]]] = {
    "swapFee": ("swap_fee", "swap_fee"),
    "platformFee": ("platform_fee", "platform_fee"),
    "platformFeeTo": ("platform_fee_to", None),
    "defaultRecoverer": ("default_recoverer", None),
    "allowedChangePerSecond": ("allowed_change_per_second", None),
}

# attribute -> (upper bound, reason) for fee fields
_FEE_BOUNDS: Dict[str, Tuple[int, str]] = {
    "swap_fee": (MAX_SWAP_FEE, "INVALID_SWAP_FEE"),
    "platform_fee": (MAX_PLATFORM_FEE, "INVALID_PLATFORM_FEE"),
}


@dataclass
class RegistryConfig:
    shared: SharedConfig = field(default_factory=SharedConfig)
    curves: Dict[int, CurveConfig] = field(
        default_factory=lambda: {curve_id: CurveConfig() for curve_id in CURVE_NAMES}
    )

    # --- Typed lookups (curve first, shared second) ---

    def curve(self, curve_id: int) -> CurveConfig:
        if curve_id not in self.curves:
            raise RegistryError("INVALID_CURVE", f"unknown curve {curve_id}")
        return self.curves[curve_id]

    def swap_fee(self, curve_id: int) -> int:
        override = self.curve(curve_id).swap_fee
        return self.shared.swap_fee if override is None else override

    def platform_fee(self, curve_id: int) -> int:
        override = self.curve(curve_id).platform_fee
        return self.shared.platform_fee if override is None else override

    # --- Namespaced key surface ("CP::swapFee", "Shared::platformFeeTo", ...) ---

    def _resolve(self, key: str):
        namespace, sep, name = key.partition("::")
        if not sep or name not in _FIELDS:
            raise RegistryError("UNKNOWN_KEY", key)
        shared_attr, curve_attr = _FIELDS[name]
        if namespace == SHARED_NAMESPACE:
            return self.shared, shared_attr
        for curve_id, curve_name in CURVE_NAMES.items():
            if curve_name == namespace and curve_attr is not None:
                return self.curves[curve_id], curve_attr
        raise RegistryError("UNKNOWN_KEY", key)

    def get(self, key: str):
        """Read a namespaced key; curve keys that are unset fall back to Shared."""
        target, attr = self._resolve(key)
        value = getattr(target, attr)
        if value is None:
            return getattr(self.shared, attr)
        return value

    def set(self, key: str, value) -> None:
        target, attr = self._resolve(key)
        if attr in ("platform_fee_to", "default_recoverer"):
            if not isinstance(value, str):
                raise TypeError(f"{key} must be an address string, got {type(value)}")
        elif value is None:
            if target is self.shared:
                raise TypeError(f"{key} cannot be cleared")
        elif isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise TypeError(f"{key} must be a non-negative int, got {value!r}")
        if attr in _FEE_BOUNDS and value is not None:
            maximum, reason = _FEE_BOUNDS[attr]
            if value > maximum:
                raise InvalidFeeError(reason, f"{key}={value} outside [0, {maximum}]")
        setattr(target, attr, value)
