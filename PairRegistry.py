import copy
import hashlib
import logging
from typing import Dict, List, Optional, Tuple

from AssetLedger import AssetLedger
from ConstantProductPair import ConstantProductPair
from FeeConfig import FeeConfig
from config import CURVE_NAMES, ZERO_ADDRESS, RegistryConfig
from errors import RegistryError, UnauthorizedError
from events import PairCreated

logger = logging.getLogger(__name__)


def sortAssets(assetA: str, assetB: str) -> Tuple[str, str]:
    """Canonical (asset0, asset1) ordering of a pair."""
    if assetA.lower() == assetB.lower():
        raise RegistryError("IDENTICAL_ADDRESSES", assetA)
    asset0, asset1 = sorted((assetA, assetB), key=str.lower)
    if asset0 == ZERO_ADDRESS:
        raise RegistryError("ZERO_ADDRESS")
    return asset0, asset1


def pairKey(assetA: str, assetB: str, curveId: int) -> str:
    """
    Deterministic address of the pair for two assets and a curve.

    Pure content addressing over the sorted asset identities and the curve,
    so the same inputs give the same address in any ordering.
    """
    asset0, asset1 = sortAssets(assetA, assetB)
    if curveId not in CURVE_NAMES:
        raise RegistryError("INVALID_CURVE", f"unknown curve {curveId}")
    addr_hash = hashlib.sha3_256(
        f"pair:{asset0.lower()}:{asset1.lower()}:{CURVE_NAMES[curveId]}:{curveId}".encode()
    ).digest()
    return f"0x{addr_hash[-20:].hex()}"


class PairRegistry:
    """
    Deploys pairs and holds the configuration authority over them.

    Owns a RegistryConfig (curve and shared defaults, platform fee recipient,
    recoverer, fee ramp rate). Every pair reads the registry-level values at
    call time. Pair fee setters are reachable only through ``relayConfig``,
    which checks the caller is the owner and calls the pair directly.
    """

    _RELAYED = {
        "setCustomSwapFee": lambda pair, registry, *args: pair.setCustomSwapFee(*args, caller=registry),
        "setCustomPlatformFee": lambda pair, registry, *args: pair.setCustomPlatformFee(*args, caller=registry),
        "updateSwapFee": lambda pair, registry: pair.updateSwapFee(),
        "updatePlatformFee": lambda pair, registry: pair.updatePlatformFee(),
    }

    def __init__(self, ledger: AssetLedger, owner: str, config: Optional[RegistryConfig] = None,
                 address: Optional[str] = None):
        self.ledger = ledger
        self.owner = owner
        self.config = config if config is not None else RegistryConfig()
        self.address = address or f"0x{hashlib.sha3_256(f'registry:{owner.lower()}'.encode()).digest()[-20:].hex()}"
        self._pairs: Dict[str, ConstantProductPair] = {}
        self._lookup: Dict[Tuple[str, str, int], str] = {}
        self.allPairs: List[str] = []

    def __repr__(self) -> str:
        return f"PairRegistry(address={self.address}, pairs={len(self.allPairs)})"

    # --- Invocation envelope ---

    def _snapshot(self):
        return copy.deepcopy(self.config), dict(self._pairs), dict(self._lookup), list(self.allPairs)

    def _restore(self, state) -> None:
        self.config, self._pairs, self._lookup, self.allPairs = state

    @staticmethod
    def _lookupKey(assetA: str, assetB: str, curveId: int) -> Tuple[str, str, int]:
        asset0, asset1 = sorted((assetA.lower(), assetB.lower()))
        return asset0, asset1, curveId

    def _onlyOwner(self, caller: str) -> None:
        if caller != self.owner:
            logger.warning("Rejected configuration call from %s", caller)
            raise UnauthorizedError(f"{caller} is not the owner")

    # --- Defaults (read by every pair) ---

    @property
    def platformFeeTo(self) -> str:
        return self.config.shared.platform_fee_to

    @property
    def defaultRecoverer(self) -> str:
        return self.config.shared.default_recoverer

    @property
    def allowedChangePerSecond(self) -> int:
        return self.config.shared.allowed_change_per_second

    def defaultSwapFee(self, curveId: int = 0) -> int:
        return self.config.swap_fee(curveId)

    def defaultPlatformFee(self, curveId: int = 0) -> int:
        return self.config.platform_fee(curveId)

    # --- Namespaced configuration ---

    def get(self, key: str):
        return self.config.get(key)

    def set(self, key: str, value, caller: str) -> None:
        self._onlyOwner(caller)
        with self.ledger.atomic():
            self.ledger.journal(self)
            self.config.set(key, value)
        logger.info("Config %s set to %r", key, value)

    def setPlatformFeeTo(self, address: str, caller: str) -> None:
        self.set("Shared::platformFeeTo", address, caller)

    # --- Pairs ---

    def createPair(self, assetA: str, assetB: str, curveId: int = 0) -> str:
        """
        Deploy the pair for two assets under a curve.

        Returns:
            str: The pair's deterministic address.

        Raises:
            RegistryError: For identical or zero assets, unknown curves, or an
                existing pair in either ordering.
        """
        asset0, asset1 = sortAssets(assetA, assetB)
        address = pairKey(asset0, asset1, curveId)
        if self._lookupKey(asset0, asset1, curveId) in self._lookup or address in self._pairs:
            raise RegistryError("PAIR_EXISTS", f"{asset0}/{asset1} curve {curveId}")

        with self.ledger.atomic():
            self.ledger.journal(self)
            fees = FeeConfig(
                swapFee=self.defaultSwapFee(curveId),
                platformFee=self.defaultPlatformFee(curveId),
                allowedChangePerSecond=self.allowedChangePerSecond,
                createdAt=self.ledger.block_timestamp(),
            )
            pair = ConstantProductPair(self, address, asset0, asset1, curveId, self.ledger, fees)
            self._pairs[address] = pair
            self._lookup[self._lookupKey(asset0, asset1, curveId)] = address
            self.allPairs.append(address)
            self.ledger.emit(self.address, PairCreated(
                asset0, asset1, address, len(self.allPairs), fees.swapFee, fees.platformFee
            ))
        logger.info("Created pair %s for %s/%s on curve %d", address, asset0, asset1, curveId)
        return address

    def getPair(self, assetA: str, assetB: str, curveId: int = 0) -> str:
        """Address of the pair, or the zero address if none exists."""
        return self._lookup.get(self._lookupKey(assetA, assetB, curveId), ZERO_ADDRESS)

    def pair(self, address: str) -> ConstantProductPair:
        if address not in self._pairs:
            raise RegistryError("UNKNOWN_PAIR", address)
        return self._pairs[address]

    def allPairsLength(self) -> int:
        return len(self.allPairs)

    # --- Privileged relay ---

    def relayConfig(self, pairAddress: str, operation: str, *args, caller: str) -> None:
        """
        Call a configuration operation on one pair with the registry's authority.

        Only the operations in the fixed relay table are reachable.
        """
        self._onlyOwner(caller)
        if operation not in self._RELAYED:
            raise RegistryError("UNKNOWN_OPERATION", operation)
        self._RELAYED[operation](self.pair(pairAddress), self, *args)
        logger.info("Relayed %s%r to %s", operation, args, pairAddress)
