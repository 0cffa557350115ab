"""
Shared setup for the unittest suites: a registry seeded with the default
configuration, and a pair over two freshly issued assets plus a third
untracked one.
"""

from dataclasses import dataclass

from AssetLedger import AssetLedger
from ConstantProductPair import ConstantProductPair
from PairRegistry import PairRegistry
from fixed_width import MAX_UINT_128

OWNER = "0x" + "a" * 40
OTHER = "0x" + "b" * 40
TOKEN_A = "0x" + "1" * 40
TOKEN_B = "0x" + "2" * 40
TOKEN_C = "0x" + "4" * 40
PLATFORM_FEE_TO = "0x3000000000000000000000000000000000000000"
RECOVERER = "0x5000000000000000000000000000000000000000"

GENESIS_TIMESTAMP = 1_600_000_000
DEFAULT_SWAP_FEE = 3_000
DEFAULT_PLATFORM_FEE = 0
DEFAULT_ALLOWED_CHANGE_PER_SECOND = 5 * 10**14
# Enough time for the ramp limiter to allow any fee change
ONE_DAY = 86_400


def expandTo18Decimals(n: int) -> int:
    return n * 10**18


@dataclass
class PairFixture:
    ledger: AssetLedger
    registry: PairRegistry
    pair: ConstantProductPair
    token0: str
    token1: str
    token2: str


def factory_fixture(ledger: AssetLedger = None) -> PairRegistry:
    ledger = ledger or AssetLedger(timestamp=GENESIS_TIMESTAMP)
    registry = PairRegistry(ledger, OWNER)
    registry.set("CP::swapFee", DEFAULT_SWAP_FEE, caller=OWNER)
    registry.set("Shared::platformFee", DEFAULT_PLATFORM_FEE, caller=OWNER)
    registry.set("Shared::defaultRecoverer", RECOVERER, caller=OWNER)
    registry.set("Shared::allowedChangePerSecond", DEFAULT_ALLOWED_CHANGE_PER_SECOND, caller=OWNER)
    return registry


def pair_fixture() -> PairFixture:
    ledger = AssetLedger(timestamp=GENESIS_TIMESTAMP)
    registry = factory_fixture(ledger)
    for token in (TOKEN_A, TOKEN_B, TOKEN_C):
        ledger.create_asset(token, MAX_UINT_128, OWNER)

    pair = registry.pair(registry.createPair(TOKEN_A, TOKEN_B, 0))
    ledger.events.clear()
    return PairFixture(ledger, registry, pair, pair.token0, pair.token1, TOKEN_C)


def add_liquidity(fx: PairFixture, amount0: int, amount1: int, to: str = OWNER) -> int:
    fx.ledger.transfer(fx.token0, OWNER, fx.pair.address, amount0)
    fx.ledger.transfer(fx.token1, OWNER, fx.pair.address, amount1)
    return fx.pair.mint(to)


def set_fees(fx: PairFixture, swapFee: int = None, platformFee: int = None) -> None:
    """Relay custom fees through the registry, after waiting out the ramp limiter."""
    fx.ledger.advance(ONE_DAY)
    if swapFee is not None:
        fx.registry.relayConfig(fx.pair.address, "setCustomSwapFee", swapFee, caller=OWNER)
    if platformFee is not None:
        fx.registry.relayConfig(fx.pair.address, "setCustomPlatformFee", platformFee, caller=OWNER)
