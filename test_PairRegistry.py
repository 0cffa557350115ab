import unittest

from PairRegistry import pairKey, sortAssets
from config import ZERO_ADDRESS
from FeeConfig import MAX_PLATFORM_FEE, MAX_SWAP_FEE
from errors import InvalidFeeError, RegistryError, UnauthorizedError
from events import PairCreated, SwapFeeChanged
from fixtures import (
    DEFAULT_PLATFORM_FEE,
    DEFAULT_SWAP_FEE,
    OTHER,
    OWNER,
    PLATFORM_FEE_TO,
    TOKEN_A,
    TOKEN_B,
    TOKEN_C,
    factory_fixture,
    pair_fixture,
)


class TestPairRegistry(unittest.TestCase):
    """Pair deployment, lookup, configuration and the privileged relay."""

    def setUp(self):
        self.registry = factory_fixture()
        self.ledger = self.registry.ledger
        for token in (TOKEN_A, TOKEN_B, TOKEN_C):
            self.ledger.create_asset(token)

    def test_createPair(self):
        address = self.registry.createPair(TOKEN_B, TOKEN_A)
        asset0, asset1 = sortAssets(TOKEN_A, TOKEN_B)

        self.assertEqual(address, pairKey(TOKEN_A, TOKEN_B, 0))
        self.assertEqual(self.ledger.events.of_type(PairCreated, emitter=self.registry.address), [
            PairCreated(asset0, asset1, address, 1, DEFAULT_SWAP_FEE, DEFAULT_PLATFORM_FEE),
        ])
        self.assertEqual(self.registry.getPair(TOKEN_A, TOKEN_B), address)
        self.assertEqual(self.registry.getPair(TOKEN_B, TOKEN_A), address)
        self.assertEqual(self.registry.allPairs, [address])
        self.assertEqual(self.registry.allPairsLength(), 1)

        pair = self.registry.pair(address)
        self.assertEqual((pair.token0, pair.token1), (asset0, asset1))
        self.assertEqual(pair.factory, self.registry.address)
        self.assertEqual(pair.swapFee, DEFAULT_SWAP_FEE)

    def test_createPair_exists(self):
        self.registry.createPair(TOKEN_A, TOKEN_B)
        for pair_args in ((TOKEN_A, TOKEN_B), (TOKEN_B, TOKEN_A)):
            with self.assertRaises(RegistryError) as ctx:
                self.registry.createPair(*pair_args)
            self.assertEqual(ctx.exception.reason, "PAIR_EXISTS")
        self.assertEqual(self.registry.allPairsLength(), 1)

    def test_createPair_invalid(self):
        with self.assertRaises(RegistryError) as ctx:
            self.registry.createPair(TOKEN_A, TOKEN_A)
        self.assertEqual(ctx.exception.reason, "IDENTICAL_ADDRESSES")
        with self.assertRaises(RegistryError) as ctx:
            self.registry.createPair(ZERO_ADDRESS, TOKEN_A)
        self.assertEqual(ctx.exception.reason, "ZERO_ADDRESS")
        with self.assertRaises(RegistryError) as ctx:
            self.registry.createPair(TOKEN_A, TOKEN_B, 7)
        self.assertEqual(ctx.exception.reason, "INVALID_CURVE")
        self.assertEqual(self.registry.allPairs, [])

    def test_getPair_missing(self):
        self.assertEqual(self.registry.getPair(TOKEN_A, TOKEN_C), ZERO_ADDRESS)
        with self.assertRaises(RegistryError) as ctx:
            self.registry.pair(OTHER)
        self.assertEqual(ctx.exception.reason, "UNKNOWN_PAIR")

    def test_pairKey_deterministic(self):
        """Same assets and curve give the same address regardless of order or case."""
        key = pairKey(TOKEN_A, TOKEN_B, 0)
        self.assertEqual(key, pairKey(TOKEN_B, TOKEN_A, 0))
        self.assertEqual(pairKey("0x" + "A" * 40, TOKEN_B, 0), pairKey("0x" + "a" * 40, TOKEN_B, 0))
        self.assertNotEqual(key, pairKey(TOKEN_A, TOKEN_C, 0))
        self.assertTrue(key.startswith("0x"))
        self.assertEqual(len(key), 42)

    def test_setPlatformFeeTo(self):
        with self.assertRaises(UnauthorizedError) as ctx:
            self.registry.setPlatformFeeTo(PLATFORM_FEE_TO, caller=OTHER)
        self.assertEqual(ctx.exception.reason, "FORBIDDEN")
        self.assertEqual(self.registry.platformFeeTo, ZERO_ADDRESS)

        self.registry.setPlatformFeeTo(PLATFORM_FEE_TO, caller=OWNER)
        self.assertEqual(self.registry.platformFeeTo, PLATFORM_FEE_TO)
        self.assertEqual(self.registry.get("Shared::platformFeeTo"), PLATFORM_FEE_TO)

    def test_getPair_ignores_case(self):
        """Lookups match createPair and pairKey, which ignore address case."""
        mixed, lower = "0x" + "Cd" * 20, "0x" + "cd" * 20
        self.ledger.create_asset(mixed)
        address = self.registry.createPair(TOKEN_A, mixed)
        self.assertEqual(self.registry.getPair(TOKEN_A, lower), address)
        self.assertEqual(self.registry.getPair(lower.upper().replace("0X", "0x"), TOKEN_A), address)
        with self.assertRaises(RegistryError) as ctx:
            self.registry.createPair(lower, TOKEN_A)
        self.assertEqual(ctx.exception.reason, "PAIR_EXISTS")

    def test_fee_defaults_bounded(self):
        """Fee defaults the pairs would reject are refused when set."""
        with self.assertRaises(InvalidFeeError) as ctx:
            self.registry.set("CP::swapFee", 900_000, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "INVALID_SWAP_FEE")
        with self.assertRaises(InvalidFeeError) as ctx:
            self.registry.set("Shared::swapFee", MAX_SWAP_FEE + 1, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "INVALID_SWAP_FEE")
        with self.assertRaises(InvalidFeeError) as ctx:
            self.registry.set("Shared::platformFee", MAX_PLATFORM_FEE + 1, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "INVALID_PLATFORM_FEE")
        self.assertEqual(self.registry.defaultSwapFee(0), DEFAULT_SWAP_FEE)
        self.assertEqual(self.registry.defaultPlatformFee(0), DEFAULT_PLATFORM_FEE)

        self.registry.set("CP::swapFee", MAX_SWAP_FEE, caller=OWNER)
        self.registry.set("Shared::platformFee", MAX_PLATFORM_FEE, caller=OWNER)
        pair = self.registry.pair(self.registry.createPair(TOKEN_A, TOKEN_C))
        self.assertEqual((pair.swapFee, pair.platformFee), (MAX_SWAP_FEE, MAX_PLATFORM_FEE))

    def test_config_keys(self):
        """Curve keys fall back to the shared value until they are set."""
        self.registry.set("Shared::platformFee", 1_000, caller=OWNER)
        self.assertEqual(self.registry.get("CP::platformFee"), 1_000)
        self.assertEqual(self.registry.defaultPlatformFee(0), 1_000)

        self.registry.set("CP::platformFee", 2_000, caller=OWNER)
        self.assertEqual(self.registry.get("CP::platformFee"), 2_000)
        self.assertEqual(self.registry.get("Shared::platformFee"), 1_000)

        self.registry.set("CP::platformFee", None, caller=OWNER)
        self.assertEqual(self.registry.defaultPlatformFee(0), 1_000)

        with self.assertRaises(RegistryError) as ctx:
            self.registry.get("CP::platformFeeTo")
        self.assertEqual(ctx.exception.reason, "UNKNOWN_KEY")
        with self.assertRaises(RegistryError):
            self.registry.set("Nope::swapFee", 1, caller=OWNER)
        with self.assertRaises(TypeError):
            self.registry.set("Shared::swapFee", None, caller=OWNER)
        with self.assertRaises(TypeError):
            self.registry.set("Shared::swapFee", -1, caller=OWNER)
        with self.assertRaises(UnauthorizedError):
            self.registry.set("Shared::swapFee", 1, caller=OTHER)

    def test_new_pairs_use_current_defaults(self):
        self.registry.set("CP::swapFee", 1_000, caller=OWNER)
        pair = self.registry.pair(self.registry.createPair(TOKEN_A, TOKEN_C))
        self.assertEqual(pair.swapFee, 1_000)


class TestRelayConfig(unittest.TestCase):
    """Fee changes reach a pair only through the owner and the relay table."""

    def setUp(self):
        self.fx = pair_fixture()
        self.registry = self.fx.registry
        self.pair = self.fx.pair
        self.ledger = self.fx.ledger

    def test_relay_requires_owner(self):
        self.ledger.advance(86_400)
        with self.assertRaises(UnauthorizedError):
            self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 1_000, caller=OTHER)
        with self.assertRaises(UnauthorizedError):
            self.pair.setCustomSwapFee(1_000, caller=OWNER)
        self.assertEqual(self.pair.swapFee, DEFAULT_SWAP_FEE)

    def test_registry_address_is_not_authority(self):
        """Passing the registry's public address does not unlock the fee setters."""
        self.ledger.advance(86_400)
        with self.assertRaises(UnauthorizedError) as ctx:
            self.pair.setCustomSwapFee(0, caller=self.pair.factory)
        self.assertEqual(ctx.exception.reason, "FORBIDDEN")
        with self.assertRaises(UnauthorizedError):
            self.pair.setCustomPlatformFee(500_000, caller=self.registry.address)
        self.assertEqual((self.pair.swapFee, self.pair.platformFee), (DEFAULT_SWAP_FEE, DEFAULT_PLATFORM_FEE))
        self.assertIsNone(self.pair.fees.customSwapFee)

    def test_relay_unknown_operation(self):
        with self.assertRaises(RegistryError) as ctx:
            self.registry.relayConfig(self.pair.address, "skim", OWNER, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "UNKNOWN_OPERATION")
        with self.assertRaises(RegistryError) as ctx:
            self.registry.relayConfig(OTHER, "updateSwapFee", caller=OWNER)
        self.assertEqual(ctx.exception.reason, "UNKNOWN_PAIR")

    def test_custom_swap_fee_ramp(self):
        """Right after creation no change is allowed; each second then allows 500 units."""
        with self.assertRaises(InvalidFeeError) as ctx:
            self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 3_500, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "FEE_CHANGE_TOO_FAST")
        self.assertIsNone(self.pair.fees.customSwapFee)

        self.ledger.advance(1)
        self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 3_500, caller=OWNER)
        self.assertEqual(self.pair.swapFee, 3_500)
        self.assertEqual(self.ledger.events.of_type(SwapFeeChanged, emitter=self.pair.address),
                         [SwapFeeChanged(3_000, 3_500)])

        with self.assertRaises(InvalidFeeError):
            self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 4_000, caller=OWNER)
        self.assertEqual(self.pair.fees.customSwapFee, 3_500)

        self.ledger.advance(1)
        self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 4_000, caller=OWNER)
        self.assertEqual(self.pair.swapFee, 4_000)

    def test_custom_fee_bounds(self):
        self.ledger.advance(86_400)
        with self.assertRaises(InvalidFeeError) as ctx:
            self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 20_001, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "INVALID_SWAP_FEE")
        with self.assertRaises(InvalidFeeError) as ctx:
            self.registry.relayConfig(self.pair.address, "setCustomPlatformFee", 500_001, caller=OWNER)
        self.assertEqual(ctx.exception.reason, "INVALID_PLATFORM_FEE")

    def test_clear_custom_fee(self):
        """Clearing the custom fee returns the pair to the registry default."""
        self.ledger.advance(86_400)
        self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 1_000, caller=OWNER)
        self.assertEqual(self.pair.swapFee, 1_000)

        self.ledger.advance(86_400)
        self.registry.relayConfig(self.pair.address, "setCustomSwapFee", None, caller=OWNER)
        self.assertEqual(self.pair.swapFee, DEFAULT_SWAP_FEE)

    def test_update_follows_registry_default(self):
        self.registry.set("CP::swapFee", 2_500, caller=OWNER)
        self.registry.set("Shared::platformFee", 1_000, caller=OWNER)
        self.assertEqual(self.pair.swapFee, DEFAULT_SWAP_FEE, "Pairs keep their fee until updated")

        self.ledger.advance(86_400)
        self.registry.relayConfig(self.pair.address, "updateSwapFee", caller=OWNER)
        self.pair.updatePlatformFee()
        self.assertEqual(self.pair.swapFee, 2_500)
        self.assertEqual(self.pair.platformFee, 1_000)

    def test_update_keeps_custom_fee(self):
        self.ledger.advance(86_400)
        self.registry.relayConfig(self.pair.address, "setCustomSwapFee", 1_000, caller=OWNER)
        self.registry.set("CP::swapFee", 2_500, caller=OWNER)
        self.ledger.advance(86_400)
        self.pair.updateSwapFee()
        self.assertEqual(self.pair.swapFee, 1_000)


if __name__ == '__main__':
    unittest.main()
