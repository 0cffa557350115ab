import unittest

from AssetLedger import AssetLedger
from config import ZERO_ADDRESS
from errors import InsufficientAmountError, UnknownAssetError
from events import Emitted, EventLog, Transfer

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
TOKEN = "0x" + "1" * 40


class Counter:
    """Minimal journaled object."""

    def __init__(self):
        self.value = 0

    def _snapshot(self):
        return self.value

    def _restore(self, state):
        self.value = state


class TestAssetLedger(unittest.TestCase):

    def setUp(self):
        self.ledger = AssetLedger(timestamp=100)
        self.ledger.create_asset(TOKEN, 1_000, ALICE)

    def test_create_and_transfer(self):
        self.assertEqual(self.ledger.total_supply(TOKEN), 1_000)
        self.ledger.transfer(TOKEN, ALICE, BOB, 300)
        self.assertEqual(self.ledger.balance_of(TOKEN, ALICE), 700)
        self.assertEqual(self.ledger.balance_of(TOKEN, BOB), 300)
        self.assertEqual(self.ledger.events.tail(2), [
            Emitted(TOKEN, Transfer(ZERO_ADDRESS, ALICE, 1_000)),
            Emitted(TOKEN, Transfer(ALICE, BOB, 300)),
        ])

    def test_transfer_errors(self):
        with self.assertRaises(InsufficientAmountError) as ctx:
            self.ledger.transfer(TOKEN, BOB, ALICE, 1)
        self.assertEqual(ctx.exception.reason, "TRANSFER_AMOUNT_EXCEEDS_BALANCE")
        with self.assertRaises(UnknownAssetError):
            self.ledger.transfer("0x" + "9" * 40, ALICE, BOB, 1)
        with self.assertRaises(ValueError):
            self.ledger.transfer(TOKEN, ALICE, BOB, -1)
        with self.assertRaises(ValueError):
            self.ledger.create_asset(TOKEN)

    def test_clock(self):
        self.assertEqual(self.ledger.advance(50), 150)
        self.assertEqual(self.ledger.block_timestamp(), 150)
        with self.assertRaises(ValueError):
            self.ledger.advance(-1)

    def test_atomic_rollback(self):
        """A failure inside atomic() restores balances and journaled objects and drops events."""
        counter = Counter()
        events_before = len(self.ledger.events)
        with self.assertRaises(RuntimeError):
            with self.ledger.atomic():
                self.ledger.journal(counter)
                counter.value = 5
                self.ledger.transfer(TOKEN, ALICE, BOB, 400)
                raise RuntimeError("abort")
        self.assertEqual(counter.value, 0)
        self.assertEqual(self.ledger.balance_of(TOKEN, BOB), 0)
        self.assertEqual(len(self.ledger.events), events_before)

    def test_events_commit_on_outer_success(self):
        with self.ledger.atomic():
            self.ledger.transfer(TOKEN, ALICE, BOB, 1)
            with self.ledger.atomic():
                self.ledger.transfer(TOKEN, ALICE, BOB, 2)
            self.assertEqual(len(self.ledger.events), 1, "Nothing commits while a frame is open")
        self.assertEqual(len(self.ledger.events), 3)

    def test_nested_success_then_outer_failure(self):
        """Work committed by an inner frame is still undone when the outer one fails."""
        counter = Counter()
        with self.assertRaises(RuntimeError):
            with self.ledger.atomic():
                with self.ledger.atomic():
                    self.ledger.journal(counter)
                    counter.value = 7
                    self.ledger.transfer(TOKEN, ALICE, BOB, 10)
                raise RuntimeError("abort")
        self.assertEqual(counter.value, 0)
        self.assertEqual(self.ledger.balance_of(TOKEN, BOB), 0)

    def test_nested_failure_is_contained(self):
        with self.ledger.atomic():
            self.ledger.transfer(TOKEN, ALICE, BOB, 1)
            try:
                with self.ledger.atomic():
                    self.ledger.transfer(TOKEN, ALICE, BOB, 2)
                    raise RuntimeError("inner")
            except RuntimeError:
                pass
        self.assertEqual(self.ledger.balance_of(TOKEN, BOB), 1)
        self.assertEqual(self.ledger.events.tail(1), [Emitted(TOKEN, Transfer(ALICE, BOB, 1))])

    def test_journal_requires_frame(self):
        with self.assertRaises(RuntimeError):
            self.ledger.journal(Counter())

    def test_event_log_bounded(self):
        ledger = AssetLedger(events=EventLog(maxlen=2))
        ledger.create_asset(TOKEN, 10, ALICE)
        ledger.transfer(TOKEN, ALICE, BOB, 1)
        ledger.transfer(TOKEN, ALICE, BOB, 2)
        self.assertEqual(len(ledger.events), 2)
        self.assertEqual(ledger.events.of_type(Transfer, emitter=TOKEN),
                         [Transfer(ALICE, BOB, 1), Transfer(ALICE, BOB, 2)])


if __name__ == '__main__':
    unittest.main()
