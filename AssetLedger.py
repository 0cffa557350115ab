import copy
import logging
from contextlib import contextmanager
from typing import Dict, List

from config import ZERO_ADDRESS
from errors import InsufficientAmountError, UnknownAssetError
from events import Emitted, EventLog, Transfer

logger = logging.getLogger(__name__)


class _Frame:
    def __init__(self, balances: Dict[str, Dict[str, int]], pending_start: int):
        self.balances = balances
        self.pending_start = pending_start
        # id(obj) -> (obj, snapshot)
        self.journal: Dict[int, tuple] = {}


class AssetLedger:
    """
    In-memory host ledger for fungible assets.

    Provides the three things a pair needs from its host: moving units of an
    asset between addresses, reading balances, and the current block time.
    It also provides the all-or-nothing envelope for invocations. ``atomic()``
    snapshots balances and any journaled objects, buffers events, and either
    commits everything or restores everything.

    Attributes:
        timestamp (int): Current block timestamp in seconds.
        events (EventLog): Committed events of every emitter on this ledger.
    """

    def __init__(self, timestamp: int = 0, events: EventLog = None):
        self.timestamp = int(timestamp)
        self.events = events if events is not None else EventLog()
        self._balances: Dict[str, Dict[str, int]] = {}
        self._callees: Dict[str, object] = {}
        self._frames: List[_Frame] = []
        self._pending: List[Emitted] = []

    def __repr__(self) -> str:
        return f"AssetLedger(assets={sorted(self._balances)}, timestamp={self.timestamp})"

    # --- Clock ---

    def block_timestamp(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> int:
        """Move the block clock forward and return the new timestamp."""
        if seconds < 0:
            raise ValueError("The block clock cannot move backwards.")
        self.timestamp += int(seconds)
        return self.timestamp

    # --- Assets ---

    def create_asset(self, asset: str, supply: int = 0, holder: str = ZERO_ADDRESS) -> None:
        if asset in self._balances:
            raise ValueError(f"Asset {asset} already exists.")
        self._balances[asset] = {}
        if supply:
            self._balances[asset][holder] = int(supply)
            self.emit(asset, Transfer(ZERO_ADDRESS, holder, int(supply)))

    def _holders(self, asset: str) -> Dict[str, int]:
        if asset not in self._balances:
            raise UnknownAssetError(asset)
        return self._balances[asset]

    def balance_of(self, asset: str, holder: str) -> int:
        return self._holders(asset).get(holder, 0)

    def total_supply(self, asset: str) -> int:
        return sum(self._holders(asset).values())

    def transfer(self, asset: str, sender: str, to: str, amount: int) -> None:
        """
        Move ``amount`` units of ``asset`` from ``sender`` to ``to``.

        Raises:
            UnknownAssetError: If the asset does not exist on this ledger
            InsufficientAmountError: If ``sender`` holds less than ``amount``
        """
        holders = self._holders(asset)
        amount = int(amount)
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative.")
        if holders.get(sender, 0) < amount:
            raise InsufficientAmountError(
                "TRANSFER_AMOUNT_EXCEEDS_BALANCE",
                f"{sender} holds {holders.get(sender, 0)} of {asset}, needs {amount}",
            )
        holders[sender] = holders.get(sender, 0) - amount
        holders[to] = holders.get(to, 0) + amount
        self.emit(asset, Transfer(sender, to, amount))

    # --- Callees (flash-swap receivers) ---

    def register_callee(self, address: str, callee) -> None:
        """Attach an object whose ``pairCall`` is invoked for swaps with auxiliary data."""
        self._callees[address] = callee

    def callee_of(self, address: str):
        return self._callees.get(address)

    # --- Events ---

    def emit(self, emitter: str, event) -> None:
        emitted = Emitted(emitter, event)
        if self._frames:
            self._pending.append(emitted)
        else:
            self.events.commit([emitted])

    # --- Invocation envelope ---

    def journal(self, obj) -> None:
        """
        Record ``obj`` in the current invocation so it is restored on failure.

        ``obj`` must provide ``_snapshot()`` and ``_restore(state)``.
        """
        if not self._frames:
            raise RuntimeError("journal() requires an open atomic() invocation")
        frame = self._frames[-1]
        if id(obj) not in frame.journal:
            frame.journal[id(obj)] = (obj, obj._snapshot())

    @contextmanager
    def atomic(self):
        frame = _Frame(copy.deepcopy(self._balances), len(self._pending))
        self._frames.append(frame)
        try:
            yield self
        except BaseException:
            self._frames.pop()
            self._balances = frame.balances
            del self._pending[frame.pending_start:]
            for obj, state in frame.journal.values():
                obj._restore(state)
            logger.debug("Rolled back invocation (%d journaled objects)", len(frame.journal))
            raise
        self._frames.pop()
        if self._frames:
            # Nested success: the enclosing invocation now owns the rollback.
            outer = self._frames[-1]
            for key, entry in frame.journal.items():
                outer.journal.setdefault(key, entry)
        else:
            pending, self._pending = self._pending, []
            self.events.commit(pending)
