"""
================================================================================
COST-BASIS LEDGER - Per-Asset FIFO Lot Tracking
================================================================================

State is a mapping asset -> deque of Lots, oldest first, scoped to one run.

    acquire()  appends a lot. Unpriced inflows never enter the ledger:
               they could not later produce a sound cost basis.
    dispose()  consumes lots oldest-first. A lot whose remaining quantity
               fits inside what is still needed is removed whole; otherwise
               it is decremented and consumption stops.

Unknown basis:
    Disposing an asset with no lots yields realized_gain = None, never zero
    and never an exception. The same holds when lots run out part-way: the
    uncovered remainder has no basis, so the gain cannot be stated.

Precision:
    Full Decimal precision internally. Rounding to cents happens only in
    RealizedDisposal.rounded(), at reporting time.

Ordering:
    Lots must be fed in ascending timestamp order. An acquisition or
    disposal older than the last one seen raises LedgerOrderError instead of
    silently corrupting FIFO order.

================================================================================
"""

from collections import deque
from decimal import Decimal
from typing import Dict, List, Optional

from walletledger.core.errors import LedgerOrderError
from walletledger.core.models import Lot, RealizedDisposal
from walletledger.utils.logger import logger


class CostBasisLedger:
    def __init__(self):
        self._lots: Dict[str, deque] = {}
        self._last_ts: Optional[int] = None
        self.disposals: List[RealizedDisposal] = []

    def _check_order(self, timestamp: Optional[int]):
        if timestamp is None:
            return
        if self._last_ts is not None and timestamp < self._last_ts:
            raise LedgerOrderError(
                f"Ledger fed out of order: {timestamp} after {self._last_ts}")
        self._last_ts = timestamp

    def acquire(self, asset: str, quantity: Decimal, unit_price: Optional[Decimal],
                timestamp: int) -> Optional[Lot]:
        self._check_order(timestamp)
        if quantity is None or quantity <= 0 or unit_price is None:
            return None
        lot = Lot(asset, quantity, unit_price, timestamp)
        self._lots.setdefault(asset, deque()).append(lot)
        return lot

    def dispose(self, asset: str, quantity: Decimal, unit_price: Optional[Decimal],
                timestamp: Optional[int] = None) -> RealizedDisposal:
        self._check_order(timestamp)
        proceeds = quantity * unit_price if unit_price is not None else None
        queue = self._lots.get(asset)

        if not queue:
            logger.debug(f"   [NO BASIS] {quantity} {asset} disposed with no acquisition on record")
            disposal = RealizedDisposal(asset, quantity, proceeds, None, None)
            self.disposals.append(disposal)
            return disposal

        rem, basis, consumed = quantity, Decimal(0), 0
        while rem > 0 and queue:
            lot = queue[0]
            consumed += 1
            if lot.quantity <= rem:
                basis += lot.quantity * lot.unit_cost
                rem -= lot.quantity
                queue.popleft()
            else:
                basis += rem * lot.unit_cost
                lot.quantity -= rem
                rem = Decimal(0)

        if not queue:
            del self._lots[asset]

        if rem > 0:
            logger.warning(f"   [PARTIAL BASIS] {rem} of {quantity} {asset} disposed beyond recorded lots")
            disposal = RealizedDisposal(asset, quantity, proceeds, None, None, consumed)
        else:
            gain = proceeds - basis if proceeds is not None else None
            disposal = RealizedDisposal(asset, quantity, proceeds, basis, gain, consumed)
        self.disposals.append(disposal)
        return disposal

    def lots(self, asset: str) -> List[Lot]:
        return list(self._lots.get(asset, ()))

    def holdings(self) -> Dict[str, Decimal]:
        return {asset: sum((l.quantity for l in q), Decimal(0)) for asset, q in self._lots.items()}

    def reset(self):
        self._lots.clear()
        self._last_ts = None
        self.disposals = []
