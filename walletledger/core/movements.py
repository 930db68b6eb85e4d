"""
================================================================================
MOVEMENT EXTRACTOR - Net Token Flows Per Transaction
================================================================================

Explorers report a transaction's native value and its ERC-20 transfer
events separately. A router swap, a wrap/unwrap or a flash-loan style
internal hop can show the same asset leaving and coming back inside one
transaction; only the net change is an economic movement.

Algorithm:
    1. Collect hashes of failed transactions. Their transfer events are
       dropped: a reverted transaction can emit events before the revert,
       but the transfers never took effect.
    2. For each surviving transaction, split its events plus native value
       into "in" (to = wallet) and "out" (from = wallet) per asset identity
       (lower-cased contract address, or the native marker).
    3. net = in - out per asset. |net| below DUST_EPSILON counts as zero and
       the asset is dropped.

Known approximation:
    A wrap-then-swap routed through an intermediate wrapped asset is only
    cancelled when the wrap and unwrap legs agree to within epsilon. When
    they differ by more, the residue surfaces as its own movement.

================================================================================
"""

from collections import OrderedDict, defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from walletledger.core.models import NetMovement, RawTransaction, TokenTransferEvent
from walletledger.processors.tokens import TokenDirectory
from walletledger.utils.constants import DUST_EPSILON, NATIVE_ASSET
from walletledger.utils.logger import logger


class MovementExtractor:
    def __init__(self, wallet: str, native_symbol: str,
                 tokens: Optional[TokenDirectory] = None,
                 epsilon: Decimal = DUST_EPSILON):
        self.wallet = wallet.lower()
        self.native_symbol = native_symbol
        self.tokens = tokens or TokenDirectory()
        self.epsilon = epsilon

    @staticmethod
    def failed_hashes(transactions: Iterable[RawTransaction]) -> set:
        return {tx.hash.lower() for tx in transactions if tx.failed and tx.hash}

    def group_events(self, transactions: Iterable[RawTransaction],
                     events: Iterable[TokenTransferEvent]) -> Dict[str, List[TokenTransferEvent]]:
        """Group transfer events by transaction hash, excluding reverted transactions."""
        failed = self.failed_hashes(transactions)
        grouped = defaultdict(list)
        dropped = 0
        for ev in events:
            h = (ev.hash or '').lower()
            if not h:
                continue
            if h in failed:
                dropped += 1
                continue
            grouped[h].append(ev)
        if dropped:
            logger.debug(f"   Dropped {dropped} transfer event(s) emitted by failed transactions")
        return grouped

    def extract(self, tx: RawTransaction, events: Iterable[TokenTransferEvent]) -> List[NetMovement]:
        """Net movements for one transaction, in first-seen asset order."""
        if tx.failed:
            return []

        inflow = OrderedDict()
        outflow = OrderedDict()
        meta = OrderedDict()  # asset id -> (symbol, contract)

        def book(asset_id, symbol, contract, amount, sender, recipient):
            if amount <= 0:
                return
            if asset_id not in meta:
                meta[asset_id] = (symbol, contract)
            if recipient == self.wallet:
                inflow[asset_id] = inflow.get(asset_id, Decimal(0)) + amount
            if sender == self.wallet:
                outflow[asset_id] = outflow.get(asset_id, Decimal(0)) + amount

        for ev in events:
            asset_id, symbol, contract = self._identity(ev)
            book(asset_id, symbol, contract, ev.amount,
                 (ev.sender or '').lower(), (ev.recipient or '').lower())

        # Native value rides on the transaction itself, not on an event
        book(NATIVE_ASSET, self.native_symbol, None, tx.value,
             (tx.sender or '').lower(), (tx.recipient or '').lower())

        movements = []
        for asset_id, (symbol, contract) in meta.items():
            net = inflow.get(asset_id, Decimal(0)) - outflow.get(asset_id, Decimal(0))
            if abs(net) < self.epsilon:
                continue
            movements.append(NetMovement(tx.hash.lower(), asset_id, symbol, net, contract))
        return movements

    def extract_all(self, transactions: List[RawTransaction],
                    events: Iterable[TokenTransferEvent]) -> Dict[str, List[NetMovement]]:
        grouped = self.group_events(transactions, events)
        return {tx.hash.lower(): self.extract(tx, grouped.get(tx.hash.lower(), []))
                for tx in transactions}

    def _identity(self, ev: TokenTransferEvent):
        if not ev.asset or ev.asset == NATIVE_ASSET:
            return NATIVE_ASSET, self.native_symbol, None
        symbol = ev.symbol or self.tokens.lookup(ev.asset).symbol
        return ev.asset.lower(), symbol, ev.asset
