"""
================================================================================
PIPELINE ORCHESTRATOR - Raw Activity to Tagged Ledger
================================================================================

Stages:
    1. FETCH      history collaborator (explorer client), optional
    2. CLASSIFY   date filter -> extract net movements -> classify ->
                  split into rows -> tag filter -> sort ascending
    3. PRICES     every distinct (asset, exact timestamp) referenced by a
                  sent, received or fee leg, resolved in batches
    4. LEDGER     one ascending pass: sent and fee legs dispose, received
                  legs acquire
    5. REPORT     rows sorted newest-first, run statistics

Row Splitting:
    One tag per transaction. The primary row carries the first sent leg,
    the first received leg and the fee (only when the wallet initiated the
    transaction). Each further leg gets its own row with the same tag and
    no fee.

Retention:
    A transaction with no net movements is kept only when the wallet
    initiated it and paid gas (usually a Fee row). Anything else
    without movements is dropped before classification: nothing of the
    wallet's moved and it paid nothing.

Cancellation:
    The token is polled between fetch pages, between price batches and
    before the ledger pass. Once observed, PipelineCancelled propagates and
    no partial result is returned.

================================================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from walletledger.core.cancellation import CancellationToken
from walletledger.core.classifier import classify
from walletledger.core.ledger import CostBasisLedger
from walletledger.core.models import (
    ClassifiedEvent, Classification, Leg, PriceRequest, RawTransaction, RunStats, Tag,
    TokenTransferEvent, asset_key,
)
from walletledger.core.movements import MovementExtractor
from walletledger.decimal_utils import format_quantity, round_usd
from walletledger.processors.price_resolver import BatchResult, PriceCache, PriceResolver
from walletledger.processors.price_sources import default_sources
from walletledger.processors.tokens import TokenDirectory
from walletledger.utils.config import ChainProfile
from walletledger.utils.logger import logger

LEDGER_COLUMNS = [
    'Date',
    'Received Quantity',
    'Received Currency',
    'Received Fiat Amount',
    'Sent Quantity',
    'Sent Currency',
    'Sent Fiat Amount',
    'Fee Amount',
    'Fee Currency',
    'Transaction Hash',
    'Notes',
    'Tag',
    'Realized Gain',
    'Fee Realized Gain',
]


def utc_day(timestamp_ms: int) -> date:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


def format_timestamp(timestamp_ms: int) -> str:
    """MM/DD/YYYY HH:MM:SS in UTC."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime('%m/%d/%Y %H:%M:%S')


def split_rows(tx: RawTransaction, result: Classification) -> List[ClassifiedEvent]:
    base = dict(timestamp=tx.timestamp, hash=tx.hash.lower(), tag=result.tag, note=result.note)

    if result.tag == Tag.FEE:
        return [ClassifiedEvent(fee=result.fee, **base)]

    rows = [ClassifiedEvent(
        sent=result.sent[0] if result.sent else None,
        received=result.received[0] if result.received else None,
        fee=result.fee,
        **base,
    )]
    rows.extend(ClassifiedEvent(sent=leg, **base) for leg in result.sent[1:])
    rows.extend(ClassifiedEvent(received=leg, **base) for leg in result.received[1:])
    return rows


@dataclass
class PipelineResult:
    events: List[ClassifiedEvent] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)
    chain: Optional[ChainProfile] = None

    def to_dataframe(self) -> pd.DataFrame:
        """Ledger rows in output column order. Unknown fiat values stay empty."""
        records = []
        for ev in self.events:
            records.append({
                'Date': format_timestamp(ev.timestamp),
                'Received Quantity': format_quantity(ev.received.quantity) if ev.received else '',
                'Received Currency': ev.received.asset if ev.received else '',
                'Received Fiat Amount': round_usd(ev.received_fiat),
                'Sent Quantity': format_quantity(ev.sent.quantity) if ev.sent else '',
                'Sent Currency': ev.sent.asset if ev.sent else '',
                'Sent Fiat Amount': round_usd(ev.sent_fiat),
                'Fee Amount': format_quantity(ev.fee.quantity) if ev.fee else '',
                'Fee Currency': ev.fee.asset if ev.fee else '',
                'Transaction Hash': ev.hash,
                'Notes': ev.note,
                'Tag': ev.tag.value,
                'Realized Gain': round_usd(ev.realized_gain),
                'Fee Realized Gain': round_usd(ev.fee_realized_gain),
            })
        return pd.DataFrame(records, columns=LEDGER_COLUMNS)

    def to_csv(self, path) -> None:
        self.to_dataframe().to_csv(path, index=False)


class PipelineOrchestrator:
    def __init__(self, chain: ChainProfile, resolver: Optional[PriceResolver] = None,
                 config: Optional[dict] = None, tokens: Optional[TokenDirectory] = None):
        self.chain = chain
        self.config = config or {}
        self.tokens = tokens if tokens is not None else TokenDirectory()
        self._resolver = resolver
        self.fees_are_disposals = bool(self.config.get('accounting', {}).get('fees_are_disposals', True))

    @property
    def resolver(self) -> PriceResolver:
        if self._resolver is None:
            self._resolver = PriceResolver(self.chain, default_sources(self.chain, self.config),
                                           PriceCache(), self.config)
        return self._resolver

    # ---- stage 1 ----
    def run_wallet(self, client, address: str, start: Optional[date] = None,
                   end: Optional[date] = None, tags: Optional[Iterable[Tag]] = None,
                   skip_prices: bool = False, cancel: Optional[CancellationToken] = None,
                   limit: Optional[int] = None) -> PipelineResult:
        """Fetch history through an explorer client, then run()."""
        logger.info("--- 1. FETCH ---")
        history = client.fetch(address, start=start, end=end, cancel=cancel, limit=limit)
        result = self.run(address, history.transactions, history.events, start=start, end=end,
                          tags=tags, skip_prices=skip_prices, cancel=cancel)
        result.stats.skipped += history.skipped
        return result

    # ---- stages 2-5 ----
    def run(self, wallet: str, transactions: Sequence[RawTransaction],
            events: Iterable[TokenTransferEvent], start: Optional[date] = None,
            end: Optional[date] = None, tags: Optional[Iterable[Tag]] = None,
            skip_prices: bool = False, cancel: Optional[CancellationToken] = None) -> PipelineResult:
        cancel = cancel or CancellationToken()
        cancel.raise_if_cancelled('classification')

        logger.info("--- 2. CLASSIFY ---")
        rows = self.classify(wallet, transactions, events, start, end, tags)
        logger.info(f"   {len(rows)} ledger row(s) from {len(transactions)} transaction(s)")

        missing: List[str] = []
        if skip_prices:
            logger.info("--- 3. PRICES SKIPPED ---")
        else:
            logger.info("--- 3. PRICES ---")
            self.resolver.reset()
            prices = self.resolver.resolve_batch(self.price_requests(rows), cancel)
            self.apply_prices(rows, prices)
            missing = prices.missing

        cancel.raise_if_cancelled('ledger')
        logger.info("--- 4. LEDGER ---")
        self.book(rows)

        logger.info("--- 5. REPORT ---")
        rows = sorted(rows, key=lambda ev: ev.timestamp, reverse=True)
        stats = RunStats(total=len(rows), missing_prices=missing)
        for ev in rows:
            stats.tag_counts[ev.tag.value] = stats.tag_counts.get(ev.tag.value, 0) + 1
        return PipelineResult(rows, stats, self.chain)

    def classify(self, wallet: str, transactions: Sequence[RawTransaction],
                 events: Iterable[TokenTransferEvent], start: Optional[date] = None,
                 end: Optional[date] = None,
                 tags: Optional[Iterable[Tag]] = None) -> List[ClassifiedEvent]:
        """Date filter, extract, classify, split, tag filter. Ascending by timestamp."""
        wanted = {Tag.parse(t) if not isinstance(t, Tag) else t for t in tags} if tags else None
        in_range = [tx for tx in transactions
                    if (start is None or utc_day(tx.timestamp) >= start)
                    and (end is None or utc_day(tx.timestamp) <= end)]

        extractor = MovementExtractor(wallet, self.chain.native_symbol, self.tokens)
        grouped = extractor.group_events(transactions, events)

        rows: List[ClassifiedEvent] = []
        for tx in in_range:
            movements = extractor.extract(tx, grouped.get(tx.hash.lower(), []))
            if not movements and not (tx.initiated_by(wallet) and tx.fee > 0):
                continue
            result = classify(tx, movements, wallet, self.chain.native_symbol)
            if result is None:
                continue
            if wanted is not None and result.tag not in wanted:
                continue
            rows.extend(split_rows(tx, result))

        rows.sort(key=lambda ev: ev.timestamp)
        return rows

    def price_requests(self, rows: Iterable[ClassifiedEvent]) -> List[PriceRequest]:
        requests = []
        for ev in rows:
            for leg in (ev.sent, ev.received):
                if leg is not None:
                    requests.append(PriceRequest(leg.asset, ev.timestamp, leg.contract))
            if ev.fee is not None:
                requests.append(PriceRequest(ev.fee.asset, ev.timestamp))
        return requests

    @staticmethod
    def apply_prices(rows: Iterable[ClassifiedEvent], prices: BatchResult):
        for ev in rows:
            if ev.sent is not None:
                quote = prices.price(PriceRequest(ev.sent.asset, ev.timestamp, ev.sent.contract))
                if quote:
                    ev.sent_price, ev.sent_source = quote.price, quote.source
            if ev.received is not None:
                quote = prices.price(PriceRequest(ev.received.asset, ev.timestamp, ev.received.contract))
                if quote:
                    ev.received_price, ev.received_source = quote.price, quote.source
            if ev.fee is not None:
                quote = prices.price(PriceRequest(ev.fee.asset, ev.timestamp))
                if quote:
                    ev.fee_price = quote.price

    def book(self, rows: Iterable[ClassifiedEvent], ledger: Optional[CostBasisLedger] = None) -> CostBasisLedger:
        """Single ascending pass. Within a row: sent, then fee, then received."""
        ledger = ledger or CostBasisLedger()
        for ev in rows:
            if ev.sent is not None:
                disposal = ledger.dispose(_key(ev.sent), ev.sent.quantity, ev.sent_price, ev.timestamp)
                ev.realized_gain = disposal.realized_gain
            if ev.fee is not None and self.fees_are_disposals and ev.fee.quantity > 0:
                disposal = ledger.dispose(_key(ev.fee), ev.fee.quantity, ev.fee_price, ev.timestamp)
                ev.fee_realized_gain = disposal.realized_gain
            if ev.received is not None:
                ledger.acquire(_key(ev.received), ev.received.quantity, ev.received_price, ev.timestamp)
        return ledger


def _key(leg: Leg) -> str:
    return asset_key(leg.asset, leg.contract)
