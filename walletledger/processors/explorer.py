"""
================================================================================
EXPLORER HISTORY CLIENT - Etherscan-Compatible Account History
================================================================================

Fetches a wallet's normal transactions (action=txlist) and token transfers
(action=tokentx) from an Etherscan-compatible explorer API (Blockscout and
Etherscan both speak it) and parses them into RawTransaction and
TokenTransferEvent records.

Paging:
    Both endpoints are read newest-first, HISTORY_PAGE_SIZE records per
    page, until a short page. When a start date is given, paging stops at
    the first record older than it; records newer than the end date are
    skipped. Dates are compared as UTC calendar days, both ends inclusive.

Failure Modes:
    - txlist unreachable or erroring   -> HistoryUnavailableError (run aborts)
    - tokentx page unreachable         -> warning, token paging stops there
    - single malformed record          -> [SKIP] warning, record dropped
      (bad number, or a text field that is not a string)

Token-only transactions:
    A token the wallet receives through somebody else's contract call never
    shows up in txlist. Such hashes get a stub RawTransaction (no sender,
    no value, no gas) so their transfers still reach the extractor. The
    wallet did not initiate them, so they never carry a fee.

================================================================================
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

import requests

from walletledger.core.errors import HistoryUnavailableError, MalformedRecordError
from walletledger.core.models import RawTransaction, TokenTransferEvent
from walletledger.decimal_utils import parse_decimal, scale_raw_amount
from walletledger.processors.network_retry import NetworkRetry
from walletledger.processors.tokens import TokenDirectory
from walletledger.utils import constants
from walletledger.utils.config import ChainProfile
from walletledger.utils.logger import logger


@dataclass
class WalletHistory:
    transactions: List[RawTransaction] = field(default_factory=list)
    events: List[TokenTransferEvent] = field(default_factory=list)
    skipped: int = 0


def _utc_day(timestamp_ms: int) -> date:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


def _parse_timestamp(record: dict) -> int:
    raw = record.get('timeStamp')
    try:
        seconds = int(str(raw).strip())
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"Bad timeStamp {raw!r}") from e
    if seconds < 0:
        raise MalformedRecordError(f"Bad timeStamp {raw!r}")
    return seconds * 1000


def _text(record: dict, *keys) -> str:
    """First non-empty string field among keys. Non-string values are malformed."""
    for key in keys:
        value = record.get(key)
        if value is None or value == '':
            continue
        if not isinstance(value, str):
            raise MalformedRecordError(f"Bad {key} {value!r}")
        return value
    return ''


def _method_name(record: dict) -> str:
    fn = _text(record, 'functionName').split('(')[0].strip()
    if fn:
        return fn
    data = _text(record, 'input')
    return data[:10] if len(data) >= 10 else ''


def parse_transaction(record: dict, native_decimals: int = constants.WEI_DECIMALS) -> RawTransaction:
    """Parse one txlist record. Raises MalformedRecordError on bad input."""
    tx_hash = _text(record, 'hash', 'txHash').lower()
    if not tx_hash:
        raise MalformedRecordError("Transaction without hash")
    try:
        value = scale_raw_amount(record.get('value'), native_decimals)
        gas_used = parse_decimal(record.get('gasUsed'))
        gas_price = parse_decimal(record.get('gasPrice'))
    except ValueError as e:
        raise MalformedRecordError(f"{tx_hash}: {e}") from e
    return RawTransaction(
        hash=tx_hash,
        timestamp=_parse_timestamp(record),
        sender=_text(record, 'from').lower(),
        recipient=_text(record, 'to').lower(),
        value=value,
        gas_used=gas_used,
        gas_price=gas_price,
        method=_method_name(record),
        failed=str(record.get('isError')) == '1' or str(record.get('txreceipt_status')) == '0',
    )


def parse_token_transfer(record: dict, tokens: TokenDirectory) -> TokenTransferEvent:
    """Parse one tokentx record. Missing symbol/decimals come from the token directory."""
    tx_hash = _text(record, 'hash', 'transactionHash').lower()
    if not tx_hash:
        raise MalformedRecordError("Token transfer without hash")
    contract = _text(record, 'contractAddress').lower()
    known = tokens.lookup(contract or None)

    raw_decimals = record.get('tokenDecimal', record.get('decimals'))
    try:
        decimals = int(raw_decimals) if raw_decimals not in (None, '') else known.decimals
    except (TypeError, ValueError):
        decimals = known.decimals

    try:
        raw_amount = parse_decimal(record.get('value'))
    except ValueError as e:
        raise MalformedRecordError(f"{tx_hash}: {e}") from e

    return TokenTransferEvent(
        hash=tx_hash,
        sender=_text(record, 'from').lower(),
        recipient=_text(record, 'to').lower(),
        asset=contract or constants.NATIVE_ASSET,
        raw_amount=raw_amount,
        decimals=decimals,
        symbol=_text(record, 'tokenSymbol', 'symbol') or known.symbol,
    )


class ExplorerHistoryClient:
    def __init__(self, chain: ChainProfile, api_key: str = '',
                 session: Optional[requests.Session] = None,
                 tokens: Optional[TokenDirectory] = None,
                 timeout: float = constants.API_TIMEOUT_SECONDS,
                 retries: int = constants.API_RETRY_MAX_ATTEMPTS,
                 page_size: int = constants.HISTORY_PAGE_SIZE,
                 page_delay: float = constants.HISTORY_PAGE_DELAY,
                 sleep: Callable[[float], None] = time.sleep):
        if not chain.explorer_api:
            raise ValueError(f"No explorer API configured for chain '{chain.id}'")
        self.chain = chain
        self.api_key = api_key
        self.session = session or requests.Session()
        self.tokens = tokens if tokens is not None else TokenDirectory()
        self.timeout = timeout
        self.retries = retries
        self.page_size = page_size
        self.page_delay = page_delay
        self.sleep = sleep

    def _get_page(self, action: str, address: str, page: int) -> list:
        """One page of records. Raises HistoryUnavailableError on any upstream failure."""
        params = {
            'module': 'account',
            'action': action,
            'address': address,
            'page': page,
            'offset': self.page_size,
            'sort': 'desc',
        }
        if self.api_key:
            params['apikey'] = self.api_key
        try:
            r = NetworkRetry.run(
                lambda: self.session.get(self.chain.explorer_api, params=params, timeout=self.timeout,
                                         headers={'Accept': 'application/json'}),
                retries=self.retries, context=f"{self.chain.name} {action}")
        except (requests.RequestException, TimeoutError, ConnectionError) as e:
            raise HistoryUnavailableError(f"{self.chain.name} API unreachable: {e}") from e

        if r.status_code != 200:
            raise HistoryUnavailableError(f"{self.chain.name} API error: {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise HistoryUnavailableError(f"{self.chain.name} API returned invalid JSON") from e

        result = data.get('result') if isinstance(data, dict) else None
        if isinstance(result, list):
            return result
        message = str((data or {}).get('message', '')) if isinstance(data, dict) else ''
        if message.lower().startswith('no ') and 'found' in message.lower():
            return []
        raise HistoryUnavailableError(f"{self.chain.name} API error: {message or result}")

    def _walk(self, action: str, address: str, parse, start: Optional[date],
              end: Optional[date], cancel, limit: Optional[int],
              tolerant: bool = False) -> Tuple[List[tuple], int]:
        """Page one endpoint. Returns ([(record, timestamp_ms)], skipped count)."""
        records, skipped, page = [], 0, 1
        while True:
            if cancel is not None:
                cancel.raise_if_cancelled('history fetch')
            try:
                raw_page = self._get_page(action, address, page)
            except HistoryUnavailableError as e:
                if not tolerant:
                    raise
                logger.warning(f"   {action} page {page} unavailable, continuing without it: {e}")
                break
            if not raw_page:
                break

            stop = False
            for raw in raw_page:
                if not isinstance(raw, dict):
                    skipped += 1
                    logger.warning(f"   [SKIP] {action}: unexpected record {raw!r}")
                    continue
                try:
                    item = parse(raw)
                    ts = _parse_timestamp(raw)
                except MalformedRecordError as e:
                    skipped += 1
                    logger.warning(f"   [SKIP] {action}: {e}")
                    continue
                day = _utc_day(ts)
                if start and day < start:
                    stop = True
                    break
                if end and day > end:
                    continue
                records.append((item, ts))
                if limit and len(records) >= limit:
                    stop = True
                    break

            if stop or len(raw_page) < self.page_size:
                break
            page += 1
            self.sleep(self.page_delay)
        return records, skipped

    def fetch(self, address: str, start: Optional[date] = None, end: Optional[date] = None,
              cancel=None, limit: Optional[int] = None,
              include_token_only: bool = True) -> WalletHistory:
        """
        Full history for one wallet.

        Args:
            address: Wallet address (0x...)
            start, end: Inclusive UTC date bounds
            cancel: CancellationToken polled between pages
            limit: Cap on normal transactions fetched
            include_token_only: Add stub transactions for token-only hashes

        Raises:
            HistoryUnavailableError: txlist could not be read at all
            PipelineCancelled: cancel was triggered
        """
        history = WalletHistory()
        native_decimals = self.chain.native_decimals

        txs, skipped = self._walk('txlist', address,
                                  lambda raw: parse_transaction(raw, native_decimals),
                                  start, end, cancel, limit)
        history.transactions.extend(tx for tx, _ in txs)
        history.skipped += skipped
        logger.info(f"   {len(txs)} transaction(s) from {self.chain.name} explorer")

        def parse_tt(raw):
            ev = parse_token_transfer(raw, self.tokens)
            if ev.asset != constants.NATIVE_ASSET and raw.get('tokenSymbol'):
                self.tokens.learn([(ev.asset, ev.symbol, ev.decimals)])
            return ev

        events, skipped = self._walk('tokentx', address, parse_tt, start, end, cancel, None,
                                     tolerant=True)
        history.events.extend(ev for ev, _ in events)
        history.skipped += skipped
        logger.info(f"   {len(events)} token transfer(s) from {self.chain.name} explorer")

        if include_token_only:
            known = {tx.hash for tx in history.transactions}
            for ev, ts in events:
                if ev.hash in known:
                    continue
                zero = Decimal(0)
                history.transactions.append(RawTransaction(
                    hash=ev.hash, timestamp=ts, sender='', recipient='',
                    value=zero, gas_used=zero, gas_price=zero))
                known.add(ev.hash)
        return history
