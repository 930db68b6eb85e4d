"""
================================================================================
PRICE RESOLVER - Source-Ranked Fiat Prices at Exact Instants
================================================================================

Answers "what was asset X worth at exact instant T" by walking the price
source adapters in a fixed priority order and recording which one
answered.

Resolution Order:
    1. Recency snapshot (current price), only when T is within the recency
       window (default 24h) of now.
    2. Historical chain:
         a. Aggregator by (chain, contract). The native asset uses the
            wrapped-native address, then the zero address.
         b. Receipt/debt token -> underlying: underlying's contract on the
            aggregator, its curated id, then the benchmark feed by its
            symbol.
         c. Benchmark feed by symbol.
         d. Curated-id aggregator.
    3. Recency snapshot again, outside its window, tagged "(approximate)".

A miss is None, a first-class outcome. There is no stablecoin parity
shortcut and no default price: an unpriced stablecoin is unpriced. An
adapter that raises on a malformed payload counts as a miss for that
source; the walk continues with the next one.

Caching:
    PriceCache is explicit, injected, and cleared at the start of each run.
    Keys are (asset key, exact timestamp ms). Only successful answers are
    stored. Concurrent requests for the same key share one upstream lookup.

Batching:
    resolve_batch() resolves distinct keys in batches (default 10),
    concurrently within a batch, with a fixed delay between batches. The
    cancellation token is polled before every batch.

================================================================================
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from walletledger.core.models import PriceQuote, PriceRequest
from walletledger.utils import constants
from walletledger.utils.config import ChainProfile
from walletledger.utils.logger import logger


# ==========================================
# UNDERLYING TOKEN MAPPING
# ==========================================
@dataclass(frozen=True)
class Underlying:
    symbol: str
    coingecko_id: Optional[str] = None
    address: Optional[str] = None


def _mapped(symbol: str) -> Optional[Underlying]:
    m = constants.TOKEN_MAPPINGS.get(symbol)
    if m is None:
        return None
    return Underlying(symbol, m.get('coingecko_id'), m.get('address'))


def underlying_token(symbol: str) -> Optional[Underlying]:
    """
    Map a receipt, debt or staked token to the asset it tracks ~1:1.

    Curated symbols map to themselves. aCelUSDC -> USDC,
    variableDebtCelWETH -> WETH, mCUSD -> CUSD, stCELO -> CELO.
    Unknown underlyings of a recognized prefix keep their bare symbol.
    """
    upper = (symbol or '').upper()
    if not upper:
        return None

    direct = _mapped(upper)
    if direct:
        return direct

    for prefix in sorted(constants.RECEIPT_TOKEN_PREFIXES, key=len, reverse=True):
        if upper.startswith(prefix) and len(upper) > len(prefix):
            bare = upper[len(prefix):]
            return _mapped(bare) or Underlying(bare)

    # Moola market tokens only count when the remainder is a curated token
    if upper.startswith('M') and len(upper) > 1:
        moola = _mapped(upper[1:])
        if moola:
            return moola

    alias = constants.STAKED_TOKEN_ALIASES.get(upper)
    if alias:
        return _mapped(alias) or Underlying(alias)
    return None


# ==========================================
# CACHE
# ==========================================
class PriceCache:
    """Run-scoped (asset key, timestamp) -> PriceQuote map with in-flight coalescing."""

    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[Tuple[str, int], PriceQuote] = {}
        self._inflight: Dict[Tuple[str, int], Future] = {}

    def get(self, key) -> Optional[PriceQuote]:
        with self._lock:
            return self._values.get(key)

    def claim(self, key) -> Tuple[Future, bool, Optional[PriceQuote]]:
        """
        Returns (future, owner, cached).

        cached is set when the key is already resolved. Otherwise the first
        caller becomes the owner and must call complete(); later callers
        wait on the same future.
        """
        with self._lock:
            if key in self._values:
                return None, False, self._values[key]
            fut = self._inflight.get(key)
            if fut is not None:
                return fut, False, None
            fut = Future()
            self._inflight[key] = fut
            return fut, True, None

    def complete(self, key, quote: Optional[PriceQuote] = None, error: Optional[BaseException] = None):
        with self._lock:
            fut = self._inflight.pop(key, None)
            if quote is not None and error is None:
                self._values[key] = quote
        if fut is None:
            return
        if error is not None:
            fut.set_exception(error)
        else:
            fut.set_result(quote)

    def clear(self):
        with self._lock:
            self._values.clear()

    def __len__(self):
        with self._lock:
            return len(self._values)

    def __contains__(self, key):
        with self._lock:
            return key in self._values


@dataclass
class BatchResult:
    prices: Dict[Tuple[str, int], Optional[PriceQuote]] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)

    def price(self, request: PriceRequest) -> Optional[PriceQuote]:
        return self.prices.get(request.cache_key)


def describe_miss(request: PriceRequest) -> str:
    when = datetime.fromtimestamp(request.timestamp / 1000, tz=timezone.utc)
    return f"{request.symbol} at {when.isoformat()}"


# ==========================================
# RESOLVER
# ==========================================
class PriceResolver:
    def __init__(self, chain: ChainProfile, sources: Dict[str, object],
                 cache: Optional[PriceCache] = None, config: Optional[dict] = None,
                 clock: Optional[Callable[[], float]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        pricing = (config or {}).get('pricing', {})
        self.chain = chain
        self.sources = sources
        self.cache = cache if cache is not None else PriceCache()
        self.clock = clock or time.time
        self.sleep = sleep
        self.recency_window = int(pricing.get('recency_window_seconds', constants.PRICE_RECENCY_WINDOW_SECONDS))
        self.batch_size = max(1, int(pricing.get('batch_size', constants.PRICE_BATCH_SIZE)))
        self.batch_delay = float(pricing.get('batch_delay_seconds', constants.PRICE_BATCH_DELAY))
        self.max_workers = max(1, int(pricing.get('max_workers', constants.PRICE_MAX_WORKERS)))
        self.low_confidence = float(pricing.get('low_confidence_threshold', constants.LOW_CONFIDENCE_THRESHOLD))

    def reset(self):
        self.cache.clear()

    # ---- single request ----
    def resolve(self, request: PriceRequest) -> Optional[PriceQuote]:
        key = request.cache_key
        fut, owner, cached = self.cache.claim(key)
        if cached is not None:
            return cached
        if not owner:
            return fut.result()
        try:
            quote = self._lookup(request)
        except Exception as e:
            self.cache.complete(key, error=e)
            raise
        self.cache.complete(key, quote)
        if quote is None:
            logger.debug(f"   [NO PRICE] {describe_miss(request)}")
        return quote

    def _within_recency(self, timestamp_ms: int) -> bool:
        now_ms = int(self.clock() * 1000)
        return abs(now_ms - int(timestamp_ms)) <= self.recency_window * 1000

    def _is_native(self, request: PriceRequest) -> bool:
        if request.contract:
            return False
        return (request.symbol or '').upper() == self.chain.native_symbol.upper()

    def _native_addresses(self) -> List[str]:
        addrs = [self.chain.wrapped_native] if self.chain.wrapped_native else []
        addrs.append(constants.ZERO_ADDRESS)
        return addrs

    def _call(self, role: str, fetch, *args) -> Optional[PriceQuote]:
        """One upstream lookup. An adapter error costs only this request."""
        try:
            return fetch(*args)
        except Exception as e:
            logger.warning(f"   [{role}] lookup {args[:2]} failed: {type(e).__name__}: {e}")
            return None

    def _ask(self, role: str, symbol: str, timestamp_ms: int,
             contract: Optional[str] = None) -> Optional[PriceQuote]:
        source = self.sources.get(role)
        if source is None:
            return None
        quote = self._call(role, source.fetch_price, symbol, timestamp_ms, contract)
        if quote is None:
            return None
        if quote.confidence is not None and quote.confidence < self.low_confidence:
            quote = PriceQuote(quote.price, f"{quote.source} (low confidence)", quote.confidence)
        return quote

    def _recency_contract(self, request: PriceRequest) -> Optional[str]:
        if request.contract:
            return request.contract
        if self._is_native(request):
            return self.chain.wrapped_native
        return None

    def _lookup(self, request: PriceRequest) -> Optional[PriceQuote]:
        symbol, ts = (request.symbol or '').upper(), request.timestamp
        recent = self._within_recency(ts)

        if recent:
            quote = self._ask('recency', symbol, ts, self._recency_contract(request))
            if quote:
                return quote

        quote = self._historical(request)
        if quote:
            return quote

        if not recent:
            quote = self._ask('recency', symbol, ts, self._recency_contract(request))
            if quote:
                return PriceQuote(quote.price, f"{quote.source} (approximate)", quote.confidence)
        return None

    def _historical(self, request: PriceRequest) -> Optional[PriceQuote]:
        symbol, ts = (request.symbol or '').upper(), request.timestamp

        if request.contract:
            quote = self._ask('historical', symbol, ts, request.contract)
            if quote:
                return quote

        if self._is_native(request):
            for addr in self._native_addresses():
                quote = self._ask('historical', symbol, ts, addr)
                if quote:
                    return quote

        under = underlying_token(symbol)
        if under:
            if under.address:
                quote = self._ask('historical', under.symbol, ts, under.address)
                if quote:
                    return quote
            if under.coingecko_id:
                quote = self._curated_by_id(under.coingecko_id, ts)
                if quote:
                    return quote
            quote = self._ask('benchmark', under.symbol, ts)
            if quote:
                return quote

        quote = self._ask('benchmark', symbol, ts)
        if quote:
            return quote

        return self._ask('curated', symbol, ts)

    def _curated_by_id(self, coin_id: str, ts: int) -> Optional[PriceQuote]:
        source = self.sources.get('curated')
        if source is None or not hasattr(source, 'fetch_by_id'):
            return None
        return self._call('curated', source.fetch_by_id, coin_id, ts)

    # ---- batches ----
    def resolve_batch(self, requests: Iterable[PriceRequest], cancel=None) -> BatchResult:
        unique: Dict[Tuple[str, int], PriceRequest] = {}
        for req in requests:
            unique.setdefault(req.cache_key, req)
        pending = list(unique.values())
        result = BatchResult()
        if not pending:
            return result

        batches = [pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
        logger.info(f"   Resolving {len(pending)} price(s) in {len(batches)} batch(es)")

        for n, batch in enumerate(batches):
            if n:
                self.sleep(self.batch_delay)
            if cancel is not None:
                cancel.raise_if_cancelled('price resolution')
            workers = min(self.max_workers, len(batch))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(self.resolve, req): req for req in batch}
                for fut in as_completed(futures):
                    req = futures[fut]
                    result.prices[req.cache_key] = fut.result()

        if cancel is not None:
            cancel.raise_if_cancelled('price resolution')

        # Report misses in request order
        for req in pending:
            if result.prices.get(req.cache_key) is None:
                result.missing.append(describe_miss(req))
        if result.missing:
            logger.warning(f"   Could not find prices for {len(result.missing)} token/time combination(s)")
        return result
