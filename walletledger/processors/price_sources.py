"""
================================================================================
PRICE SOURCES - Upstream Price Provider Adapters
================================================================================

Each adapter answers one question: what was SYMBOL worth in USD at exact
instant T (epoch milliseconds)? All share the same surface:

    fetch_price(symbol, timestamp_ms, contract_address=None) -> PriceQuote | None

Adapters:
    DefiLlamaHistoricalSource
        /prices/historical/{unix}/{chain}:{address}
        Needs a contract address. Returns the aggregator's confidence.

    DefiLlamaCurrentSource
        /prices/current/{coin id}
        Snapshot of "now". Timestamp is ignored; the resolver decides when
        a snapshot is close enough to be used.

    PythBenchmarkSource
        /v1/shims/tradingview/history, minute candles around T.
        Symbol-based (Crypto.SYM/USD); returns the close of the candle
        nearest to T.

    CoinGeckoSource
        /coins/{id}/market_chart/range around T; nearest point wins.
        Needs a curated CoinGecko id.

Failure Handling:
    Transport failures are retried via NetworkRetry. HTTP 429 and any other
    non-200 status fail soft to None. Unparseable payloads and zero or
    negative prices are None. Nothing here ever invents a price.

================================================================================
"""

from bisect import bisect_left
from decimal import Decimal
from typing import Dict, List, Optional

import requests

from walletledger.core.models import PriceQuote
from walletledger.decimal_utils import to_decimal
from walletledger.processors.network_retry import NetworkRetry
from walletledger.utils import constants
from walletledger.utils.logger import logger


def curated_ids(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Upper-cased symbol -> CoinGecko id, from TOKEN_MAPPINGS plus extras."""
    ids = {sym.upper(): m['coingecko_id'] for sym, m in constants.TOKEN_MAPPINGS.items()
           if m.get('coingecko_id')}
    for sym, cid in (extra or {}).items():
        if sym and cid:
            ids[sym.upper()] = cid
    return ids


def nearest(points: List[tuple], target: int) -> Optional[tuple]:
    """Point (t, value) whose t is closest to target. Points sorted by t."""
    if not points:
        return None
    times = [p[0] for p in points]
    i = bisect_left(times, target)
    candidates = [points[j] for j in (i - 1, i) if 0 <= j < len(points)]
    return min(candidates, key=lambda p: abs(p[0] - target))


def time_points(pairs) -> List[tuple]:
    """(t, value) pairs sorted by t. Pairs whose t is not a number are dropped."""
    points = []
    for t, value in pairs:
        if isinstance(t, bool):
            continue
        try:
            points.append((int(t), value))
        except (TypeError, ValueError, OverflowError):
            continue
    return sorted(points, key=lambda p: p[0])


class PriceSource:
    name = 'base'

    def __init__(self, session: Optional[requests.Session] = None,
                 timeout: float = constants.API_TIMEOUT_SECONDS,
                 retries: int = constants.API_RETRY_MAX_ATTEMPTS):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retries = retries

    def fetch_price(self, symbol: str, timestamp_ms: int,
                    contract_address: Optional[str] = None) -> Optional[PriceQuote]:
        raise NotImplementedError

    def _get_json(self, url: str, params: Optional[dict] = None):
        try:
            r = NetworkRetry.run(
                lambda: self.session.get(url, params=params, timeout=self.timeout,
                                         headers={'Accept': 'application/json'}),
                retries=self.retries, context=self.name)
        except (requests.RequestException, TimeoutError, ConnectionError) as e:
            logger.debug(f"   [{self.name}] request failed: {e}")
            return None
        if r.status_code == 429:
            # Rate limited: fail soft
            logger.debug(f"   [{self.name}] rate limited on {url}")
            return None
        if r.status_code != 200:
            logger.debug(f"   [{self.name}] HTTP {r.status_code} on {url}")
            return None
        try:
            data = r.json()
        except ValueError as e:
            logger.debug(f"   [{self.name}] invalid JSON from {url}: {e}")
            return None
        if not isinstance(data, dict):
            logger.debug(f"   [{self.name}] unexpected payload from {url}: {type(data).__name__}")
            return None
        return data

    def _coin_entry(self, data: Optional[dict], coin_id: str) -> Optional[dict]:
        coins = (data or {}).get('coins')
        if not isinstance(coins, dict):
            return None
        coin = coins.get(coin_id)
        return coin if isinstance(coin, dict) and coin.get('price') else None

    def _quote(self, raw_price, confidence=None) -> Optional[PriceQuote]:
        price = to_decimal(raw_price, default=None)
        if price is None or price <= 0:
            return None
        conf = None
        if confidence is not None:
            try:
                conf = float(confidence)
            except (TypeError, ValueError):
                conf = None
        return PriceQuote(price, self.name, conf)


class DefiLlamaHistoricalSource(PriceSource):
    name = 'defillama'

    def __init__(self, chain_id: str, base_url: str = constants.DEFILLAMA_API, **kwargs):
        super().__init__(**kwargs)
        self.chain_id = chain_id
        self.base_url = base_url.rstrip('/')

    def fetch_price(self, symbol, timestamp_ms, contract_address=None):
        if not contract_address or not contract_address.startswith('0x'):
            return None
        coin_id = f"{self.chain_id}:{contract_address}"
        return self.fetch_coin(coin_id, timestamp_ms)

    def fetch_coin(self, coin_id: str, timestamp_ms: int) -> Optional[PriceQuote]:
        unix_ts = int(timestamp_ms) // 1000
        data = self._get_json(f"{self.base_url}/prices/historical/{unix_ts}/{coin_id}")
        coin = self._coin_entry(data, coin_id)
        if coin is None:
            return None
        return self._quote(coin['price'], coin.get('confidence'))


class DefiLlamaCurrentSource(PriceSource):
    """Current-price snapshot, keyed by contract or by curated CoinGecko id."""
    name = 'defillama'

    def __init__(self, chain_id: str, base_url: str = constants.DEFILLAMA_API,
                 ids: Optional[Dict[str, str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.chain_id = chain_id
        self.base_url = base_url.rstrip('/')
        self.ids = curated_ids(ids)

    def coin_id(self, symbol: str, contract_address: Optional[str] = None) -> Optional[str]:
        if contract_address and contract_address.startswith('0x'):
            return f"{self.chain_id}:{contract_address}"
        cg = self.ids.get((symbol or '').upper())
        return f"coingecko:{cg}" if cg else None

    def fetch_price(self, symbol, timestamp_ms, contract_address=None):
        coin_id = self.coin_id(symbol, contract_address)
        if not coin_id:
            return None
        data = self._get_json(f"{self.base_url}/prices/current/{coin_id}")
        coin = self._coin_entry(data, coin_id)
        if coin is None:
            return None
        return self._quote(coin['price'], coin.get('confidence'))


class PythBenchmarkSource(PriceSource):
    name = 'pyth'

    def __init__(self, base_url: str = constants.PYTH_API,
                 window_seconds: int = constants.PYTH_CANDLE_WINDOW_SECONDS, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip('/')
        self.window = window_seconds

    def fetch_price(self, symbol, timestamp_ms, contract_address=None):
        if not symbol:
            return None
        ts = int(timestamp_ms) // 1000
        params = {
            'symbol': f"Crypto.{symbol.upper()}/USD",
            'resolution': '1',
            'from': ts - self.window,
            'to': ts + self.window,
        }
        data = self._get_json(f"{self.base_url}/v1/shims/tradingview/history", params)
        if not data or data.get('s') != 'ok':
            return None
        times, closes = data.get('t'), data.get('c')
        if not isinstance(closes, list) or not closes:
            return None
        if not isinstance(times, list) or len(times) != len(closes):
            return self._quote(closes[0])
        point = nearest(time_points(zip(times, closes)), ts)
        return self._quote(point[1]) if point else None


class CoinGeckoSource(PriceSource):
    name = 'coingecko'

    def __init__(self, base_url: str = constants.COINGECKO_API,
                 ids: Optional[Dict[str, str]] = None,
                 window_seconds: int = constants.COINGECKO_RANGE_WINDOW_SECONDS, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip('/')
        self.ids = curated_ids(ids)
        self.window = window_seconds

    def fetch_price(self, symbol, timestamp_ms, contract_address=None):
        coin_id = self.ids.get((symbol or '').upper())
        if not coin_id:
            return None
        return self.fetch_by_id(coin_id, timestamp_ms)

    def fetch_by_id(self, coin_id: str, timestamp_ms: int) -> Optional[PriceQuote]:
        ts = int(timestamp_ms) // 1000
        params = {'vs_currency': 'usd', 'from': ts - self.window, 'to': ts + self.window}
        data = self._get_json(f"{self.base_url}/coins/{coin_id}/market_chart/range", params)
        prices = (data or {}).get('prices')
        if not isinstance(prices, list):
            return None
        points = time_points(p[:2] for p in prices if isinstance(p, (list, tuple)) and len(p) >= 2)
        point = nearest(points, int(timestamp_ms))
        return self._quote(point[1]) if point else None


def default_sources(chain, config: Optional[dict] = None,
                    session: Optional[requests.Session] = None) -> Dict[str, PriceSource]:
    """
    Build the adapter set for one chain.

    Returns a dict keyed by role: 'recency', 'historical', 'benchmark', 'curated'.
    """
    api = (config or {}).get('api', {})
    kwargs = {
        'session': session or requests.Session(),
        'timeout': api.get('timeout_seconds', constants.API_TIMEOUT_SECONDS),
        'retries': api.get('retry_attempts', constants.API_RETRY_MAX_ATTEMPTS),
    }
    native_ids = {chain.native_symbol: chain.coingecko_id} if chain.coingecko_id else {}
    return {
        'recency': DefiLlamaCurrentSource(chain.defillama_id, ids=native_ids, **kwargs),
        'historical': DefiLlamaHistoricalSource(chain.defillama_id, **kwargs),
        'benchmark': PythBenchmarkSource(**kwargs),
        'curated': CoinGeckoSource(ids=native_ids, **kwargs),
    }
