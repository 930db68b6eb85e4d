"""
================================================================================
CONSTANTS - System-Wide Configuration Values
================================================================================

Centralized repository for the hardcoded constants used by the wallet
ledger pipeline. Organized by functional category.

Constant Categories:
    1. File Paths - Directory and file locations
    2. Ledger Precision - Dust threshold and fiat rounding
    3. API - External service rate limits and timeouts
    4. Pricing - Recency window, batching and confidence thresholds
    5. Chains - Default chain profiles used when config.json is silent
    6. Token Mappings - Curated canonical ids for price lookups

Key Constants:

    DUST_EPSILON = 1e-8
        Net movements smaller than this are treated as exactly zero.
        This is what cancels wrap/unwrap noise within one transaction.

    USD_PRECISION = 2
        Fiat values are rounded only when reported.

    PRICE_RECENCY_WINDOW_SECONDS = 86400
        Current-price snapshots are trusted only this close to "now".

File Path Constants:
    All paths are relative to BASE_DIR (working directory).
    Supports monkeypatching for test isolation.

Note:
    Values in this file are STATIC. For runtime-configurable settings,
    use config.json via walletledger.utils.config.

================================================================================
"""

import os
from pathlib import Path
from decimal import Decimal

# ==========================================
# FILE PATHS
# ==========================================
BASE_DIR = Path.cwd()
OUTPUT_DIR = BASE_DIR / 'outputs'
LOG_DIR = OUTPUT_DIR / 'logs'
CONFIG_FILE = BASE_DIR / 'configs' / 'config.json'
STATUS_FILE = BASE_DIR / 'configs' / 'status.json'

# ==========================================
# LEDGER PRECISION
# ==========================================
DUST_EPSILON = Decimal('0.00000001')  # 1e-8 of a unit
USD_PRECISION = 2
WEI_DECIMALS = 18

# Asset identity used for the chain's own currency in movements
NATIVE_ASSET = 'native'
ZERO_ADDRESS = '0x' + '0' * 40

# ==========================================
# API CONSTANTS
# ==========================================
API_RETRY_MAX_ATTEMPTS = 3  # Maximum number of retries for failed API calls
API_RETRY_DELAY_MS = 1000  # Initial delay between retries in milliseconds
API_TIMEOUT_SECONDS = 10  # Timeout for API requests in seconds

HISTORY_PAGE_SIZE = 100  # Explorer page size (txlist / tokentx)
HISTORY_PAGE_DELAY = 0.05  # Seconds between explorer pages

DEFILLAMA_API = 'https://coins.llama.fi'
PYTH_API = 'https://benchmarks.pyth.network'
COINGECKO_API = 'https://api.coingecko.com/api/v3'

# ==========================================
# PRICING
# ==========================================
PRICE_RECENCY_WINDOW_SECONDS = 24 * 60 * 60
PRICE_BATCH_SIZE = 10
PRICE_BATCH_DELAY = 0.1  # Seconds between price batches
PRICE_MAX_WORKERS = 4
LOW_CONFIDENCE_THRESHOLD = 0.9
PYTH_CANDLE_WINDOW_SECONDS = 300  # Half-width of the minute-candle query
COINGECKO_RANGE_WINDOW_SECONDS = 3600  # Half-width of the market_chart/range query

# ==========================================
# CHAINS
# ==========================================
"""
Pricing-relevant chain data only. Display data (themes, explorer URL
templates, address validation) lives with the front end.
"""
DEFAULT_CHAIN = 'celo'

DEFAULT_CHAINS = {
    'celo': {
        'name': 'Celo',
        'native_symbol': 'CELO',
        'native_decimals': 18,
        'defillama_id': 'celo',
        'coingecko_id': 'celo',
        'wrapped_native': '0x471EcE3750Da237f93B8E339c536989b8978a438',
        'explorer_api': 'https://explorer.celo.org/mainnet/api',
    },
    'songbird': {
        'name': 'Songbird',
        'native_symbol': 'SGB',
        'native_decimals': 18,
        'defillama_id': 'songbird',
        'coingecko_id': 'songbird',
        'wrapped_native': '0x02f0826ef6aD107Cfc861152B32B52fD11BaB9ED',
        'explorer_api': 'https://songbird-explorer.flare.network/api',
    },
    'soneium': {
        'name': 'Soneium',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'defillama_id': 'soneium',
        'coingecko_id': 'ethereum',
        'wrapped_native': '0x4200000000000000000000000000000000000006',
        'explorer_api': 'https://soneium.blockscout.com/api',
    },
}

# ==========================================
# TOKEN MAPPINGS
# ==========================================
"""
Curated symbol -> canonical id (and known contract) used when a token has
no contract address or the aggregator has no data for it.
"""
TOKEN_MAPPINGS = {
    'USDC': {'coingecko_id': 'usd-coin'},
    'USDT': {'coingecko_id': 'tether'},
    'WETH': {'coingecko_id': 'weth'},
    'CELO': {'coingecko_id': 'celo'},
    'CUSD': {'coingecko_id': 'celo-dollar', 'address': '0x765DE816845861e75A25fCA122bb6898B8B1282a'},
    'CEUR': {'coingecko_id': 'celo-euro', 'address': '0xD8763CBa276a3738E6DE85b4b3bF5FDed6D6cA73'},
    'CREAL': {'coingecko_id': 'celo-brazilian-real', 'address': '0xe8537a3d056DA446677B9E9d6c5dB704EaAb4787'},
}

# Receipt / debt token prefixes that track an underlying ~1:1
RECEIPT_TOKEN_PREFIXES = ('VARIABLEDEBTCEL', 'ACEL')
STAKED_TOKEN_ALIASES = {'STCELO': 'CELO'}

# ==========================================
# RUNTIME CONTEXT
# ==========================================
TEST_MODE = os.environ.get('TEST_MODE') == '1'
