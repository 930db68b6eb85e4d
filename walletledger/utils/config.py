"""
Configuration Management Module

Handles loading, validating, and updating application configuration from config.json
Supports merging with defaults and per-chain profile overrides
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import filelock

from . import constants

logger = logging.getLogger("walletledger")


def default_config() -> dict:
    return {
        "pricing": {
            "recency_window_seconds": constants.PRICE_RECENCY_WINDOW_SECONDS,
            "batch_size": constants.PRICE_BATCH_SIZE,
            "batch_delay_seconds": constants.PRICE_BATCH_DELAY,
            "max_workers": constants.PRICE_MAX_WORKERS,
            "low_confidence_threshold": constants.LOW_CONFIDENCE_THRESHOLD,
        },
        "api": {
            "retry_attempts": constants.API_RETRY_MAX_ATTEMPTS,
            "timeout_seconds": constants.API_TIMEOUT_SECONDS,
            "explorer_api_key": "",
        },
        "accounting": {
            "method": "FIFO",
            "fees_are_disposals": True,
        },
        "chains": {},
    }


def load_config():
    """
    Load configuration from config.json with sensible defaults

    Returns:
        dict: Configuration dictionary
    """
    config_file = constants.CONFIG_FILE
    defaults = default_config()

    if not config_file.exists():
        _save_config(config_file, defaults)
        return defaults

    try:
        with open(config_file, 'r') as f:
            config = json.load(f)

        # Merge with defaults to ensure all keys exist
        merged = _deep_merge(defaults, config)

        # Save merged config back if anything was added
        if merged != config:
            _save_config(config_file, merged)

        return merged
    except json.JSONDecodeError as e:
        logger.error(f"Config file corrupted: {e}. Using defaults.")
        return defaults
    except OSError as e:
        logger.error(f"Error loading config: {e}. Using defaults.")
        return defaults


def _deep_merge(defaults: dict, override: dict) -> dict:
    """
    Deep merge override config into defaults, preserving new defaults

    Args:
        defaults: Default configuration
        override: User-provided configuration

    Returns:
        dict: Merged configuration
    """
    result = defaults.copy()
    for key, value in override.items():
        if key in defaults and isinstance(defaults[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(defaults[key], value)
        else:
            result[key] = value
    return result


def _write_json_locked(path: Path, payload: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    lock = filelock.FileLock(str(path) + '.lock', timeout=10)
    with lock:
        with open(path, 'w') as f:
            json.dump(payload, f, indent=4)


def _save_config(config_file: Path, config: dict):
    """
    Save configuration to file

    Args:
        config_file: Path to config file
        config: Configuration dictionary
    """
    try:
        _write_json_locked(config_file, config)
    except (OSError, filelock.Timeout) as e:
        logger.error(f"Failed to save config: {e}")


# ==========================================
# CHAIN PROFILES
# ==========================================
@dataclass(frozen=True)
class ChainProfile:
    """Pricing-relevant facts about one EVM chain."""
    id: str
    name: str
    native_symbol: str
    native_decimals: int = constants.WEI_DECIMALS
    defillama_id: str = ''
    coingecko_id: Optional[str] = None
    wrapped_native: Optional[str] = None
    explorer_api: Optional[str] = None


def get_chain_profile(chain_id: Optional[str] = None, config: Optional[dict] = None) -> ChainProfile:
    """
    Build the profile for a chain from built-in defaults plus config.json overrides.

    Unknown chain ids fall back to the default chain, mirroring how the
    explorer proxy resolves an unrecognized chain parameter.
    """
    chain_id = (chain_id or constants.DEFAULT_CHAIN).lower()
    overrides = (config or {}).get('chains', {})

    base = constants.DEFAULT_CHAINS.get(chain_id)
    if base is None and chain_id not in overrides:
        logger.warning(f"Unknown chain '{chain_id}', using {constants.DEFAULT_CHAIN}")
        chain_id = constants.DEFAULT_CHAIN
        base = constants.DEFAULT_CHAINS[chain_id]

    data = dict(base or {})
    data.update(overrides.get(chain_id, {}))
    return ChainProfile(
        id=chain_id,
        name=data.get('name', chain_id.title()),
        native_symbol=data.get('native_symbol', 'ETH'),
        native_decimals=int(data.get('native_decimals', constants.WEI_DECIMALS)),
        defillama_id=data.get('defillama_id', chain_id),
        coingecko_id=data.get('coingecko_id'),
        wrapped_native=data.get('wrapped_native'),
        explorer_api=data.get('explorer_api'),
    )


# ==========================================
# RUN STATUS
# ==========================================
def get_status():
    """
    Get system status including timestamps

    Returns:
        dict: Status dictionary with last_run, last_run_success, etc.
    """
    default_status = {
        'last_run': None,
        'last_run_success': False,
        'last_wallet': None,
    }

    if not constants.STATUS_FILE.exists():
        return default_status

    try:
        with open(constants.STATUS_FILE, 'r') as f:
            return _deep_merge(default_status, json.load(f))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Status file unreadable: {e}")
        return default_status


def update_status(key: str, value):
    """
    Update a specific status key

    Args:
        key: Status key to update
        value: New value
    """
    status = get_status()
    status[key] = value

    try:
        _write_json_locked(constants.STATUS_FILE, status)
    except (OSError, filelock.Timeout) as e:
        logger.error(f"Failed to update status: {e}")


def mark_run_complete(success: bool = True, wallet: Optional[str] = None):
    """Mark that a ledger run completed"""
    update_status('last_run', datetime.now().isoformat())
    update_status('last_run_success', success)
    if wallet:
        update_status('last_wallet', wallet)
