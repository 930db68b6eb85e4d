"""
================================================================================
UTILS MODULE - Shared Utilities and Helpers
================================================================================

Shared infrastructure used across all pipeline components.

Exported Functions:
    Logging:
        - setup_logging() - Initialize logging infrastructure
        - set_run_context(context) - Set execution context
        - logger - Main application logger

    Configuration:
        - load_config() - Load configuration from config.json
        - get_chain_profile() - Pricing-relevant chain facts
        - get_status() - Read application status
        - update_status() - Update application status
        - mark_run_complete() - Record a finished run

Usage:
    from walletledger.utils import logger, load_config
    from walletledger.utils.constants import DUST_EPSILON

================================================================================
"""

from .logger import setup_logging, set_run_context, logger
from .config import (
    ChainProfile,
    load_config,
    get_chain_profile,
    get_status,
    update_status,
    mark_run_complete,
)

__all__ = [
    'setup_logging',
    'set_run_context',
    'logger',
    'ChainProfile',
    'load_config',
    'get_chain_profile',
    'get_status',
    'update_status',
    'mark_run_complete',
]
