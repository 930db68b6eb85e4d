"""
================================================================================
WALLETLEDGER PACKAGE - Wallet Activity to Tagged Cost-Basis Ledger
================================================================================

Turns raw EVM wallet activity (native transfers, contract calls, token
transfer events) into a ledger of tagged economic events with FIFO
realized gain/loss.

Package Structure:
    walletledger/core/        - Extraction, classification, ledger, pipeline
    walletledger/processors/  - Explorer client, price sources and resolver
    walletledger/utils/       - Shared utilities (logging, config, constants)

Design Principles:
    - Pure, deterministic core; network calls only in processors
    - "Unknown" (None) is a first-class outcome, never a silent zero
    - Test-friendly architecture (injected sessions, clocks, caches)

================================================================================
"""

__version__ = "2025.1"
