"""
================================================================================
CORE MODULE - Ledger Business Logic
================================================================================

Exported Classes:
    MovementExtractor - Net per-asset flows per transaction
    CostBasisLedger - Per-asset FIFO lots and realized gain
    CancellationToken - Cooperative cancellation flag
    Tag - Transaction-kind enum

Exported Functions:
    classify - Rules-first transaction classifier

The pipeline orchestrator is imported from walletledger.core.pipeline
directly; it depends on the price processors.

Usage:
    from walletledger.core import MovementExtractor, classify
    from walletledger.core.pipeline import PipelineOrchestrator

================================================================================
"""

from walletledger.core.cancellation import CancellationToken
from walletledger.core.classifier import classify
from walletledger.core.ledger import CostBasisLedger
from walletledger.core.models import Tag
from walletledger.core.movements import MovementExtractor

__all__ = [
    'CancellationToken',
    'classify',
    'CostBasisLedger',
    'Tag',
    'MovementExtractor',
]
