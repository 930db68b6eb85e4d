"""Network-facing processors: explorer history, price sources, price resolver.

Import from the submodules directly, e.g.
``from walletledger.processors.price_resolver import PriceResolver``.
"""
