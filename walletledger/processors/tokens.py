"""Token symbol/decimals lookup.

Static token lists are maintained elsewhere; this directory only defines
the lookup contract the extractor and the explorer parser rely on, seeded
with whatever entries the caller already knows.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from walletledger.utils.constants import WEI_DECIMALS


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int = WEI_DECIMALS


class TokenDirectory:
    def __init__(self, seed: Optional[Dict[str, TokenInfo]] = None):
        self._tokens: Dict[str, TokenInfo] = {}
        for address, info in (seed or {}).items():
            self.register(address, info)

    def register(self, address: str, info: TokenInfo):
        self._tokens[address.lower()] = info

    def learn(self, entries: Iterable[tuple]):
        """Record (address, symbol, decimals) triples seen in explorer payloads."""
        for address, symbol, decimals in entries:
            if address and symbol and address.lower() not in self._tokens:
                self.register(address, TokenInfo(symbol, int(decimals)))

    def lookup(self, address: Optional[str]) -> TokenInfo:
        """
        Resolve a contract address to its symbol and decimals.

        Unknown contracts render as a shortened address with 18 decimals,
        the same placeholder the explorer front end shows.
        """
        if not address:
            return TokenInfo('UNKNOWN')
        known = self._tokens.get(address.lower())
        if known:
            return known
        if address.startswith('0x') and len(address) > 10:
            return TokenInfo(f"{address[:6]}...{address[-4:]}")
        return TokenInfo(address.upper())

    def __contains__(self, address: str) -> bool:
        return bool(address) and address.lower() in self._tokens

    def __len__(self):
        return len(self._tokens)
