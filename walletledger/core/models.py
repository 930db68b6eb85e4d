"""
Domain records shared by the extractor, classifier, resolver and ledger.

Raw records are frozen: they arrive once per fetch batch and are never
mutated. Quantities and prices are Decimal throughout; `None` stands for
"unknown" (missing price, missing basis) and is never replaced by zero.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from walletledger.decimal_utils import round_usd
from walletledger.utils.constants import NATIVE_ASSET


class Tag(str, Enum):
    SWAP = 'Swap'
    TRANSFER_IN = 'Transfer In'
    TRANSFER_OUT = 'Transfer Out'
    STAKING_DEPOSIT = 'Staking Deposit'
    STAKING_RETURN = 'Staking Return'
    STAKING_CLAIM = 'Staking Claim'
    ADD_LIQUIDITY = 'Add Liquidity'
    REMOVE_LIQUIDITY = 'Remove Liquidity'
    OPEN_POSITION = 'Open Position'
    CLOSE_POSITION = 'Close Position'
    REWARD = 'Reward'
    FEE = 'Fee'
    UNKNOWN = 'Unknown'

    @classmethod
    def parse(cls, value: str) -> 'Tag':
        """Accept the enum name, its value, or a loose spelling ('transfer_in')."""
        norm = str(value).strip().replace('_', ' ').replace('-', ' ').lower()
        for tag in cls:
            if norm in (tag.value.lower(), tag.name.replace('_', ' ').lower()):
                return tag
        raise ValueError(f"Unknown tag: {value}")


@dataclass(frozen=True)
class RawTransaction:
    hash: str
    timestamp: int  # epoch milliseconds
    sender: str
    recipient: str
    value: Decimal  # native currency, whole units
    gas_used: Decimal
    gas_price: Decimal  # wei
    method: str = ''
    failed: bool = False

    @property
    def fee(self) -> Decimal:
        """Gas paid in whole native units (gasUsed * gasPrice / 1e18)."""
        return self.gas_used * self.gas_price / (Decimal(10) ** 18)

    def initiated_by(self, wallet: str) -> bool:
        return self.sender.lower() == wallet.lower()


@dataclass(frozen=True)
class TokenTransferEvent:
    hash: str
    sender: str
    recipient: str
    asset: str  # contract address, or NATIVE_ASSET
    raw_amount: Decimal  # integer on-chain units
    decimals: int
    symbol: str = ''

    @property
    def amount(self) -> Decimal:
        return self.raw_amount / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class NetMovement:
    hash: str
    asset: str  # asset identity: lower-cased contract or NATIVE_ASSET
    symbol: str
    amount: Decimal  # signed: positive = wallet gained
    contract: Optional[str] = None

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0

    @property
    def is_native(self) -> bool:
        return self.asset == NATIVE_ASSET


@dataclass(frozen=True)
class Leg:
    """One side of an event: a positive quantity of one asset."""
    quantity: Decimal
    asset: str  # display symbol
    contract: Optional[str] = None

    @classmethod
    def from_movement(cls, movement: NetMovement) -> 'Leg':
        return cls(abs(movement.amount), movement.symbol, movement.contract)


@dataclass(frozen=True)
class Classification:
    """
    Result of classifying one transaction.

    `tag` is one value per transaction. `sent`/`received` hold every leg in
    movement order; the orchestrator turns them into one primary row plus
    one row per remaining leg.
    """
    tag: Tag
    sent: Tuple[Leg, ...] = ()
    received: Tuple[Leg, ...] = ()
    fee: Optional[Leg] = None
    note: str = ''

    @property
    def needs_split(self) -> bool:
        return len(self.sent) > 1 or len(self.received) > 1


@dataclass
class ClassifiedEvent:
    timestamp: int
    hash: str
    tag: Tag
    sent: Optional[Leg] = None
    received: Optional[Leg] = None
    fee: Optional[Leg] = None
    note: str = ''
    # Populated by the price and ledger passes
    sent_price: Optional[Decimal] = None
    received_price: Optional[Decimal] = None
    fee_price: Optional[Decimal] = None
    sent_source: Optional[str] = None
    received_source: Optional[str] = None
    realized_gain: Optional[Decimal] = None
    fee_realized_gain: Optional[Decimal] = None

    @property
    def sent_fiat(self) -> Optional[Decimal]:
        if self.sent is None or self.sent_price is None:
            return None
        return self.sent.quantity * self.sent_price

    @property
    def received_fiat(self) -> Optional[Decimal]:
        if self.received is None or self.received_price is None:
            return None
        return self.received.quantity * self.received_price


@dataclass(frozen=True)
class PriceRequest:
    symbol: str
    timestamp: int  # epoch milliseconds, exact
    contract: Optional[str] = None

    @property
    def key(self) -> str:
        return asset_key(self.symbol, self.contract)

    @property
    def cache_key(self) -> Tuple[str, int]:
        return (self.key, self.timestamp)


@dataclass(frozen=True)
class PriceQuote:
    price: Decimal
    source: str
    confidence: Optional[float] = None


@dataclass
class Lot:
    asset: str
    quantity: Decimal
    unit_cost: Decimal
    acquired_at: int


@dataclass(frozen=True)
class RealizedDisposal:
    asset: str
    quantity: Decimal
    proceeds: Optional[Decimal]
    cost_basis: Optional[Decimal]
    realized_gain: Optional[Decimal]
    lots_consumed: int = 0

    def rounded(self) -> 'RealizedDisposal':
        return RealizedDisposal(
            asset=self.asset,
            quantity=self.quantity,
            proceeds=round_usd(self.proceeds),
            cost_basis=round_usd(self.cost_basis),
            realized_gain=round_usd(self.realized_gain),
            lots_consumed=self.lots_consumed,
        )


def asset_key(symbol: str, contract: Optional[str] = None) -> str:
    """
    Pricing identity of a token.

    Symbols collide across chains and contracts, so the contract address is
    part of the key whenever one is known.
    """
    sym = (symbol or '').upper()
    if contract:
        return f"{sym}@{contract.lower()}"
    return sym


@dataclass
class RunStats:
    total: int = 0
    tag_counts: dict = field(default_factory=dict)
    missing_prices: list = field(default_factory=list)
    skipped: int = 0
