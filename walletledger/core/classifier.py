"""
================================================================================
TRANSACTION CLASSIFIER - Rules-First Intent Tagging
================================================================================

Pure function from (net movements, raw call metadata, wallet) to one Tag per
transaction. Rules are an ordered table of (name, predicate, tag); the first
predicate that matches decides. Adding a rule means adding a row.

Precedence:
    1. Failed transaction              -> Fee (gas only)
    2. Method-name keyword table       -> staking / liquidity / position / reward
    3. Flow shape                      -> Swap, Transfer In, Transfer Out
    4. Wallet paid gas, nothing moved  -> Fee
    5. Otherwise                       -> Unknown

Keyword rules run before flow inference on purpose: a contract call can
have a net-zero or misleading flow, so `deposit(...)` is a Staking Deposit
even when the flow looks like a swap.

================================================================================
"""

from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from walletledger.core.models import Classification, Leg, NetMovement, RawTransaction, Tag


class TxContext(NamedTuple):
    tx: RawTransaction
    movements: Tuple[NetMovement, ...]
    wallet: str

    @property
    def method(self) -> str:
        return (self.tx.method or '').split('(')[0].strip()

    @property
    def initiated(self) -> bool:
        return self.tx.initiated_by(self.wallet)

    @property
    def paid_gas(self) -> bool:
        return self.initiated and self.tx.fee > 0

    @property
    def has_in(self) -> bool:
        return any(m.amount > 0 for m in self.movements)

    @property
    def has_out(self) -> bool:
        return any(m.amount < 0 for m in self.movements)


class Rule(NamedTuple):
    name: str
    predicate: Callable[[TxContext], bool]
    tag: Tag


# Order matters: 'undelegate' must be seen before 'delegate', 'unstake'
# before 'stake', and 'withdrawRewards' is a claim, not a return.
KEYWORD_TABLE: Sequence[Tuple[Tuple[str, ...], Tag]] = (
    (('removeliquidity', 'burn'), Tag.REMOVE_LIQUIDITY),
    (('addliquidity', 'mint'), Tag.ADD_LIQUIDITY),
    (('claim', 'harvest', 'reward'), Tag.STAKING_CLAIM),
    (('undelegate', 'unstake', 'withdraw'), Tag.STAKING_RETURN),
    (('delegate', 'stake', 'deposit'), Tag.STAKING_DEPOSIT),
    (('closeposition', 'decreaseposition', 'liquidate'), Tag.CLOSE_POSITION),
    (('openposition', 'increaseposition'), Tag.OPEN_POSITION),
    (('airdrop',), Tag.REWARD),
)


def _keyword_rule(keywords: Tuple[str, ...], tag: Tag) -> Rule:
    def predicate(ctx: TxContext) -> bool:
        method = ctx.method.lower()
        return bool(method) and any(k in method for k in keywords)
    return Rule(f"keyword:{'/'.join(keywords)}", predicate, tag)


RULES: List[Rule] = [
    Rule('failed', lambda ctx: ctx.tx.failed, Tag.FEE),
    *[_keyword_rule(keywords, tag) for keywords, tag in KEYWORD_TABLE],
    Rule('swap', lambda ctx: ctx.has_in and ctx.has_out, Tag.SWAP),
    Rule('transfer_in', lambda ctx: ctx.has_in, Tag.TRANSFER_IN),
    Rule('transfer_out', lambda ctx: ctx.has_out, Tag.TRANSFER_OUT),
    Rule('gas_only', lambda ctx: ctx.paid_gas, Tag.FEE),
]

DEFAULT_NOTES = {
    Tag.SWAP: 'Swap',
    Tag.TRANSFER_IN: 'Received',
    Tag.TRANSFER_OUT: 'Sent',
    Tag.FEE: 'Contract interaction',
}


def match_rule(ctx: TxContext, rules: Sequence[Rule] = RULES) -> Optional[Rule]:
    for rule in rules:
        if rule.predicate(ctx):
            return rule
    return None


def classify(tx: RawTransaction, movements: Sequence[NetMovement], wallet: str,
             native_symbol: str, rules: Sequence[Rule] = RULES) -> Optional[Classification]:
    """
    Classify one transaction.

    Returns None only for a failed transaction the wallet did not pay gas
    for: nothing of the wallet's changed hands, so there is nothing to book.
    Every other input yields a Classification, Unknown included.
    """
    ctx = TxContext(tx, tuple(movements), wallet)
    rule = match_rule(ctx, rules)
    tag = rule.tag if rule else Tag.UNKNOWN
    note = ctx.method

    fee = Leg(tx.fee, native_symbol) if ctx.paid_gas else None

    if tx.failed:
        if fee is None:
            return None
        return Classification(Tag.FEE, fee=fee, note=f"Failed: {note or 'Transaction'}")

    if tag == Tag.FEE:
        return Classification(Tag.FEE, fee=fee, note=note or DEFAULT_NOTES[Tag.FEE])

    sent = tuple(Leg.from_movement(m) for m in ctx.movements if m.amount < 0)
    received = tuple(Leg.from_movement(m) for m in ctx.movements if m.amount > 0)
    return Classification(tag, sent=sent, received=received, fee=fee,
                          note=note or DEFAULT_NOTES.get(tag, 'Transaction'))
