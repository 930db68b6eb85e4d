from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Any, Optional


# ============================================================================
# PRECISION CONSTANTS
# ============================================================================

# USD/fiat precision (cents)
USD_PRECISION = Decimal('0.01')


# ============================================================================
# ROUNDING CONTEXT (ROUND_HALF_UP)
# ============================================================================

def set_ledger_rounding_context() -> None:
    """
    Set global Decimal context for ledger calculations.
    Uses ROUND_HALF_UP (0.5 always rounds up) for reported fiat values.
    Raw token amounts reach 1e27+ units, so precision is kept generous.
    """
    ctx = getcontext()
    ctx.rounding = ROUND_HALF_UP
    ctx.prec = 50


# Initialize rounding on module load
set_ledger_rounding_context()


# ============================================================================
# DECIMAL COERCION HELPERS
# ============================================================================

def to_decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """
    Safely coerce any value to a Decimal, preserving precision for financial calculations.

    Args:
        value: Any value to convert. Supports int, float, str, Decimal, None.
        default: Decimal fallback if conversion fails. Defaults to Decimal(0).

    Returns:
        Decimal: Precise numeric value, or default if conversion fails.

    Examples:
        >>> to_decimal('45000.123')
        Decimal('45000.123')
        >>> to_decimal('invalid') == Decimal(0)
        True
        >>> to_decimal(None, Decimal('-1')) == Decimal('-1')
        True

    Note:
        - Floats are coerced via str() to preserve precision
        - Existing Decimals are passed through unchanged
        - None, NaN, infinities and invalid strings return default
    """
    try:
        if isinstance(value, Decimal):
            result = value
        else:
            result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def parse_decimal(value: Any) -> Decimal:
    """
    Strict counterpart of to_decimal for upstream records.

    A missing or empty value is zero; anything else that is not a finite
    number raises ValueError so the caller can skip the record instead of
    silently booking a zero.
    """
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return Decimal(0)
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a numeric amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def scale_raw_amount(raw: Any, decimals: int) -> Decimal:
    """Convert an integer on-chain amount to whole units (raw / 10**decimals)."""
    return parse_decimal(raw) / (Decimal(10) ** int(decimals))


# ============================================================================
# REPORTING HELPERS
# ============================================================================

def round_usd(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round a fiat amount to cents. None (unknown) stays None."""
    if value is None:
        return None
    return to_decimal(value).quantize(USD_PRECISION, rounding=ROUND_HALF_UP)


def format_quantity(value: Optional[Decimal], places: int = 8) -> str:
    """
    Render a quantity with at most `places` decimals and no trailing zeros.

    >>> format_quantity(Decimal('0.05000000'))
    '0.05'
    >>> format_quantity(Decimal('100'))
    '100'
    """
    if value is None:
        return ''
    quantized = to_decimal(value).quantize(Decimal(10) ** -places, rounding=ROUND_HALF_UP)
    text = format(quantized, 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text or '0'
