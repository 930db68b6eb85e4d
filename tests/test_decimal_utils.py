"""
Unit tests for decimal utility functions.
Ensures accurate numeric handling across edge cases.
"""

import pytest
from decimal import Decimal
from walletledger.decimal_utils import (
    to_decimal, parse_decimal, scale_raw_amount, round_usd, format_quantity,
)


class TestToDecimal:
    """Test suite for to_decimal helper function."""

    def test_valid_int(self):
        assert to_decimal(42) == Decimal('42')

    def test_valid_float(self):
        """Floats go through str to avoid binary noise."""
        assert to_decimal(3.14159) == Decimal('3.14159')

    def test_valid_decimal(self):
        d = Decimal('999.99')
        assert to_decimal(d) is d

    def test_scientific_notation(self):
        assert to_decimal('1e6') == Decimal('1000000')

    def test_none_returns_default(self):
        assert to_decimal(None) == Decimal(0)

    def test_none_with_custom_default(self):
        assert to_decimal(None, None) is None

    def test_invalid_string_returns_default(self):
        assert to_decimal('not_a_number') == Decimal(0)
        assert to_decimal('12.34.56') == Decimal(0)

    def test_non_finite_returns_default(self):
        assert to_decimal('NaN') == Decimal(0)
        assert to_decimal(float('inf'), Decimal('-1')) == Decimal('-1')

    def test_precision_preserved(self):
        precise = '0.123456789012345678901234567890'
        assert str(to_decimal(precise)) == precise


class TestParseDecimal:
    """Strict parsing for explorer amounts."""

    def test_empty_is_zero(self):
        assert parse_decimal('') == Decimal(0)
        assert parse_decimal(None) == Decimal(0)

    def test_numeric_string(self):
        assert parse_decimal(' 21000 ') == Decimal('21000')

    @pytest.mark.parametrize('bad', ['abc', '0x12', True, 'NaN', 'Infinity'])
    def test_rejects_non_numeric(self, bad):
        with pytest.raises(ValueError):
            parse_decimal(bad)


class TestScaling:
    def test_wei_to_whole_units(self):
        assert scale_raw_amount('1500000000000000000', 18) == Decimal('1.5')

    def test_six_decimal_token(self):
        assert scale_raw_amount('100000000', 6) == Decimal('100')

    def test_huge_raw_amount_keeps_precision(self):
        raw = '123456789012345678901234567'
        assert scale_raw_amount(raw, 18) == Decimal('123456789.012345678901234567')


class TestReporting:
    def test_round_usd_half_up(self):
        assert round_usd(Decimal('1.005')) == Decimal('1.01')
        assert round_usd(Decimal('-2.345')) == Decimal('-2.35')

    def test_round_usd_keeps_unknown(self):
        assert round_usd(None) is None

    def test_format_quantity_strips_zeros(self):
        assert format_quantity(Decimal('0.05000000')) == '0.05'
        assert format_quantity(Decimal('100')) == '100'

    def test_format_quantity_caps_places(self):
        assert format_quantity(Decimal('0.123456789')) == '0.12345679'

    def test_format_quantity_dust_is_zero(self):
        assert format_quantity(Decimal('0.000000001')) == '0'

    def test_format_quantity_none(self):
        assert format_quantity(None) == ''

    def test_fee_from_gas(self):
        """21000 gas at 20 gwei."""
        fee = Decimal(21000) * Decimal(20_000_000_000) / (Decimal(10) ** 18)
        assert format_quantity(fee) == '0.00042'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
