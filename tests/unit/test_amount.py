"""
Tests for the amount codec and the byte cursor.
"""

import pytest
from decimal import Decimal

from assets.amount import (
    ByteCursor,
    amount_size,
    decode_amount,
    decode_amount_by_version,
    encode_amount,
    scale_amount_for_version,
)
from assets.exceptions import AmountEncodingError, TruncatedDataError


class TestByteCursor:
    """Test the forward-only cursor."""

    def test_consume_advances(self):
        cursor = ByteCursor(b'\x01\x02\x03')
        assert cursor.consume(2) == b'\x01\x02'
        assert cursor.position == 2
        assert cursor.remaining == 1
        assert not cursor.exhausted
        assert cursor.consume_byte() == 3
        assert cursor.exhausted

    def test_consume_past_end(self):
        cursor = ByteCursor(b'\x01')
        with pytest.raises(TruncatedDataError, match="Need 2 bytes"):
            cursor.consume(2)

    def test_empty_cursor_is_exhausted(self):
        assert ByteCursor(b'').exhausted


class TestEncodeAmount:
    """Test amount encoding boundaries."""

    def test_small_values_use_one_byte(self):
        assert encode_amount(0) == b'\x00'
        assert encode_amount(10) == b'\x0a'
        assert encode_amount(31) == b'\x1f'

    def test_32_needs_two_bytes(self):
        assert encode_amount(32) == b'\x22\x00'

    def test_trailing_zeros_go_to_exponent(self):
        # mantissa 1, exponent 2
        assert encode_amount(100) == b'\x20\x12'
        assert encode_amount(1000) == b'\x20\x13'

    def test_large_round_number_stays_short(self):
        assert amount_size(10 ** 20) == 3

    def test_largest_mantissa(self):
        assert amount_size(2 ** 54 - 1) == 7

    def test_too_large(self):
        with pytest.raises(AmountEncodingError, match="does not fit"):
            encode_amount(2 ** 54 + 1)

    def test_negative(self):
        with pytest.raises(AmountEncodingError, match="negative"):
            encode_amount(-1)

    @pytest.mark.parametrize("value", [1.5, "10", True, None])
    def test_non_integer(self, value):
        with pytest.raises(AmountEncodingError, match="must be an integer"):
            encode_amount(value)


class TestDecodeAmount:
    """Test amount decoding."""

    @pytest.mark.parametrize("value", [0, 1, 31, 32, 100, 511, 12345, 10 ** 9, 123456789012, 2 ** 54 - 1])
    def test_decode_matches_encode(self, value):
        cursor = ByteCursor(encode_amount(value) + b'\xff')
        assert decode_amount(cursor) == value
        assert cursor.remaining == 1

    def test_truncated_amount(self):
        with pytest.raises(TruncatedDataError):
            decode_amount(ByteCursor(b'\x22'))


class TestVersionedAmounts:
    """Version 1 issuance amounts are scaled by divisibility."""

    def test_scale_for_version_one(self):
        assert scale_amount_for_version(Decimal("12.34"), 0x01, 2) == 1234

    def test_other_versions_unchanged(self):
        assert scale_amount_for_version(1234, 0x03, 2) == 1234

    def test_too_many_decimal_places(self):
        with pytest.raises(AmountEncodingError, match="decimal places"):
            scale_amount_for_version(Decimal("1.234"), 0x01, 2)

    def test_decode_version_one(self):
        cursor = ByteCursor(encode_amount(1234))
        assert decode_amount_by_version(0x01, cursor, 2) == Decimal("12.34")

    def test_decode_other_version(self):
        cursor = ByteCursor(encode_amount(1234))
        assert decode_amount_by_version(0x03, cursor, 2) == 1234
