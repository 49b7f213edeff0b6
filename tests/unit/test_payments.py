"""
Tests for the payment and burn payment codecs.
"""

import pytest

from assets.amount import ByteCursor
from assets.exceptions import (
    ConflictingBurnOutputError,
    ConflictingBurnRangeError,
    MissingAmountError,
    MissingFieldError,
    OutputOutOfBoundsError,
    ReservedOutputValueError,
    TruncatedDataError,
)
from assets.payments import BurnPaymentCodec, Payment, PaymentCodec


class TestPaymentCodec:
    """Test single payment records."""

    def setup_method(self):
        self.codec = PaymentCodec()

    def test_encode_simple(self):
        assert self.codec.encode(Payment(amount=15, output=1)) == b'\x01\x0f'

    def test_flags(self):
        assert self.codec.encode(Payment(amount=15, output=1, skip=True)) == b'\x81\x0f'
        assert self.codec.encode(Payment(amount=15, output=1, percent=True)) == b'\x21\x0f'

    def test_range_uses_two_bytes(self):
        assert self.codec.encode(Payment(amount=15, output=300, range=True)) == b'\x41\x2c\x0f'

    def test_decode_range(self):
        payment = self.codec.decode(ByteCursor(b'\x41\x2c\x0f'))
        assert payment.output == 300
        assert payment.range
        assert payment.amount == 15

    def test_decode_flags(self):
        payment = self.codec.decode(ByteCursor(b'\xa3\x0f'))
        assert payment == Payment(amount=15, output=3, skip=True, percent=True)

    def test_output_needs_range(self):
        with pytest.raises(OutputOutOfBoundsError, match="out of bounds"):
            self.codec.encode(Payment(amount=1, output=32))

    def test_range_output_limit(self):
        self.codec.encode(Payment(amount=1, output=8191, range=True))
        with pytest.raises(OutputOutOfBoundsError):
            self.codec.encode(Payment(amount=1, output=8192, range=True))

    def test_negative_output(self):
        with pytest.raises(OutputOutOfBoundsError, match="negative"):
            self.codec.encode(Payment(amount=1, output=-1))

    @pytest.mark.parametrize("amount", [None, 0])
    def test_missing_amount(self, amount):
        with pytest.raises(MissingAmountError):
            self.codec.encode(Payment(amount=amount, output=0))

    def test_missing_output(self):
        with pytest.raises(MissingFieldError, match="output"):
            self.codec.encode(Payment(amount=1))


class TestBulkPayments:
    """Test payment lists."""

    def setup_method(self):
        self.codec = PaymentCodec()

    def test_encode_bulk_concatenates(self):
        payments = [Payment(amount=15, output=1), Payment(amount=5, output=2, skip=True)]
        assert self.codec.encode_bulk(payments) == b'\x01\x0f\x82\x05'

    def test_decode_bulk_reads_to_the_end(self):
        payments = self.codec.decode_bulk(ByteCursor(b'\x01\x0f\x82\x05'))
        assert payments == [Payment(amount=15, output=1), Payment(amount=5, output=2, skip=True)]

    def test_decode_bulk_empty(self):
        assert self.codec.decode_bulk(ByteCursor(b'')) == []

    def test_decode_bulk_truncated_record(self):
        with pytest.raises(TruncatedDataError):
            self.codec.decode_bulk(ByteCursor(b'\x01\x0f\x82'))


class TestBurnPaymentCodec:
    """Test burn payment records."""

    def setup_method(self):
        self.codec = BurnPaymentCodec()

    def test_burn_maps_to_output_31(self):
        assert self.codec.encode(Payment(amount=5, burn=True)) == b'\x1f\x05'

    def test_decode_burn(self):
        payment = self.codec.decode(ByteCursor(b'\x1f\x05'))
        assert payment.burn
        assert payment.output is None
        assert payment.amount == 5

    def test_regular_payment(self):
        assert self.codec.encode(Payment(amount=5, output=2)) == b'\x02\x05'
        assert not self.codec.decode(ByteCursor(b'\x02\x05')).burn

    def test_output_31_with_range_is_not_a_burn(self):
        data = self.codec.encode(Payment(amount=5, output=31, range=True))
        assert data == b'\x40\x1f\x05'
        payment = self.codec.decode(ByteCursor(data))
        assert not payment.burn
        assert payment.output == 31

    def test_burn_and_output_conflict(self):
        with pytest.raises(ConflictingBurnOutputError):
            self.codec.encode(Payment(amount=5, output=2, burn=True))

    def test_burn_and_range_conflict(self):
        with pytest.raises(ConflictingBurnRangeError):
            self.codec.encode(Payment(amount=5, burn=True, range=True))

    def test_reserved_output(self):
        with pytest.raises(ReservedOutputValueError):
            self.codec.encode(Payment(amount=5, output=31))

    def test_neither_output_nor_burn(self):
        with pytest.raises(MissingFieldError, match="burn flag"):
            self.codec.encode(Payment(amount=5))

    def test_burn_payment_does_not_mutate_caller(self):
        payment = Payment(amount=5, burn=True)
        self.codec.encode(payment)
        assert payment.output is None
        assert payment.burn
