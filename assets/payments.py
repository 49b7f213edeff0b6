"""
Colored Asset Protocol - Payment Codecs

A payment moves ``amount`` units from the current input to ``output``. On the
wire each payment is a flags/output byte (two bytes for range payments)
followed by the encoded amount::

    bit  7     6      5        4..0 (+ second byte when range)
         skip  range  percent  output

Burn records reuse the same layout and reserve output 31 (without range) to
mean "destroy these units".
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from .amount import ByteCursor, decode_amount, encode_amount
from .exceptions import (
    ConflictingBurnOutputError,
    ConflictingBurnRangeError,
    MissingAmountError,
    MissingFieldError,
    OutputOutOfBoundsError,
    ReservedOutputValueError,
)


logger = logging.getLogger(__name__)

SKIP_FLAG = 0x80
RANGE_FLAG = 0x40
PERCENT_FLAG = 0x20
FLAG_MASK = 0xe0

OUTPUT_BITS = 5
RANGE_OUTPUT_BITS = 13
MAX_OUTPUT = (1 << OUTPUT_BITS) - 1
MAX_RANGE_OUTPUT = (1 << RANGE_OUTPUT_BITS) - 1

BURN_OUTPUT = 0x1f


@dataclass
class Payment:
    """
    One allocation of asset units.

    Callers address inputs explicitly with ``input``; the wire form replaces
    it with ``skip`` (see ``assets.asset.payments_input_to_skip``).
    """
    amount: Optional[int] = None
    output: Optional[int] = None
    input: Optional[int] = None
    skip: bool = False
    range: bool = False
    percent: bool = False
    burn: bool = False

    def to_dict(self) -> dict:
        data = {'amount': self.amount, 'percent': self.percent}
        if self.burn:
            data['burn'] = True
        else:
            data['output'] = self.output
            data['range'] = self.range
        if self.input is not None:
            data['input'] = self.input
        else:
            data['skip'] = self.skip
        return data


class PaymentCodec:
    """Encoder/decoder for transfer and issuance payment records."""

    def encode(self, payment: Payment) -> bytes:
        """
        Encode one payment record.

        Raises:
            MissingAmountError: If the amount is missing or zero
            MissingFieldError: If no output is given
            OutputOutOfBoundsError: If the output does not fit 5 (or 13 with range) bits
        """
        if not payment.amount:
            raise MissingAmountError("Payment needs a non-zero amount")
        if payment.output is None:
            raise MissingFieldError("Payment needs an output")
        if payment.output < 0:
            raise OutputOutOfBoundsError(f"Output can't be negative: {payment.output}")

        limit = MAX_RANGE_OUTPUT if payment.range else MAX_OUTPUT
        if payment.output > limit:
            raise OutputOutOfBoundsError(
                f"Output {payment.output} is out of bounds (max {limit}, range={payment.range})"
            )

        head = bytearray(payment.output.to_bytes(2 if payment.range else 1, byteorder='big'))
        if payment.skip:
            head[0] |= SKIP_FLAG
        if payment.range:
            head[0] |= RANGE_FLAG
        if payment.percent:
            head[0] |= PERCENT_FLAG

        return bytes(head) + encode_amount(payment.amount)

    def decode(self, cursor: ByteCursor) -> Payment:
        """Decode one payment record at the cursor."""
        first = cursor.consume_byte()
        flags = first & FLAG_MASK
        is_range = bool(flags & RANGE_FLAG)

        output = first & ~FLAG_MASK & 0xff
        if is_range:
            output = (output << 8) | cursor.consume_byte()

        return Payment(
            amount=decode_amount(cursor),
            output=output,
            skip=bool(flags & SKIP_FLAG),
            range=is_range,
            percent=bool(flags & PERCENT_FLAG),
        )

    def encode_bulk(self, payments: Iterable[Payment]) -> bytes:
        return b''.join(self.encode(payment) for payment in payments)

    def decode_bulk(self, cursor: ByteCursor) -> List[Payment]:
        """
        Decode payment records until the cursor is exhausted.

        The list ends exactly at the end of the data. A record that is cut
        short raises instead of silently ending the list.
        """
        payments = []
        while not cursor.exhausted:
            payments.append(self.decode(cursor))
        logger.debug(f"Decoded {len(payments)} payment records")
        return payments


class BurnPaymentCodec(PaymentCodec):
    """Payment codec for burn records, mapping the burn flag to output 31."""

    def encode(self, payment: Payment) -> bytes:
        if payment.output is None and not payment.burn:
            raise MissingFieldError("Payment needs an output or the burn flag")
        if payment.output is not None and payment.burn:
            raise ConflictingBurnOutputError("Received both burn and output")
        if payment.range and payment.burn:
            raise ConflictingBurnRangeError("Received both burn and range")
        if not payment.burn and not payment.range and payment.output == BURN_OUTPUT:
            raise ReservedOutputValueError(
                f"Output {BURN_OUTPUT} without range is reserved for burns, use the burn flag"
            )

        if payment.burn:
            payment = replace(payment, output=BURN_OUTPUT, range=False, burn=False)
        return super().encode(payment)

    def decode(self, cursor: ByteCursor) -> Payment:
        payment = super().decode(cursor)
        if not payment.range and payment.output == BURN_OUTPUT:
            payment.burn = True
            payment.output = None
            payment.range = False
        return payment
