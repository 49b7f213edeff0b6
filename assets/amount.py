"""
Colored Asset Protocol - Amount Codec

Variable-length unsigned amount encoding. The three most significant bits of
the first byte select a scheme that fixes the total byte size and how many
bits hold the mantissa and the decimal exponent; the value is
``mantissa * 10 ** exponent``. Amounts are read from a shared forward-only
cursor so nested decoders can consume a record in place.
"""

from collections import namedtuple
from decimal import Decimal
from typing import Union

from .exceptions import AmountEncodingError, TruncatedDataError


AmountScheme = namedtuple(
    'AmountScheme',
    ['prefix', 'prefix_bits', 'byte_size', 'mantissa_bits', 'exponent_bits']
)

# Ordered smallest first; encoding picks the first scheme that fits.
AMOUNT_SCHEMES = (
    AmountScheme(0b000, 3, 1, 5, 0),
    AmountScheme(0b001, 3, 2, 9, 4),
    AmountScheme(0b010, 3, 3, 17, 4),
    AmountScheme(0b011, 3, 4, 25, 4),
    AmountScheme(0b100, 3, 5, 34, 3),
    AmountScheme(0b101, 3, 6, 42, 3),
    AmountScheme(0b11, 2, 7, 54, 0),
)

# Version whose issuance amounts are stored pre-divided by 10^divisibility
SCALED_AMOUNT_VERSION = 0x01


class ByteCursor:
    """
    Forward-only reader over an in-memory record.

    A cursor belongs to exactly one decode call; nested decoders share it so
    each consumes where the previous one stopped.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.data)

    def consume(self, size: int) -> bytes:
        """
        Read the next ``size`` bytes.

        Raises:
            TruncatedDataError: If fewer than ``size`` bytes remain
        """
        if size < 0:
            raise ValueError(f"Cannot consume a negative size: {size}")
        if self.remaining < size:
            raise TruncatedDataError(
                f"Need {size} bytes at offset {self.position}, only {self.remaining} left"
            )
        chunk = self.data[self.position:self.position + size]
        self.position += size
        return chunk

    def consume_byte(self) -> int:
        return self.consume(1)[0]


def _trailing_zeros(value: int) -> int:
    count = 0
    while value and value % 10 == 0:
        value //= 10
        count += 1
    return count


def _scheme_for_first_byte(first_byte: int) -> AmountScheme:
    if first_byte >> 6 == 0b11:
        return AMOUNT_SCHEMES[-1]
    return AMOUNT_SCHEMES[first_byte >> 5]


def encode_amount(value: int) -> bytes:
    """
    Encode an unsigned amount.

    Args:
        value: Non-negative integer amount

    Returns:
        Encoded bytes (1 to 7 bytes)

    Raises:
        AmountEncodingError: If the value is negative, not an integer or too large
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise AmountEncodingError(f"Amount must be an integer, got {value!r}")
    if value < 0:
        raise AmountEncodingError(f"Amount cannot be negative: {value}")

    zeros = _trailing_zeros(value)
    for scheme in AMOUNT_SCHEMES:
        exponent = min(zeros, (1 << scheme.exponent_bits) - 1)
        mantissa = value // 10 ** exponent
        if mantissa.bit_length() > scheme.mantissa_bits:
            continue
        bits = scheme.prefix << (scheme.mantissa_bits + scheme.exponent_bits)
        bits |= mantissa << scheme.exponent_bits
        bits |= exponent
        return bits.to_bytes(scheme.byte_size, byteorder='big')

    raise AmountEncodingError(f"Amount {value} does not fit any amount encoding scheme")


def decode_amount(cursor: ByteCursor) -> int:
    """
    Decode an amount at the cursor, advancing it past the amount bytes.

    Raises:
        TruncatedDataError: If the amount runs past the end of the data
    """
    first_byte = cursor.consume_byte()
    scheme = _scheme_for_first_byte(first_byte)
    raw = bytes([first_byte]) + cursor.consume(scheme.byte_size - 1)

    bits = int.from_bytes(raw, byteorder='big')
    exponent = bits & ((1 << scheme.exponent_bits) - 1)
    mantissa = (bits >> scheme.exponent_bits) & ((1 << scheme.mantissa_bits) - 1)
    return mantissa * 10 ** exponent


def amount_size(value: int) -> int:
    """Number of bytes ``value`` occupies once encoded."""
    return len(encode_amount(value))


def scale_amount_for_version(amount: Union[int, Decimal], version: int, divisibility: int) -> int:
    """Convert a caller amount into the raw integer stored on the wire."""
    if version != SCALED_AMOUNT_VERSION:
        return amount
    raw = Decimal(amount) * (10 ** divisibility)
    if raw != raw.to_integral_value():
        raise AmountEncodingError(
            f"Amount {amount} has more than {divisibility} decimal places"
        )
    return int(raw)


def decode_amount_by_version(version: int, cursor: ByteCursor, divisibility: int) -> Union[int, Decimal]:
    """Decode an issuance amount, rescaling it for scaled-amount versions."""
    raw = decode_amount(cursor)
    if version == SCALED_AMOUNT_VERSION:
        return Decimal(raw) / (10 ** divisibility)
    return raw
