"""
Colored Asset Protocol - Transfer and Burn Codec

Transfer and burn records move existing units. Their tail is just the payment
list; burn records use the burn-aware payment codec. Both families share the
byte-budget fitting of the issuance codec over their own opcode ranges.
"""

import logging

from .amount import ByteCursor
from .codec import EncodedRecord, OpcodeLayout, RecordCodec
from .constants import BURN_BASE, MAX_DATA_BYTES, TRANSFER_BASE, AssetFamily
from .exceptions import FieldValidationError, MissingFieldError
from .payments import BurnPaymentCodec, PaymentCodec
from .record import Asset


logger = logging.getLogger(__name__)


def _family_layout(base: int) -> OpcodeLayout:
    return OpcodeLayout(
        both_embedded=base,
        sha2_external=base + 1,
        neither_embedded=base + 2,
        torrent_only=base + 3,
        torrent_only_no_rules=base + 4,
        no_hash=base + 5,
        no_hash_no_rules=base + 5,
    )


TRANSFER_LAYOUT = _family_layout(TRANSFER_BASE)
BURN_LAYOUT = _family_layout(BURN_BASE)


class TransferCodec(RecordCodec):
    """Encoder/decoder for transfer (0x10-0x15) or burn (0x20-0x25) records."""

    def __init__(self, family: AssetFamily = AssetFamily.TRANSFER):
        if family == AssetFamily.TRANSFER:
            self.layout = TRANSFER_LAYOUT
            self.payment_codec = PaymentCodec()
        elif family == AssetFamily.BURN:
            self.layout = BURN_LAYOUT
            self.payment_codec = BurnPaymentCodec()
        else:
            raise ValueError(f"TransferCodec does not handle {family.value} records")
        self.family = family
        super().__init__()

    def encode(self, asset: Asset, max_bytes: int = MAX_DATA_BYTES) -> EncodedRecord:
        """
        Encode a transfer or burn record into at most ``max_bytes`` bytes.

        Payments must already be in wire (skip) form.
        """
        if asset.family != self.family:
            raise FieldValidationError(
                f"Cannot encode a {asset.family.value} record with the {self.family.value} codec"
            )
        if asset.payments is None:
            raise MissingFieldError("payments must be set")

        header = self.encode_header(asset)
        tail = self.payment_codec.encode_bulk(asset.payments)

        record = self.fit(asset, header, tail, max_bytes)
        logger.debug(
            f"Encoded {self.family.value} with {len(asset.payments)} payments in {len(record.data)} bytes"
        )
        return record

    def decode(self, data: bytes) -> Asset:
        """Decode a transfer or burn record. Payments are returned in wire (skip) form."""
        cursor = ByteCursor(data)
        protocol, version, variant = self.decode_header(cursor)

        asset = Asset(family=self.family, protocol=protocol, version=version)
        self.decode_hashes(cursor, variant, asset)
        asset.payments = self.payment_codec.decode_bulk(cursor)
        return asset
