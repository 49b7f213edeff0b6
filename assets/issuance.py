"""
Colored Asset Protocol - Issuance Codec

Issuance records create a new asset. Their tail is the issued amount, the
payments distributing it, and the issuance flags byte, which is always the
last byte of the record.
"""

import logging

from .amount import ByteCursor, decode_amount_by_version, encode_amount, scale_amount_for_version
from .codec import EncodedRecord, OpcodeLayout, RecordCodec
from .constants import MAX_DATA_BYTES, AssetFamily
from .exceptions import MissingFieldError, TruncatedDataError
from .flags import decode_issue_flags, encode_issue_flags
from .payments import PaymentCodec
from .record import Asset


logger = logging.getLogger(__name__)

# 0x00 is reserved
ISSUANCE_LAYOUT = OpcodeLayout(
    both_embedded=0x01,
    sha2_external=0x02,
    neither_embedded=0x03,
    torrent_only=0x04,
    torrent_only_no_rules=0x04,
    no_hash=0x06,
    no_hash_no_rules=0x05,
)

REQUIRED_FIELDS = ('amount', 'lock_status', 'aggregation_policy', 'protocol', 'version')


class IssuanceCodec(RecordCodec):
    """Encoder/decoder for issuance records (opcodes 0x01-0x06)."""

    layout = ISSUANCE_LAYOUT
    family = AssetFamily.ISSUANCE

    def __init__(self):
        super().__init__()
        self.payment_codec = PaymentCodec()

    def encode(self, asset: Asset, max_bytes: int = MAX_DATA_BYTES) -> EncodedRecord:
        """
        Encode an issuance record into at most ``max_bytes`` bytes.

        Payments must already be in wire (skip) form.

        Args:
            asset: Issuance record
            max_bytes: Byte budget for the record

        Returns:
            EncodedRecord with the bytes, chosen opcode and leftover hashes
        """
        for name in REQUIRED_FIELDS:
            if getattr(asset, name) is None:
                raise MissingFieldError(f"{name} must be set")

        header = self.encode_header(asset)
        raw_amount = scale_amount_for_version(asset.amount, asset.version, asset.divisibility)
        tail = (
            encode_amount(raw_amount)
            + self.payment_codec.encode_bulk(asset.payments)
            + encode_issue_flags(asset.divisibility, asset.lock_status, asset.aggregation_policy)
        )

        record = self.fit(asset, header, tail, max_bytes)
        logger.debug(f"Encoded issuance of {asset.amount} units in {len(record.data)} bytes")
        return record

    def decode(self, data: bytes) -> Asset:
        """
        Decode an issuance record. Payments are returned in wire (skip) form.

        Raises:
            MalformedWireError: On a foreign protocol, unknown opcode or truncated data
        """
        if len(data) < 1:
            raise TruncatedDataError("Empty issuance record")

        flags = decode_issue_flags(ByteCursor(data[-1:]))
        cursor = ByteCursor(data[:-1])
        protocol, version, variant = self.decode_header(cursor)

        asset = Asset(
            family=AssetFamily.ISSUANCE,
            protocol=protocol,
            version=version,
            divisibility=flags.divisibility,
            lock_status=flags.lock_status,
            aggregation_policy=flags.aggregation_policy,
        )
        self.decode_hashes(cursor, variant, asset)
        asset.amount = decode_amount_by_version(version, cursor, flags.divisibility)
        asset.payments = self.payment_codec.decode_bulk(cursor)
        return asset
