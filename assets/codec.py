"""
Colored Asset Protocol - Record Codec Base

Shared pieces of the issuance and transfer/burn codecs: the record header,
the opcode layout of a family, and the byte-budget fitting algorithm that
decides how many of the optional hashes can be embedded in the record.

Record layout::

    protocol (2) | version (1) | opcode (1) | [torrent hash (20)] [sha2 (32)] | tail
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .amount import ByteCursor
from .constants import (
    PROTOCOL_ID,
    SHA2_HASH_SIZE,
    TORRENT_HASH_SIZE,
    HashField,
)
from .exceptions import (
    CannotFitHashError,
    ExceedsByteBudgetError,
    FieldValidationError,
    MissingTorrentHashError,
    ProtocolMismatchError,
    UnrecognizedOpcodeError,
)
from .record import Asset


logger = logging.getLogger(__name__)

HASH_SIZES = {
    HashField.TORRENT_HASH: TORRENT_HASH_SIZE,
    HashField.SHA2: SHA2_HASH_SIZE,
}


@dataclass
class EncodedRecord:
    """Result of encoding a record against a byte budget."""
    data: bytes
    opcode: int
    leftover: List[bytes] = field(default_factory=list)


@dataclass(frozen=True)
class OpcodeVariant:
    """What a single opcode says about the hashes of a record."""
    opcode: int
    embedded: Tuple[HashField, ...] = ()
    external: Tuple[HashField, ...] = ()
    no_rules: Optional[bool] = None


@dataclass(frozen=True)
class OpcodeLayout:
    """The opcodes of one record family, by role."""
    both_embedded: int
    sha2_external: int
    neither_embedded: int
    torrent_only: int
    torrent_only_no_rules: int
    no_hash: int
    no_hash_no_rules: int

    def variants(self) -> Dict[int, OpcodeVariant]:
        torrent = (HashField.TORRENT_HASH,)
        both = (HashField.TORRENT_HASH, HashField.SHA2)
        variants = {
            self.both_embedded: OpcodeVariant(self.both_embedded, embedded=both),
            self.sha2_external: OpcodeVariant(
                self.sha2_external, embedded=torrent, external=(HashField.SHA2,)
            ),
            self.neither_embedded: OpcodeVariant(self.neither_embedded, external=both),
            self.torrent_only: OpcodeVariant(self.torrent_only, embedded=torrent, no_rules=False),
            self.torrent_only_no_rules: OpcodeVariant(
                self.torrent_only_no_rules, embedded=torrent, no_rules=True
            ),
            self.no_hash: OpcodeVariant(self.no_hash, no_rules=False),
            self.no_hash_no_rules: OpcodeVariant(self.no_hash_no_rules, no_rules=True),
        }
        # A family with a single torrent-only or no-hash opcode leaves the rules flag open
        if self.torrent_only == self.torrent_only_no_rules:
            variants[self.torrent_only] = OpcodeVariant(self.torrent_only, embedded=torrent)
        if self.no_hash == self.no_hash_no_rules:
            variants[self.no_hash] = OpcodeVariant(self.no_hash)
        return variants


class RecordCodec:
    """
    Base class for the family codecs.

    Subclasses provide the opcode layout, the record tail and the tail
    decoding; the header handling and the byte-budget fitting live here.
    """

    layout: OpcodeLayout

    def __init__(self):
        self._variants = self.layout.variants()

    @property
    def opcodes(self) -> List[int]:
        return sorted(self._variants)

    def variant(self, opcode: int) -> OpcodeVariant:
        try:
            return self._variants[opcode]
        except KeyError:
            raise UnrecognizedOpcodeError(opcode)

    def encode_header(self, asset: Asset) -> bytes:
        if asset.protocol != PROTOCOL_ID:
            raise ProtocolMismatchError(PROTOCOL_ID, asset.protocol)
        if not 0 <= asset.version <= 0xff:
            raise FieldValidationError(f"Version must fit one byte: {asset.version}")
        return asset.protocol.to_bytes(2, byteorder='big') + bytes([asset.version])

    def decode_header(self, cursor: ByteCursor) -> Tuple[int, int, OpcodeVariant]:
        """Read protocol, version and opcode; returns (protocol, version, variant)."""
        protocol = int.from_bytes(cursor.consume(2), byteorder='big')
        if protocol != PROTOCOL_ID:
            raise ProtocolMismatchError(PROTOCOL_ID, protocol)
        version = cursor.consume_byte()
        variant = self.variant(cursor.consume_byte())
        return protocol, version, variant

    def decode_hashes(self, cursor: ByteCursor, variant: OpcodeVariant, asset: Asset) -> None:
        for hash_field in variant.embedded:
            setattr(asset, hash_field.value, cursor.consume(HASH_SIZES[hash_field]))
        asset.external_hashes = list(variant.external)
        if variant.no_rules is not None:
            asset.no_rules = variant.no_rules

    def fit(self, asset: Asset, header: bytes, tail: bytes, max_bytes: int) -> EncodedRecord:
        """
        Choose the opcode and embed as many hashes as the byte budget allows.

        Hashes are embedded torrent hash first, then sha2; whatever does not
        fit is returned as ``leftover`` for the caller to carry elsewhere.

        Raises:
            ExceedsByteBudgetError: If header, opcode and tail alone exceed max_bytes
            CannotFitHashError: If a torrent-hash-only record cannot embed its hash
            MissingTorrentHashError: If sha2 is given without a torrent hash
        """
        _check_hash(asset.torrent_hash, HashField.TORRENT_HASH)
        _check_hash(asset.sha2, HashField.SHA2)

        size = len(header) + 1 + len(tail)
        if size > max_bytes:
            raise ExceedsByteBudgetError(size, max_bytes)

        if not asset.sha2:
            if asset.torrent_hash:
                opcode = self.layout.torrent_only_no_rules if asset.no_rules else self.layout.torrent_only
                if size + len(asset.torrent_hash) > max_bytes:
                    raise CannotFitHashError(
                        f"Can't fit torrent hash: {size + len(asset.torrent_hash)} > {max_bytes} bytes"
                    )
                return EncodedRecord(header + bytes([opcode]) + asset.torrent_hash + tail, opcode)

            opcode = self.layout.no_hash_no_rules if asset.no_rules else self.layout.no_hash
            return EncodedRecord(header + bytes([opcode]) + tail, opcode)

        if not asset.torrent_hash:
            raise MissingTorrentHashError("Torrent hash is missing")

        leftover = [asset.torrent_hash, asset.sha2]
        embedded = b''
        opcode = self.layout.neither_embedded
        for next_opcode in (self.layout.sha2_external, self.layout.both_embedded):
            if size + len(leftover[0]) > max_bytes:
                break
            size += len(leftover[0])
            embedded += leftover.pop(0)
            opcode = next_opcode

        if leftover:
            logger.warning(f"{len(leftover)} hash(es) do not fit {max_bytes} bytes, opcode 0x{opcode:02x}")
        else:
            logger.debug(f"All hashes embedded, opcode 0x{opcode:02x}")

        return EncodedRecord(header + bytes([opcode]) + embedded + tail, opcode, leftover)


def _check_hash(value: Optional[bytes], hash_field: HashField) -> None:
    if value is None:
        return
    if len(value) != HASH_SIZES[hash_field]:
        raise FieldValidationError(
            f"{hash_field.value} must be {HASH_SIZES[hash_field]} bytes, got {len(value)}"
        )
