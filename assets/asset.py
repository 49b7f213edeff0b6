"""
Colored Asset Protocol - Asset Orchestrator

Single entry point for encoding and decoding asset records. Decoding
dispatches on the opcode byte through a table covering the issuance,
transfer and burn opcode ranges; both directions convert between the
caller-facing payment form (explicit input indices) and the wire form (skip
flags).
"""

import logging
from dataclasses import replace
from typing import Dict, List, NamedTuple

from .codec import EncodedRecord, RecordCodec
from .constants import (
    BURN_BASE,
    ISSUANCE_BASE,
    MAX_DATA_BYTES,
    OPCODE_OFFSET,
    PROTOCOL_ID,
    TRANSFER_BASE,
    AssetFamily,
)
from .exceptions import (
    FieldValidationError,
    InputIndexGapError,
    ProtocolMismatchError,
    TruncatedDataError,
    UnrecognizedOpcodeError,
)
from .issuance import IssuanceCodec
from .payments import Payment
from .record import Asset
from .transfer import TransferCodec


logger = logging.getLogger(__name__)


class OpcodeEntry(NamedTuple):
    codec: RecordCodec
    family: AssetFamily


CODECS: Dict[AssetFamily, RecordCodec] = {
    AssetFamily.ISSUANCE: IssuanceCodec(),
    AssetFamily.TRANSFER: TransferCodec(AssetFamily.TRANSFER),
    AssetFamily.BURN: TransferCodec(AssetFamily.BURN),
}

FAMILY_RANGES = {
    AssetFamily.ISSUANCE: range(ISSUANCE_BASE, ISSUANCE_BASE + 0x10),
    AssetFamily.TRANSFER: range(TRANSFER_BASE, TRANSFER_BASE + 0x10),
    AssetFamily.BURN: range(BURN_BASE, BURN_BASE + 0x10),
}


def _build_opcode_table() -> Dict[int, OpcodeEntry]:
    table = {}
    for family, opcodes in FAMILY_RANGES.items():
        for opcode in opcodes:
            table[opcode] = OpcodeEntry(CODECS[family], family)
    return table


OPCODE_TABLE = _build_opcode_table()


def payments_input_to_skip(payments: List[Payment]) -> List[Payment]:
    """
    Convert caller payments (explicit ``input``) to wire payments (``skip``).

    Payments are stably sorted by input. A payment gets ``skip=True`` when the
    next payment refers to the following input, so a decoder can rebuild the
    indices by advancing its input counter on every skip.

    Raises:
        FieldValidationError: If a payment has no input index
        InputIndexGapError: If the sorted indices do not start at 0 or jump by more than one
    """
    for payment in payments:
        if payment.input is None:
            raise FieldValidationError("Every payment needs an input index")

    ordered = sorted(payments, key=lambda payment: payment.input)
    if ordered and ordered[0].input != 0:
        raise InputIndexGapError(f"Payments must start at input 0, first input is {ordered[0].input}")

    result = []
    for position, payment in enumerate(ordered):
        following = ordered[position + 1] if position + 1 < len(ordered) else None
        skip = False
        if following is not None and following.input > payment.input:
            if following.input - payment.input > 1:
                raise InputIndexGapError(
                    f"Payments jump from input {payment.input} to input {following.input}"
                )
            skip = True
        result.append(replace(payment, input=None, skip=skip))
    return result


def payments_skip_to_input(payments: List[Payment]) -> List[Payment]:
    """Convert wire payments (``skip``) back to caller payments (``input``)."""
    result = []
    current_input = 0
    for payment in payments:
        if payment.burn:
            decoded = Payment(amount=payment.amount, burn=True)
        else:
            decoded = Payment(amount=payment.amount, output=payment.output, range=payment.range)
        decoded.input = current_input
        decoded.percent = payment.percent
        result.append(decoded)
        if payment.skip:
            current_input += 1
    return result


def _wire_payments(payments: List[Payment]) -> List[Payment]:
    with_input = [payment for payment in payments if payment.input is not None]
    if not with_input:
        return list(payments)
    if len(with_input) != len(payments):
        raise FieldValidationError("Payments mix input indices and skip flags")
    return payments_input_to_skip(payments)


def encode_asset(asset: Asset, max_bytes: int = MAX_DATA_BYTES) -> EncodedRecord:
    """
    Encode an asset record.

    Payments with input indices are converted to skip form first; payments
    without input indices are taken as already being in skip form.

    Args:
        asset: Issuance, transfer or burn record
        max_bytes: Byte budget for the record

    Returns:
        EncodedRecord with bytes, opcode and leftover hashes
    """
    wire = replace(asset, payments=_wire_payments(asset.payments))
    return CODECS[asset.family].encode(wire, max_bytes)


def decode_asset(data: bytes) -> Asset:
    """
    Decode a wire record into an asset with caller-form payments.

    Raises:
        TruncatedDataError: If the record is shorter than its fixed header
        ProtocolMismatchError: If the protocol identifier is not ours
        UnrecognizedOpcodeError: If the opcode is outside every family
    """
    data = bytes(data)
    if len(data) <= OPCODE_OFFSET:
        raise TruncatedDataError(f"Record too short: {len(data)} bytes")

    protocol = int.from_bytes(data[:2], byteorder='big')
    if protocol != PROTOCOL_ID:
        raise ProtocolMismatchError(PROTOCOL_ID, protocol)

    opcode = data[OPCODE_OFFSET]
    entry = OPCODE_TABLE.get(opcode)
    if entry is None:
        raise UnrecognizedOpcodeError(opcode)

    asset = entry.codec.decode(data)
    asset.payments = payments_skip_to_input(asset.payments)
    logger.debug(f"Decoded {entry.family.value} record, opcode 0x{opcode:02x}")
    return asset


def is_asset_record(data: bytes) -> bool:
    """True if ``data`` starts with our protocol identifier and a known opcode."""
    return (
        len(data) > OPCODE_OFFSET
        and int.from_bytes(data[:2], byteorder='big') == PROTOCOL_ID
        and data[OPCODE_OFFSET] in OPCODE_TABLE
    )
