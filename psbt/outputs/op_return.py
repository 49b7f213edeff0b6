"""
Colored Asset Protocol - OP_RETURN Asset Record Outputs

This module places encoded asset records in OP_RETURN outputs and reads them
back, including the hashes a record pushed out to carriage outputs.
"""

import logging
from typing import List, NamedTuple, Optional, Sequence

from assets.asset import decode_asset, encode_asset, is_asset_record
from assets.codec import HASH_SIZES
from assets.constants import MAX_DATA_BYTES
from assets.exceptions import ExceedsByteBudgetError, MalformedWireError
from assets.record import Asset

from ..builder import TransactionOutput
from ..utils import MAX_OP_RETURN_SIZE, create_op_return_script, extract_op_return_data
from .carriage import extract_carried_hash


logger = logging.getLogger(__name__)


class AssetOpReturn(NamedTuple):
    """An asset record ready to be placed in an OP_RETURN output."""
    script: bytes
    data: bytes
    opcode: int
    leftover: List[bytes]


def create_asset_op_return(asset: Asset, max_bytes: int = MAX_DATA_BYTES) -> AssetOpReturn:
    """
    Encode ``asset`` and wrap it in an OP_RETURN script.

    Args:
        asset: Issuance, transfer or burn record
        max_bytes: Byte budget for the record

    Returns:
        AssetOpReturn with the script, the raw record and any leftover hashes

    Raises:
        ExceedsByteBudgetError: If the record does not fit an OP_RETURN output
    """
    record = encode_asset(asset, max_bytes)
    if len(record.data) > MAX_OP_RETURN_SIZE:
        raise ExceedsByteBudgetError(len(record.data), MAX_OP_RETURN_SIZE)
    return AssetOpReturn(
        script=create_op_return_script(record.data),
        data=record.data,
        opcode=record.opcode,
        leftover=record.leftover,
    )


def parse_asset_op_return(script: bytes) -> Optional[Asset]:
    """
    Decode the asset record in an OP_RETURN script.

    Returns:
        The decoded asset, or None if the script carries no asset record
    """
    data = extract_op_return_data(script)
    if data is None or not is_asset_record(data):
        return None
    return decode_asset(data)


def find_asset_output(outputs: Sequence[TransactionOutput]) -> Optional[int]:
    """Index of the first output carrying an asset record."""
    for index, output in enumerate(outputs):
        data = extract_op_return_data(output.script)
        if data is not None and is_asset_record(data):
            return index
    return None


def parse_transaction_assets(outputs: Sequence[TransactionOutput]) -> Optional[Asset]:
    """
    Decode the asset record of a transaction and restore its carried hashes.

    Externally carried hashes are read from the leading outputs of the
    transaction, one per output, in the order the opcode lists them.

    Raises:
        MalformedWireError: If a hash the opcode announces has no carriage output
    """
    index = find_asset_output(outputs)
    if index is None:
        return None

    asset = parse_asset_op_return(outputs[index].script)
    for position, hash_field in enumerate(asset.external_hashes):
        carried = None
        if position < len(outputs):
            carried = extract_carried_hash(outputs[position].script, HASH_SIZES[hash_field])
        if carried is None:
            raise MalformedWireError(f"No carriage output for {hash_field.value} at output {position}")
        setattr(asset, hash_field.value, carried)

    logger.debug(
        f"Found {asset.family.value} record at output {index} "
        f"with {len(asset.external_hashes)} carried hash(es)"
    )
    return asset
