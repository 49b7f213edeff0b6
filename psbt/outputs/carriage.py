"""
Colored Asset Protocol - Hash Carriage Outputs

Hashes that do not fit the asset record travel in bare 1-of-2 multisig
outputs placed in front of every other output of the transaction::

    OP_1 <carrier pubkey> <0x03 | hash | zero padding to 33 bytes> OP_2 OP_CHECKMULTISIG

The carrier key is a real public key so the output stays spendable; the
second "key" slot holds the hash.
"""

import logging
from typing import List, Optional

from coincurve import PublicKey

from assets.exceptions import LeftoverPlacementError

from ..exceptions import InvalidScriptError
from ..utils import OP_1, OP_2, OP_CHECKMULTISIG, parse_script_pushes, push_data


logger = logging.getLogger(__name__)

COMPRESSED_KEY_SIZE = 33
HASH_SLOT_PREFIX = 0x03
MAX_CARRIED_HASHES = 2


def validate_carrier_pubkey(pubkey: bytes) -> bytes:
    """
    Check that ``pubkey`` is a compressed secp256k1 public key.

    Raises:
        InvalidScriptError: If the key is not a valid compressed point
    """
    if len(pubkey) != COMPRESSED_KEY_SIZE:
        raise InvalidScriptError(f"Carrier pubkey must be {COMPRESSED_KEY_SIZE} bytes, got {len(pubkey)}")
    try:
        PublicKey(pubkey)
    except ValueError as e:
        raise InvalidScriptError(f"Invalid carrier pubkey: {e}")
    return pubkey


def create_carriage_script(carrier_pubkey: bytes, data_hash: bytes) -> bytes:
    """
    Build a carriage output script for one hash.

    Args:
        carrier_pubkey: Compressed public key able to spend the output
        data_hash: Torrent hash (20 bytes) or sha2 (32 bytes)

    Returns:
        Bare 1-of-2 multisig script
    """
    validate_carrier_pubkey(carrier_pubkey)
    if not data_hash or len(data_hash) > COMPRESSED_KEY_SIZE - 1:
        raise InvalidScriptError(f"Cannot carry a {len(data_hash)}-byte hash")

    slot = bytes([HASH_SLOT_PREFIX]) + data_hash
    slot += b'\x00' * (COMPRESSED_KEY_SIZE - len(slot))

    return (
        bytes([OP_1])
        + push_data(carrier_pubkey)
        + push_data(slot)
        + bytes([OP_2, OP_CHECKMULTISIG])
    )


def is_carriage_script(script: bytes) -> bool:
    if len(script) != 3 + 2 * (1 + COMPRESSED_KEY_SIZE):
        return False
    if script[0] != OP_1 or script[-2:] != bytes([OP_2, OP_CHECKMULTISIG]):
        return False
    try:
        pushes = parse_script_pushes(script[1:-2])
    except ValueError:
        return False
    return (
        len(pushes) == 2
        and all(len(push) == COMPRESSED_KEY_SIZE for push in pushes)
        and pushes[1][0] == HASH_SLOT_PREFIX
    )


def extract_carried_hash(script: bytes, size: int) -> Optional[bytes]:
    """
    Recover a ``size``-byte hash from a carriage output script.

    Returns:
        The hash, or None if ``script`` is not a carriage output
    """
    if not is_carriage_script(script):
        return None
    slot = parse_script_pushes(script[1:-2])[1]
    return slot[1:1 + size]


def create_carriage_scripts(carrier_pubkey: bytes, leftover: List[bytes]) -> List[bytes]:
    """
    Build one carriage script per leftover hash, in leftover order.

    Raises:
        LeftoverPlacementError: If there are more hashes than carriage supports
    """
    if len(leftover) > MAX_CARRIED_HASHES:
        raise LeftoverPlacementError(
            f"Cannot place {len(leftover)} leftover hashes, at most {MAX_CARRIED_HASHES} are supported"
        )
    scripts = [create_carriage_script(carrier_pubkey, data_hash) for data_hash in leftover]
    if scripts:
        logger.debug(f"Built {len(scripts)} carriage output(s)")
    return scripts
