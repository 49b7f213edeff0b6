"""
Colored Asset Protocol - Transaction Utilities

Hashing, script construction and script parsing helpers used by the
transaction builder, the output helpers and identifier derivation.
"""

import hashlib
import struct
from typing import List, Optional, Tuple

from Crypto.Hash import RIPEMD160


# Script opcodes
OP_0 = 0x00
OP_PUSHDATA1 = 0x4c
OP_PUSHDATA2 = 0x4d
OP_PUSHDATA4 = 0x4e
OP_1 = 0x51
OP_2 = 0x52
OP_RETURN = 0x6a
OP_DUP = 0x76
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xa9
OP_CHECKSIG = 0xac
OP_CHECKMULTISIG = 0xae

MAX_OP_RETURN_SIZE = 80

# Length field of each PUSHDATA opcode
PUSHDATA_LENGTH_FORMATS = {
    OP_PUSHDATA1: '<B',
    OP_PUSHDATA2: '<H',
    OP_PUSHDATA4: '<I',
}


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    return RIPEMD160.new(data).digest()


def hash160(data: bytes) -> bytes:
    """
    Compute HASH160 (RIPEMD160(SHA256(data))).

    Args:
        data: Input data to hash

    Returns:
        20-byte HASH160 digest
    """
    return ripemd160(sha256(data))


def double_sha256(data: bytes) -> bytes:
    """
    Calculate double SHA256 hash (used for transaction IDs and checksums).

    Args:
        data: Data to hash

    Returns:
        Double SHA256 hash
    """
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def serialize_compact_size(n: int) -> bytes:
    """
    Serialize integer as Bitcoin compact size.

    Args:
        n: Integer to serialize

    Returns:
        Compact size encoded bytes
    """
    if n < 0xfd:
        return struct.pack('<B', n)
    elif n <= 0xffff:
        return b'\xfd' + struct.pack('<H', n)
    elif n <= 0xffffffff:
        return b'\xfe' + struct.pack('<I', n)
    else:
        return b'\xff' + struct.pack('<Q', n)


def push_data(data: bytes) -> bytes:
    """Minimal script push of ``data``."""
    if len(data) <= 75:
        return bytes([len(data)]) + data
    if len(data) <= 0xff:
        return bytes([OP_PUSHDATA1, len(data)]) + data
    if len(data) <= 0xffff:
        return bytes([OP_PUSHDATA2]) + struct.pack('<H', len(data)) + data
    return bytes([OP_PUSHDATA4]) + struct.pack('<I', len(data)) + data


def parse_script_pushes(script: bytes) -> List[bytes]:
    """
    Split a push-only script (e.g. a scriptSig) into its data pushes.

    Args:
        script: Script bytes

    Returns:
        List of pushed data items, in order

    Raises:
        ValueError: If the script contains a non-push opcode or is truncated
    """
    pushes = []
    offset = 0
    while offset < len(script):
        opcode = script[offset]
        offset += 1
        if opcode == OP_0:
            pushes.append(b'')
            continue
        if opcode <= 75:
            size = opcode
        elif opcode in PUSHDATA_LENGTH_FORMATS:
            length_format = PUSHDATA_LENGTH_FORMATS[opcode]
            length_size = struct.calcsize(length_format)
            if offset + length_size > len(script):
                raise ValueError("Script push runs past the end of the script")
            size = struct.unpack(length_format, script[offset:offset + length_size])[0]
            offset += length_size
        else:
            raise ValueError(f"Non-push opcode 0x{opcode:02x} at offset {offset - 1}")
        if offset + size > len(script):
            raise ValueError("Script push runs past the end of the script")
        pushes.append(script[offset:offset + size])
        offset += size
    return pushes


def create_p2pkh_script(pubkey_hash: bytes) -> bytes:
    """
    Create a pay-to-public-key-hash output script.

    Args:
        pubkey_hash: 20-byte HASH160 of the public key

    Returns:
        OP_DUP OP_HASH160 <hash> OP_EQUALVERIFY OP_CHECKSIG
    """
    if len(pubkey_hash) != 20:
        raise ValueError(f"Invalid public key hash length: {len(pubkey_hash)}")
    return bytes([OP_DUP, OP_HASH160, 20]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def create_op_return_script(data: bytes) -> bytes:
    """
    Create OP_RETURN script with data.

    Args:
        data: Data to embed in OP_RETURN

    Returns:
        OP_RETURN script
    """
    if len(data) > MAX_OP_RETURN_SIZE:
        raise ValueError(f"OP_RETURN data cannot exceed {MAX_OP_RETURN_SIZE} bytes")
    return bytes([OP_RETURN]) + push_data(data)


def extract_op_return_data(script: bytes) -> Optional[bytes]:
    """
    Extract data from OP_RETURN script.

    Args:
        script: Script bytes

    Returns:
        Extracted data or None if not OP_RETURN
    """
    if not script or script[0] != OP_RETURN:
        return None

    if len(script) < 2:
        return b''

    try:
        pushes = parse_script_pushes(script[1:])
    except ValueError:
        return None
    if len(pushes) != 1:
        return None
    return pushes[0]


def serialize_outpoint(txid: str, vout: int) -> bytes:
    """
    Serialize transaction outpoint.

    Args:
        txid: Transaction ID as hex string
        vout: Output index

    Returns:
        Serialized outpoint (32 bytes txid + 4 bytes vout)
    """
    txid_bytes = bytes.fromhex(txid)[::-1]
    return txid_bytes + struct.pack('<I', vout)


def parse_outpoint(outpoint: str) -> Tuple[str, int]:
    """Split a ``txid:vout`` string."""
    txid, _, vout = outpoint.rpartition(':')
    if not txid or not vout.isdigit():
        raise ValueError(f"Invalid outpoint: {outpoint}")
    return txid, int(vout)
