"""
Colored Asset Protocol - Transaction Builder

This module provides the transaction builder the assembler fills with inputs
and outputs. Outputs stay addressable by index and can be inserted in front
of existing ones, which hash carriage relies on. The result serializes as an
unsigned transaction or as a BIP-174 PSBT.
"""

import base64
import struct
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Dict, List, Optional

from .exceptions import PSBTConstructionError
from .utils import create_op_return_script, double_sha256, serialize_compact_size, serialize_outpoint


DEFAULT_SEQUENCE = 0xfffffffe


@dataclass
class TransactionInput:
    """Simple input structure for PSBT transactions."""
    prev_txid: str
    output_n: int
    sequence: int = DEFAULT_SEQUENCE
    value: int = 0
    script: bytes = b''


@dataclass
class TransactionOutput:
    """Simple output structure for PSBT transactions."""
    value: int
    script: bytes


class PSBTKeyType(Enum):
    """PSBT key types as defined in BIP-174."""

    # Global types
    PSBT_GLOBAL_UNSIGNED_TX = 0x00
    PSBT_GLOBAL_VERSION = 0xfb
    PSBT_GLOBAL_PROPRIETARY = 0xfc

    # Input types
    PSBT_IN_WITNESS_UTXO = 0x01

    # Output types
    PSBT_OUT_PROPRIETARY = 0xfc


@dataclass
class PSBTKeyValue:
    """Represents a key-value pair in PSBT format."""
    key_type: int
    key_data: bytes = field(default_factory=bytes)
    value: bytes = field(default_factory=bytes)

    def serialize(self) -> bytes:
        """Serialize key-value pair to PSBT format."""
        key = bytes([self.key_type]) + self.key_data
        return (
            serialize_compact_size(len(key)) + key
            + serialize_compact_size(len(self.value)) + self.value
        )


@dataclass
class PSBTInput:
    """PSBT metadata of one input: the output it spends."""
    witness_utxo: Optional[bytes] = None

    def serialize(self) -> bytes:
        result = BytesIO()

        if self.witness_utxo:
            kv = PSBTKeyValue(PSBTKeyType.PSBT_IN_WITNESS_UTXO.value, b'', self.witness_utxo)
            result.write(kv.serialize())

        # End marker
        result.write(b'\x00')
        return result.getvalue()


@dataclass
class PSBTOutput:
    """PSBT metadata of one output."""
    proprietary: Dict[bytes, bytes] = field(default_factory=dict)

    def serialize(self) -> bytes:
        result = BytesIO()

        for prop_key, prop_value in self.proprietary.items():
            kv = PSBTKeyValue(PSBTKeyType.PSBT_OUT_PROPRIETARY.value, prop_key, prop_value)
            result.write(kv.serialize())

        # End marker
        result.write(b'\x00')
        return result.getvalue()


def serialize_witness_utxo(value: int, script: bytes) -> bytes:
    """Serialize a previous output as a PSBT witness UTXO value."""
    return struct.pack('<Q', value) + serialize_compact_size(len(script)) + script


class AssetTransactionBuilder:
    """
    Ordered inputs and outputs of an asset transaction.

    Output indices are what payment records refer to, so every mutation
    keeps ``outputs`` and its PSBT metadata in step.
    """

    # Proprietary keys: the asset record in the globals, carried hashes on their outputs
    PROPRIETARY_PREFIX = b'CAP'
    ASSET_RECORD_KEY = PROPRIETARY_PREFIX + b'REC'
    CARRIED_HASH_KEY = PROPRIETARY_PREFIX + b'HSH'

    def __init__(self, version: int = 2, locktime: int = 0):
        """
        Initialize transaction builder.

        Args:
            version: Transaction version (default: 2)
            locktime: Transaction locktime (default: 0)
        """
        self.version = version
        self.locktime = locktime
        self.inputs: List[TransactionInput] = []
        self.outputs: List[TransactionOutput] = []
        self.psbt_inputs: List[PSBTInput] = []
        self.psbt_outputs: List[PSBTOutput] = []
        self.global_proprietary: Dict[bytes, bytes] = {}

    def add_input(
        self,
        txid: str,
        vout: int,
        value: int = 0,
        script: bytes = b'',
        sequence: int = DEFAULT_SEQUENCE,
        witness_utxo: Optional[bytes] = None
    ) -> int:
        """
        Add an input spending ``txid:vout``.

        Args:
            txid: Transaction ID of the output to spend
            vout: Output index of the output to spend
            value: Value of the spent output in satoshis
            script: Locking script of the spent output
            sequence: Sequence number
            witness_utxo: Serialized witness UTXO for segwit inputs

        Returns:
            Index of the new input
        """
        if len(txid) != 64:
            raise PSBTConstructionError(f"Invalid txid: {txid}")
        if any(item.prev_txid == txid and item.output_n == vout for item in self.inputs):
            raise PSBTConstructionError(f"Output {txid}:{vout} is already an input")

        self.inputs.append(TransactionInput(txid, vout, sequence, value, script))
        self.psbt_inputs.append(PSBTInput(witness_utxo=witness_utxo))
        return len(self.inputs) - 1

    def add_value_output(self, script: bytes, amount: int) -> int:
        """
        Append an output paying ``amount`` satoshis to ``script``.

        Returns:
            Index of the new output
        """
        return self.insert_output(len(self.outputs), script, amount)

    def add_data_output(self, data: bytes) -> int:
        """Append a zero-value OP_RETURN output carrying ``data``."""
        return self.insert_output(len(self.outputs), create_op_return_script(data), 0)

    def insert_output(self, index: int, script: bytes, amount: int) -> int:
        """
        Insert an output at ``index``, shifting later outputs up by one.

        Returns:
            Index of the new output
        """
        if not 0 <= index <= len(self.outputs):
            raise PSBTConstructionError(f"Output index {index} out of range")
        if amount < 0:
            raise PSBTConstructionError(f"Output amount cannot be negative: {amount}")

        self.outputs.insert(index, TransactionOutput(value=amount, script=script))
        self.psbt_outputs.insert(index, PSBTOutput())
        return index

    def add_global_proprietary(self, key: bytes, value: bytes) -> None:
        self.global_proprietary[key] = value

    def add_output_proprietary(self, output_index: int, key: bytes, value: bytes) -> None:
        """
        Attach a proprietary key-value pair to one output.

        Args:
            output_index: Index of the output
            key: Proprietary key data
            value: Value bytes
        """
        if not 0 <= output_index < len(self.psbt_outputs):
            raise PSBTConstructionError(f"Output index {output_index} out of range")

        self.psbt_outputs[output_index].proprietary[key] = value

    @property
    def total_input_value(self) -> int:
        return sum(item.value for item in self.inputs)

    @property
    def total_output_value(self) -> int:
        return sum(output.value for output in self.outputs)

    def create_unsigned_transaction(self) -> bytes:
        """Serialize the transaction without signatures."""
        result = BytesIO()

        result.write(struct.pack('<I', self.version))

        result.write(serialize_compact_size(len(self.inputs)))
        for input_obj in self.inputs:
            result.write(serialize_outpoint(input_obj.prev_txid, input_obj.output_n))
            # Empty script (for unsigned transaction)
            result.write(b'\x00')
            result.write(struct.pack('<I', input_obj.sequence))

        result.write(serialize_compact_size(len(self.outputs)))
        for output_obj in self.outputs:
            result.write(struct.pack('<Q', output_obj.value))
            result.write(serialize_compact_size(len(output_obj.script)))
            result.write(output_obj.script)

        result.write(struct.pack('<I', self.locktime))

        return result.getvalue()

    def _serialize_global_data(self) -> bytes:
        result = BytesIO()

        kv = PSBTKeyValue(PSBTKeyType.PSBT_GLOBAL_UNSIGNED_TX.value, b'', self.create_unsigned_transaction())
        result.write(kv.serialize())

        kv = PSBTKeyValue(PSBTKeyType.PSBT_GLOBAL_VERSION.value, b'', struct.pack('<I', 0))
        result.write(kv.serialize())

        for prop_key, prop_value in self.global_proprietary.items():
            kv = PSBTKeyValue(PSBTKeyType.PSBT_GLOBAL_PROPRIETARY.value, prop_key, prop_value)
            result.write(kv.serialize())

        # End marker
        result.write(b'\x00')
        return result.getvalue()

    def serialize(self) -> bytes:
        """
        Serialize PSBT to binary format.

        Returns:
            Serialized PSBT data
        """
        result = BytesIO()

        # PSBT magic bytes
        result.write(b'psbt\xff')
        result.write(self._serialize_global_data())

        for psbt_input in self.psbt_inputs:
            result.write(psbt_input.serialize())

        for psbt_output in self.psbt_outputs:
            result.write(psbt_output.serialize())

        return result.getvalue()

    def to_base64(self) -> str:
        """
        Serialize PSBT to base64 format.

        Returns:
            Base64-encoded PSBT string
        """
        return base64.b64encode(self.serialize()).decode('ascii')

    def get_transaction_id(self) -> str:
        """
        Get the transaction ID of the unsigned transaction.

        Returns:
            Transaction ID as hex string
        """
        tx_hash = double_sha256(self.create_unsigned_transaction())
        # Reverse bytes for display (big endian)
        return tx_hash[::-1].hex()

    def get_fee(self) -> int:
        """Input value not claimed by any output."""
        return self.total_input_value - self.total_output_value

    def validate_structure(self) -> List[str]:
        """
        Validate transaction structure and return list of issues.

        Returns:
            List of validation issues (empty if valid)
        """
        issues = []

        if not self.inputs:
            issues.append("Transaction must have at least one input")

        if not self.outputs:
            issues.append("Transaction must have at least one output")

        if len(self.inputs) != len(self.psbt_inputs):
            issues.append("Number of inputs must match number of PSBT input records")

        if len(self.outputs) != len(self.psbt_outputs):
            issues.append("Number of outputs must match number of PSBT output records")

        if self.get_fee() < 0:
            issues.append(f"Outputs exceed inputs by {-self.get_fee()} satoshis")

        return issues
