"""
Colored Asset Protocol - Exceptions

This module defines the exception hierarchy raised by the asset record codecs,
identifier derivation and transaction assembly.
"""

from typing import Optional


class AssetError(Exception):
    """Base exception for all colored asset errors."""
    pass


# Wire format errors

class MalformedWireError(AssetError):
    """Raised when a byte sequence is not a well-formed asset record."""
    pass


class ProtocolMismatchError(MalformedWireError):
    """Raised when the record's protocol identifier is not ours."""

    def __init__(self, expected: int, found: int):
        self.expected = expected
        self.found = found
        super().__init__(f"Protocol mismatch: expected 0x{expected:04x}, found 0x{found:04x}")


class UnrecognizedOpcodeError(MalformedWireError):
    """Raised for an opcode outside the known set of a record family."""

    def __init__(self, opcode: int):
        self.opcode = opcode
        super().__init__(f"Unrecognized opcode: 0x{opcode:02x}")


class TruncatedDataError(MalformedWireError):
    """Raised when a read runs past the end of the record."""
    pass


# Field validation errors

class FieldValidationError(AssetError):
    """Raised when a record field is missing, out of range or conflicting."""
    pass


class MissingFieldError(FieldValidationError):
    """Raised when a required field is not set."""
    pass


class MissingAmountError(MissingFieldError):
    """Raised when a payment has no (or a zero) amount."""
    pass


class MissingTorrentHashError(MissingFieldError):
    """Raised when a sha2 hash is given without a torrent hash."""
    pass


class InvalidDivisibilityError(FieldValidationError):
    """Raised when divisibility is outside [0, 7]."""
    pass


class InvalidAggregationPolicyError(FieldValidationError):
    """Raised for an unknown aggregation policy."""
    pass


class OutputOutOfBoundsError(FieldValidationError):
    """Raised when a payment output reference does not fit its bit width."""
    pass


class ConflictingBurnOutputError(FieldValidationError):
    """Raised when a payment carries both a burn flag and an output."""
    pass


class ConflictingBurnRangeError(FieldValidationError):
    """Raised when a payment carries both a burn flag and a range flag."""
    pass


class ReservedOutputValueError(FieldValidationError):
    """Raised when a non-burn payment uses the burn sentinel output."""
    pass


class InputIndexGapError(FieldValidationError):
    """Raised when payment input indices cannot be expressed with skip flags."""
    pass


class AmountEncodingError(FieldValidationError):
    """Raised when an amount cannot be represented by the amount codec."""
    pass


# Byte budget errors

class ByteBudgetExceededError(AssetError):
    """Raised when a record cannot fit the available byte budget."""
    pass


class ExceedsByteBudgetError(ByteBudgetExceededError):
    """Raised when header and tail alone exceed the byte budget."""

    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(f"Record needs {size} bytes, budget is {max_bytes} bytes")


class CannotFitHashError(ByteBudgetExceededError):
    """Raised when a torrent-hash-only record cannot embed its hash."""
    pass


class LeftoverPlacementError(AssetError):
    """Raised when externalized hashes cannot be placed in carriage outputs."""
    pass


CannotPlaceLeftoverHashes = LeftoverPlacementError


# Coin selection errors

class InsufficientAssetFundsError(AssetError):
    """Raised when the output pool does not hold enough units of an asset."""

    def __init__(self, asset_id: str, required: int, available: Optional[int] = None):
        self.asset_id = asset_id
        self.required = required
        self.available = available
        message = f"Not enough units of asset {asset_id}: required {required}"
        if available is not None:
            message += f", available {available}"
        super().__init__(message)


class InsufficientFundsError(AssetError):
    """Raised when plain outputs cannot cover fees and dust."""

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        self.required = required
        self.available = available
        if message is None:
            message = f"Insufficient funds: required {required} satoshis, available {available} satoshis"
        super().__init__(message)


class AlreadySpentOutputError(AssetError):
    """Raised when a candidate output is already marked as used."""

    def __init__(self, txid: str, vout: int):
        self.txid = txid
        self.vout = vout
        super().__init__(f"Output {txid}:{vout} is already spent")


class InvalidAssetIdError(AssetError):
    """Raised when an asset identifier cannot be decoded."""
    pass
