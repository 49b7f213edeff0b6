"""
Colored Asset Protocol - Transaction Builder Exceptions

This module defines custom exceptions for transaction construction and output
script handling.
"""


class PSBTError(Exception):
    """Base exception for PSBT-related errors."""
    pass


class PSBTConstructionError(PSBTError):
    """Exception raised during PSBT construction."""
    pass


class InvalidScriptError(PSBTError):
    """Exception raised for invalid script operations."""
    pass
