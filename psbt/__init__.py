"""
Colored Asset Protocol - Transaction Construction

This package builds the transactions that carry asset records: a PSBT
builder, script helpers, OP_RETURN and hash carriage outputs (``psbt.outputs``),
and the coin selection and assembly of issuance, transfer and burn
transactions (``psbt.assembly``).

Only the builder layer is imported here; ``assets.asset_id`` depends on
``psbt.utils``, so the modules that depend on ``assets`` are imported from
their own paths.
"""

from .builder import AssetTransactionBuilder, TransactionInput, TransactionOutput
from .exceptions import *

__all__ = [
    'AssetTransactionBuilder',
    'TransactionInput',
    'TransactionOutput',
    'PSBTError',
    'PSBTConstructionError',
    'InvalidScriptError',
]

__version__ = '1.0.0'
