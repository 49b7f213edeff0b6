"""
Colored Asset Protocol - Output Construction Modules

This package builds the OP_RETURN output carrying an asset record and the
carriage outputs for hashes that did not fit the record.
"""

from .carriage import *
from .op_return import *

__all__ = [
    # Hash carriage
    'create_carriage_script',
    'create_carriage_scripts',
    'extract_carried_hash',
    'is_carriage_script',
    'validate_carrier_pubkey',
    # OP_RETURN asset records
    'AssetOpReturn',
    'create_asset_op_return',
    'parse_asset_op_return',
    'parse_transaction_assets',
    'find_asset_output',
]
