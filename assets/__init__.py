"""
Colored Asset Protocol - Asset Records

This package encodes and decodes the compact issuance, transfer and burn
records carried in a transaction's data output, and derives asset
identifiers from issuance inputs.
"""

from .amount import ByteCursor, decode_amount, encode_amount
from .asset import decode_asset, encode_asset, is_asset_record, payments_input_to_skip, payments_skip_to_input
from .asset_id import AssetIdGenerator, IssuanceInput, decode_asset_id, validate_asset_id
from .codec import EncodedRecord
from .constants import DEFAULT_VERSION, MAX_DATA_BYTES, PROTOCOL_ID, AggregationPolicy, AssetFamily, HashField
from .exceptions import *
from .flags import IssueFlags, decode_issue_flags, encode_issue_flags
from .issuance import IssuanceCodec
from .payments import BurnPaymentCodec, Payment, PaymentCodec
from .record import Asset
from .transfer import TransferCodec

__all__ = [
    'Asset',
    'Payment',
    'EncodedRecord',
    'AssetFamily',
    'AggregationPolicy',
    'HashField',
    'PROTOCOL_ID',
    'DEFAULT_VERSION',
    'MAX_DATA_BYTES',
    'ByteCursor',
    'encode_amount',
    'decode_amount',
    'IssueFlags',
    'encode_issue_flags',
    'decode_issue_flags',
    'PaymentCodec',
    'BurnPaymentCodec',
    'IssuanceCodec',
    'TransferCodec',
    'encode_asset',
    'decode_asset',
    'is_asset_record',
    'payments_input_to_skip',
    'payments_skip_to_input',
    'AssetIdGenerator',
    'IssuanceInput',
    'decode_asset_id',
    'validate_asset_id',
]

__version__ = '1.0.0'
