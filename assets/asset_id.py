"""
Colored Asset Protocol - Asset ID Derivation and Validation

An asset identifier is derived from the first input consumed by the issuance
transaction and the asset's lock status, aggregation policy and
divisibility::

    base58check( padding (2) | RIPEMD160(SHA256(payload)) (20) | divisibility (2) )

Locked assets hash ``"<prev txid>:<output index>"``; unlocked assets hash the
previous output script, or a pay-to-public-key-hash script rebuilt from the
public key in the spending script when the previous output is unknown.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional, Union

from bitcoinlib.encoding import change_base

from psbt.utils import create_p2pkh_script, double_sha256, hash160, parse_script_pushes

from .constants import AggregationPolicy
from .exceptions import InvalidAggregationPolicyError, InvalidAssetIdError, InvalidDivisibilityError
from .flags import MAX_DIVISIBILITY


logger = logging.getLogger(__name__)

UNLOCKED_PADDING: Dict[AggregationPolicy, int] = {
    AggregationPolicy.AGGREGATABLE: 0x2e37,
    AggregationPolicy.HYBRID: 0x2e6b,
    AggregationPolicy.DISPERSED: 0x2e4e,
}

LOCKED_PADDING: Dict[AggregationPolicy, int] = {
    AggregationPolicy.AGGREGATABLE: 0x20ce,
    AggregationPolicy.HYBRID: 0x2102,
    AggregationPolicy.DISPERSED: 0x20e4,
}

PADDING_SIZE = 2
DIVISIBILITY_SIZE = 2
CHECKSUM_SIZE = 4
ASSET_ID_PAYLOAD_SIZE = PADDING_SIZE + 20 + DIVISIBILITY_SIZE

BASE58_PATTERN = re.compile(r'^[1-9A-HJ-NP-Za-km-z]+$')


@dataclass
class IssuanceInput:
    """The first input of an issuance transaction."""
    prev_txid: str
    output_index: int
    script: bytes = b''
    previous_output_script: Optional[bytes] = None


class DecodedAssetId(NamedTuple):
    padding: int
    payload_hash: bytes
    divisibility: int


def base58check_encode(payload: bytes) -> str:
    return change_base(payload + double_sha256(payload)[:CHECKSUM_SIZE], 256, 58)


def base58check_decode(text: str) -> bytes:
    """
    Decode base58check text and verify its checksum.

    Raises:
        InvalidAssetIdError: On bad characters or a checksum mismatch
    """
    if not isinstance(text, str) or not BASE58_PATTERN.match(text):
        raise InvalidAssetIdError(f"Not a base58 string: {text!r}")
    raw = bytes(change_base(text, 58, 256))
    if len(raw) <= CHECKSUM_SIZE:
        raise InvalidAssetIdError(f"Too short for a checksum: {text}")
    payload, checksum = raw[:-CHECKSUM_SIZE], raw[-CHECKSUM_SIZE:]
    if double_sha256(payload)[:CHECKSUM_SIZE] != checksum:
        raise InvalidAssetIdError(f"Checksum mismatch: {text}")
    return payload


class AssetIdGenerator:
    """Derives asset identifiers for issuance transactions."""

    def generate_id(
        self,
        first_input: IssuanceInput,
        lock_status: bool,
        aggregation_policy: Union[AggregationPolicy, str] = AggregationPolicy.AGGREGATABLE,
        divisibility: int = 0
    ) -> str:
        """
        Derive the identifier of an asset issued by a transaction.

        Args:
            first_input: First input consumed by the issuance
            lock_status: True if the asset is locked (non-reissuable)
            aggregation_policy: Aggregation policy of the asset
            divisibility: Divisibility of the asset

        Returns:
            Base58check asset identifier
        """
        policy = self._policy(aggregation_policy)
        if lock_status:
            padding = LOCKED_PADDING[policy]
            payload = f"{first_input.prev_txid}:{first_input.output_index}".encode('utf-8')
        else:
            padding = UNLOCKED_PADDING[policy]
            if first_input.previous_output_script:
                payload = first_input.previous_output_script
            else:
                payload = self.pubkey_hash_script(first_input.script)

        asset_id = self.hash_and_encode(payload, padding, divisibility)
        logger.debug(
            f"Derived asset id {asset_id} from {first_input.prev_txid}:{first_input.output_index} "
            f"(locked={lock_status}, policy={policy.value})"
        )
        return asset_id

    @staticmethod
    def pubkey_hash_script(spending_script: bytes) -> bytes:
        """Rebuild the P2PKH output script spent by a ``<sig> <pubkey>`` script."""
        try:
            pushes = parse_script_pushes(spending_script)
        except ValueError as e:
            raise InvalidAssetIdError(f"Cannot parse spending script: {e}")
        if len(pushes) < 2 or not pushes[1]:
            raise InvalidAssetIdError("Spending script carries no public key")
        return create_p2pkh_script(hash160(pushes[1]))

    @staticmethod
    def hash_and_encode(payload: bytes, padding: int, divisibility: int) -> str:
        if not isinstance(divisibility, int) or not 0 <= divisibility <= MAX_DIVISIBILITY:
            raise InvalidDivisibilityError(f"Divisibility not in range [0, {MAX_DIVISIBILITY}]: {divisibility}")
        body = (
            padding.to_bytes(PADDING_SIZE, byteorder='big')
            + hash160(payload)
            + divisibility.to_bytes(DIVISIBILITY_SIZE, byteorder='big')
        )
        return base58check_encode(body)

    @staticmethod
    def _policy(policy: Union[AggregationPolicy, str]) -> AggregationPolicy:
        if isinstance(policy, AggregationPolicy):
            return policy
        try:
            return AggregationPolicy(policy)
        except ValueError:
            raise InvalidAggregationPolicyError(f"Invalid aggregation policy: {policy!r}")


def decode_asset_id(asset_id: str) -> DecodedAssetId:
    """
    Split an asset identifier into padding, payload hash and divisibility.

    Raises:
        InvalidAssetIdError: If the identifier is malformed
    """
    payload = base58check_decode(asset_id)
    if len(payload) != ASSET_ID_PAYLOAD_SIZE:
        raise InvalidAssetIdError(
            f"Asset id payload must be {ASSET_ID_PAYLOAD_SIZE} bytes, got {len(payload)}"
        )
    return DecodedAssetId(
        padding=int.from_bytes(payload[:PADDING_SIZE], byteorder='big'),
        payload_hash=payload[PADDING_SIZE:PADDING_SIZE + 20],
        divisibility=int.from_bytes(payload[-DIVISIBILITY_SIZE:], byteorder='big'),
    )


def validate_asset_id(asset_id: str) -> bool:
    """
    Validate asset ID format.

    Args:
        asset_id: Asset ID to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        decoded = decode_asset_id(asset_id)
    except InvalidAssetIdError:
        return False
    known = set(LOCKED_PADDING.values()) | set(UNLOCKED_PADDING.values())
    return decoded.padding in known and decoded.divisibility <= MAX_DIVISIBILITY


def is_locked_asset_id(asset_id: str) -> bool:
    return decode_asset_id(asset_id).padding in LOCKED_PADDING.values()


def aggregation_policy_of(asset_id: str) -> AggregationPolicy:
    """Aggregation policy encoded in an asset identifier's padding."""
    padding = decode_asset_id(asset_id).padding
    for table in (LOCKED_PADDING, UNLOCKED_PADDING):
        for policy, value in table.items():
            if value == padding:
                return policy
    raise InvalidAssetIdError(f"Unknown asset id padding: 0x{padding:04x}")
