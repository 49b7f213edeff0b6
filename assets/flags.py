"""
Colored Asset Protocol - Issuance Flags Codec

Packs divisibility, lock status and aggregation policy into the single flags
byte that closes every issuance record::

    bit  7 6 5   4      3 2      1 0
         divis.  lock   policy   unused
"""

from dataclasses import dataclass
from typing import Union

from .amount import ByteCursor
from .constants import AggregationPolicy
from .exceptions import InvalidAggregationPolicyError, InvalidDivisibilityError


MAX_DIVISIBILITY = 7


@dataclass(frozen=True)
class IssueFlags:
    """Decoded issuance flags."""
    divisibility: int
    lock_status: bool
    aggregation_policy: AggregationPolicy


def _coerce_policy(policy: Union[AggregationPolicy, str]) -> AggregationPolicy:
    if isinstance(policy, AggregationPolicy):
        return policy
    try:
        return AggregationPolicy(policy)
    except ValueError:
        raise InvalidAggregationPolicyError(f"Invalid aggregation policy: {policy!r}")


def encode_issue_flags(
    divisibility: int,
    lock_status: bool,
    aggregation_policy: Union[AggregationPolicy, str] = AggregationPolicy.AGGREGATABLE
) -> bytes:
    """
    Encode the issuance flags byte.

    Args:
        divisibility: Decimal places of the asset, 0 to 7
        lock_status: True if the asset can never be reissued
        aggregation_policy: Aggregation policy (enum or its string value)

    Returns:
        A single byte

    Raises:
        InvalidDivisibilityError: If divisibility is outside [0, 7]
        InvalidAggregationPolicyError: If the policy is unknown
    """
    if not isinstance(divisibility, int) or not 0 <= divisibility <= MAX_DIVISIBILITY:
        raise InvalidDivisibilityError(f"Divisibility not in range [0, {MAX_DIVISIBILITY}]: {divisibility}")
    policy = _coerce_policy(aggregation_policy)

    value = divisibility << 1
    value |= 1 if lock_status else 0
    value <<= 2
    value |= policy.index
    value <<= 2
    return bytes([value])


def decode_issue_flags(cursor: ByteCursor) -> IssueFlags:
    """Decode the issuance flags byte at the cursor."""
    value = cursor.consume_byte()
    value >>= 2  # two low bits unused
    policy_index = value & 0x3
    value >>= 2
    lock_status = bool(value & 1)
    value >>= 1
    divisibility = value & 0x7

    try:
        policy = AggregationPolicy.from_index(policy_index)
    except ValueError:
        raise InvalidAggregationPolicyError(f"Invalid aggregation policy index: {policy_index}")

    return IssueFlags(divisibility=divisibility, lock_status=lock_status, aggregation_policy=policy)
