"""
Tests for the issuance flags byte.
"""

import pytest

from assets.amount import ByteCursor
from assets.constants import AggregationPolicy
from assets.exceptions import InvalidAggregationPolicyError, InvalidDivisibilityError
from assets.flags import IssueFlags, decode_issue_flags, encode_issue_flags


class TestIssueFlags:
    """Test packing of divisibility, lock status and aggregation policy."""

    def test_encode_locked_aggregatable(self):
        assert encode_issue_flags(2, True, AggregationPolicy.AGGREGATABLE) == b'\x50'

    def test_encode_unlocked_dispersed(self):
        assert encode_issue_flags(7, False, AggregationPolicy.DISPERSED) == b'\xe8'

    def test_encode_accepts_policy_name(self):
        assert encode_issue_flags(0, True, "hybrid") == encode_issue_flags(0, True, AggregationPolicy.HYBRID)

    def test_decode(self):
        flags = decode_issue_flags(ByteCursor(b'\x50'))
        assert flags == IssueFlags(divisibility=2, lock_status=True,
                                   aggregation_policy=AggregationPolicy.AGGREGATABLE)

    @pytest.mark.parametrize("divisibility", range(8))
    @pytest.mark.parametrize("lock_status", [True, False])
    @pytest.mark.parametrize("policy", list(AggregationPolicy))
    def test_every_combination_decodes(self, divisibility, lock_status, policy):
        flags = decode_issue_flags(ByteCursor(encode_issue_flags(divisibility, lock_status, policy)))
        assert flags.divisibility == divisibility
        assert flags.lock_status == lock_status
        assert flags.aggregation_policy == policy

    def test_low_bits_unused(self):
        for policy in AggregationPolicy:
            assert encode_issue_flags(5, True, policy)[0] & 0x03 == 0

    @pytest.mark.parametrize("divisibility", [-1, 8, 2.0])
    def test_invalid_divisibility(self, divisibility):
        with pytest.raises(InvalidDivisibilityError):
            encode_issue_flags(divisibility, True)

    def test_invalid_policy(self):
        with pytest.raises(InvalidAggregationPolicyError):
            encode_issue_flags(0, True, "sometimes")

    def test_decode_reserved_policy_index(self):
        with pytest.raises(InvalidAggregationPolicyError, match="index: 3"):
            decode_issue_flags(ByteCursor(b'\x0c'))
