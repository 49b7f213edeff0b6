"""
Tests for the asset orchestrator: opcode dispatch and the input/skip transform.
"""

import pytest

from assets.asset import (
    OPCODE_TABLE,
    decode_asset,
    encode_asset,
    is_asset_record,
    payments_input_to_skip,
    payments_skip_to_input,
)
from assets.constants import AggregationPolicy, AssetFamily, HashField
from assets.exceptions import (
    FieldValidationError,
    InputIndexGapError,
    ProtocolMismatchError,
    TruncatedDataError,
    UnrecognizedOpcodeError,
)
from assets.payments import Payment
from assets.record import Asset

TORRENT_HASH = bytes(range(20))
SHA2_HASH = bytes(range(100, 132))


class TestInputToSkip:
    """Test conversion from explicit input indices to skip flags."""

    def test_skip_flags(self):
        payments = [
            Payment(amount=1, output=0, input=0),
            Payment(amount=2, output=1, input=0),
            Payment(amount=3, output=2, input=1),
            Payment(amount=4, output=3, input=2),
        ]
        wire = payments_input_to_skip(payments)
        assert [payment.skip for payment in wire] == [False, True, True, False]
        assert all(payment.input is None for payment in wire)

    def test_sorted_by_input(self):
        payments = [
            Payment(amount=3, output=2, input=1),
            Payment(amount=1, output=0, input=0),
        ]
        wire = payments_input_to_skip(payments)
        assert [payment.amount for payment in wire] == [1, 3]
        assert [payment.skip for payment in wire] == [True, False]

    def test_sort_is_stable(self):
        payments = [
            Payment(amount=5, output=4, input=0),
            Payment(amount=6, output=1, input=0),
        ]
        assert [payment.output for payment in payments_input_to_skip(payments)] == [4, 1]

    def test_does_not_mutate_input(self):
        payment = Payment(amount=1, output=0, input=0)
        payments_input_to_skip([payment, Payment(amount=1, output=0, input=1)])
        assert payment.input == 0
        assert payment.skip is False

    def test_gap_between_inputs(self):
        payments = [Payment(amount=1, output=0, input=0), Payment(amount=1, output=0, input=2)]
        with pytest.raises(InputIndexGapError, match="from input 0 to input 2"):
            payments_input_to_skip(payments)

    def test_must_start_at_zero(self):
        with pytest.raises(InputIndexGapError, match="start at input 0"):
            payments_input_to_skip([Payment(amount=1, output=0, input=1)])

    def test_missing_input(self):
        with pytest.raises(FieldValidationError, match="input index"):
            payments_input_to_skip([Payment(amount=1, output=0)])

    def test_empty(self):
        assert payments_input_to_skip([]) == []


class TestSkipToInput:
    """Test rebuilding input indices from skip flags."""

    def test_input_indices(self):
        wire = [
            Payment(amount=1, output=0),
            Payment(amount=2, output=1, skip=True),
            Payment(amount=3, output=2, skip=True),
            Payment(amount=4, output=3),
        ]
        assert [payment.input for payment in payments_skip_to_input(wire)] == [0, 0, 1, 2]

    def test_trailing_skip_is_harmless(self):
        wire = [Payment(amount=1, output=0, skip=True)]
        assert payments_skip_to_input(wire)[0].input == 0

    def test_burn_payment_keeps_burn(self):
        payment = payments_skip_to_input([Payment(amount=7, burn=True)])[0]
        assert payment.burn
        assert payment.output is None
        assert payment.input == 0

    def test_preserves_percent_and_range(self):
        payment = payments_skip_to_input([Payment(amount=7, output=300, range=True, percent=True)])[0]
        assert payment.range
        assert payment.percent
        assert payment.skip is False

    def test_inverse_of_input_to_skip(self):
        payments = [
            Payment(amount=1, output=0, input=0),
            Payment(amount=2, output=1, input=1),
            Payment(amount=3, output=2, input=1),
            Payment(amount=4, output=3, input=2),
        ]
        restored = payments_skip_to_input(payments_input_to_skip(payments))
        assert [(p.amount, p.output, p.input) for p in restored] == [
            (1, 0, 0), (2, 1, 1), (3, 2, 1), (4, 3, 2)
        ]


class TestOpcodeDispatch:
    """Test routing of wire records to their codec."""

    def test_table_covers_every_family(self):
        assert OPCODE_TABLE[0x01].family == AssetFamily.ISSUANCE
        assert OPCODE_TABLE[0x13].family == AssetFamily.TRANSFER
        assert OPCODE_TABLE[0x25].family == AssetFamily.BURN
        assert 0x30 not in OPCODE_TABLE

    def test_decode_issuance(self):
        asset = decode_asset(bytes.fromhex("44410306201300201310"))
        assert asset.family == AssetFamily.ISSUANCE
        assert asset.amount == 1000
        assert asset.payments[0].input == 0

    def test_decode_transfer(self):
        asset = decode_asset(bytes.fromhex("444103158120510219"))
        assert asset.family == AssetFamily.TRANSFER
        assert [(p.amount, p.output, p.input) for p in asset.payments] == [(50, 1, 0), (25, 2, 1)]

    def test_decode_burn(self):
        asset = decode_asset(bytes.fromhex("444103251f0a012091"))
        assert asset.family == AssetFamily.BURN
        assert asset.payments[0].burn
        assert asset.payments[1].amount == 90

    def test_unknown_family(self):
        with pytest.raises(UnrecognizedOpcodeError) as exc_info:
            decode_asset(bytes.fromhex("44410330"))
        assert exc_info.value.opcode == 0x30

    def test_reserved_issuance_opcode(self):
        with pytest.raises(UnrecognizedOpcodeError):
            decode_asset(bytes.fromhex("4441030010"))

    def test_unknown_opcode_in_known_family(self):
        with pytest.raises(UnrecognizedOpcodeError):
            decode_asset(bytes.fromhex("44410316"))

    def test_foreign_protocol(self):
        with pytest.raises(ProtocolMismatchError) as exc_info:
            decode_asset(bytes.fromhex("4341031500"))
        assert exc_info.value.found == 0x4341

    def test_too_short(self):
        with pytest.raises(TruncatedDataError):
            decode_asset(bytes.fromhex("444103"))

    def test_is_asset_record(self):
        assert is_asset_record(bytes.fromhex("444103158120510219"))
        assert not is_asset_record(bytes.fromhex("44410330"))
        assert not is_asset_record(b'\x44\x41')


class TestEncodeAsset:
    """Test encoding through the orchestrator."""

    def test_transfer_with_inputs(self):
        asset = Asset.transfer([
            Payment(amount=50, output=1, input=0),
            Payment(amount=25, output=2, input=1),
        ])
        assert encode_asset(asset).data.hex() == "444103158120510219"

    def test_burn_with_inputs(self):
        asset = Asset.burn([
            Payment(amount=10, burn=True, input=0),
            Payment(amount=90, output=1, input=0),
        ])
        assert encode_asset(asset).data.hex() == "444103251f0a012091"

    def test_issuance_with_input(self):
        asset = Asset.issuance(amount=1000, payments=[Payment(amount=1000, output=0, input=0)])
        assert encode_asset(asset).data.hex() == "44410306201300201310"

    def test_already_wire_form(self):
        asset = Asset.transfer([Payment(amount=50, output=1, skip=True), Payment(amount=25, output=2)])
        assert encode_asset(asset).data.hex() == "444103158120510219"

    def test_mixed_forms_rejected(self):
        asset = Asset.transfer([Payment(amount=50, output=1, input=0), Payment(amount=25, output=2)])
        with pytest.raises(FieldValidationError, match="mix"):
            encode_asset(asset)

    def test_caller_asset_unchanged(self):
        payments = [Payment(amount=50, output=1, input=0)]
        asset = Asset.transfer(payments)
        encode_asset(asset)
        assert asset.payments[0].input == 0

    @pytest.mark.parametrize("max_bytes", [20, 40, 80])
    def test_decode_recovers_encoded_fields(self, max_bytes):
        asset = Asset.issuance(
            amount=123456,
            payments=[
                Payment(amount=100000, output=0, input=0),
                Payment(amount=23456, output=1, input=0),
            ],
            divisibility=3,
            lock_status=False,
            aggregation_policy=AggregationPolicy.HYBRID,
            torrent_hash=TORRENT_HASH,
            sha2=SHA2_HASH,
        )
        record = encode_asset(asset, max_bytes)
        assert len(record.data) <= max_bytes

        decoded = decode_asset(record.data)
        assert decoded.amount == 123456
        assert decoded.divisibility == 3
        assert decoded.lock_status is False
        assert decoded.aggregation_policy == AggregationPolicy.HYBRID
        assert [(p.amount, p.output, p.input) for p in decoded.payments] == [(100000, 0, 0), (23456, 1, 0)]
        # embedded plus leftover hashes always add up to both hashes
        embedded = [h for h in (decoded.torrent_hash, decoded.sha2) if h is not None]
        assert embedded + record.leftover == [TORRENT_HASH, SHA2_HASH]

    def test_budget_monotonic(self):
        asset = Asset.transfer(
            [Payment(amount=1, output=0, input=0)], torrent_hash=TORRENT_HASH, sha2=SHA2_HASH
        )
        leftover_counts = [len(encode_asset(asset, max_bytes).leftover) for max_bytes in range(6, 81)]
        assert leftover_counts == sorted(leftover_counts, reverse=True)
        assert leftover_counts[0] == 2
        assert leftover_counts[-1] == 0


def _sample_asset(family: AssetFamily, **kwargs) -> Asset:
    if family == AssetFamily.ISSUANCE:
        return Asset.issuance(
            amount=1000,
            payments=[
                Payment(amount=400, output=0, input=0),
                Payment(amount=600, output=1, input=0),
            ],
            divisibility=2,
            lock_status=False,
            aggregation_policy=AggregationPolicy.HYBRID,
            **kwargs
        )
    if family == AssetFamily.TRANSFER:
        return Asset.transfer([
            Payment(amount=50, output=0, input=0),
            Payment(amount=25, output=1, input=1),
        ], **kwargs)
    return Asset.burn([
        Payment(amount=10, input=0, burn=True),
        Payment(amount=90, output=1, input=0),
        Payment(amount=5, output=31, input=1, range=True),
    ], **kwargs)


# Opcode per family for each hash/rules combination
OPCODES = {
    AssetFamily.ISSUANCE: {
        "both": 0x01, "sha2_external": 0x02, "neither": 0x03,
        "torrent": 0x04, "torrent_no_rules": 0x04, "plain": 0x06, "plain_no_rules": 0x05,
    },
    AssetFamily.TRANSFER: {
        "both": 0x10, "sha2_external": 0x11, "neither": 0x12,
        "torrent": 0x13, "torrent_no_rules": 0x14, "plain": 0x15, "plain_no_rules": 0x15,
    },
    AssetFamily.BURN: {
        "both": 0x20, "sha2_external": 0x21, "neither": 0x22,
        "torrent": 0x23, "torrent_no_rules": 0x24, "plain": 0x25, "plain_no_rules": 0x25,
    },
}

# variant -> (hashes, no_rules, budget on top of the hashless record)
VARIANTS = {
    "both": ({"torrent_hash": TORRENT_HASH, "sha2": SHA2_HASH}, False, 52),
    "sha2_external": ({"torrent_hash": TORRENT_HASH, "sha2": SHA2_HASH}, False, 20),
    "neither": ({"torrent_hash": TORRENT_HASH, "sha2": SHA2_HASH}, False, 0),
    "torrent": ({"torrent_hash": TORRENT_HASH}, False, 20),
    "torrent_no_rules": ({"torrent_hash": TORRENT_HASH}, True, 20),
    "plain": ({}, False, 0),
    "plain_no_rules": ({}, True, 0),
}


class TestRoundTrip:
    """Decoding an encoded record gives back the record, for every opcode."""

    @pytest.mark.parametrize("family", list(AssetFamily))
    @pytest.mark.parametrize("variant", list(VARIANTS))
    def test_every_opcode(self, family, variant):
        hashes, no_rules, extra = VARIANTS[variant]
        base_size = len(encode_asset(_sample_asset(family)).data)
        asset = _sample_asset(family, no_rules=no_rules, **hashes)

        record = encode_asset(asset, base_size + extra)
        assert record.opcode == OPCODES[family][variant]

        expected = _sample_asset(family, no_rules=no_rules, **hashes)
        if variant == "sha2_external":
            expected.sha2 = None
            expected.external_hashes = [HashField.SHA2]
            assert record.leftover == [SHA2_HASH]
        elif variant == "neither":
            expected.torrent_hash = None
            expected.sha2 = None
            expected.external_hashes = [HashField.TORRENT_HASH, HashField.SHA2]
            assert record.leftover == [TORRENT_HASH, SHA2_HASH]
        else:
            assert record.leftover == []
        # An opcode shared by both rule settings decodes as having rules
        codes = OPCODES[family]
        if variant.startswith("torrent") and codes["torrent"] == codes["torrent_no_rules"]:
            expected.no_rules = False
        if variant.startswith("plain") and codes["plain"] == codes["plain_no_rules"]:
            expected.no_rules = False

        assert decode_asset(record.data) == expected
