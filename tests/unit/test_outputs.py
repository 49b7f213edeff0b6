"""
Tests for hash carriage outputs and OP_RETURN asset record outputs.
"""

import pytest

from assets.constants import AssetFamily, HashField
from assets.exceptions import LeftoverPlacementError, MalformedWireError
from assets.payments import Payment
from assets.record import Asset
from psbt.builder import TransactionOutput
from psbt.exceptions import InvalidScriptError
from psbt.outputs import (
    create_asset_op_return,
    create_carriage_script,
    create_carriage_scripts,
    extract_carried_hash,
    find_asset_output,
    is_carriage_script,
    parse_asset_op_return,
    parse_transaction_assets,
    validate_carrier_pubkey,
)
from psbt.utils import create_op_return_script, create_p2pkh_script


CHANGE_SCRIPT = create_p2pkh_script(b'\x0c' * 20)


class TestCarriageScripts:
    """Test bare multisig outputs carrying leftover hashes."""

    def test_script_layout(self, carrier_pubkey, sha2_hash):
        script = create_carriage_script(carrier_pubkey, sha2_hash)
        assert len(script) == 71
        assert script[0] == 0x51
        assert script[1] == 33
        assert script[2:35] == carrier_pubkey
        assert script[35] == 33
        assert script[36] == 0x03
        assert script[37:69] == sha2_hash
        assert script[-2:] == b'\x52\xae'

    def test_torrent_hash_is_zero_padded(self, carrier_pubkey, torrent_hash):
        script = create_carriage_script(carrier_pubkey, torrent_hash)
        assert script[37:57] == torrent_hash
        assert script[57:69] == b'\x00' * 12

    def test_extract_hash(self, carrier_pubkey, torrent_hash, sha2_hash):
        assert extract_carried_hash(create_carriage_script(carrier_pubkey, torrent_hash), 20) == torrent_hash
        assert extract_carried_hash(create_carriage_script(carrier_pubkey, sha2_hash), 32) == sha2_hash

    def test_not_a_carriage_script(self):
        assert not is_carriage_script(CHANGE_SCRIPT)
        assert extract_carried_hash(CHANGE_SCRIPT, 20) is None

    def test_invalid_carrier_pubkey(self, sha2_hash):
        with pytest.raises(InvalidScriptError, match="33 bytes"):
            create_carriage_script(b'\x02' * 32, sha2_hash)
        # x coordinate with no point on the curve
        with pytest.raises(InvalidScriptError, match="Invalid carrier pubkey"):
            validate_carrier_pubkey(b'\x02' + b'\x00' * 32)

    def test_hash_too_large(self, carrier_pubkey):
        with pytest.raises(InvalidScriptError):
            create_carriage_script(carrier_pubkey, b'\x01' * 33)

    def test_scripts_in_leftover_order(self, carrier_pubkey, torrent_hash, sha2_hash):
        scripts = create_carriage_scripts(carrier_pubkey, [torrent_hash, sha2_hash])
        assert extract_carried_hash(scripts[0], 20) == torrent_hash
        assert extract_carried_hash(scripts[1], 32) == sha2_hash

    def test_no_leftover(self, carrier_pubkey):
        assert create_carriage_scripts(carrier_pubkey, []) == []

    def test_too_many_leftovers(self, carrier_pubkey, sha2_hash):
        with pytest.raises(LeftoverPlacementError, match="at most 2"):
            create_carriage_scripts(carrier_pubkey, [sha2_hash] * 3)


class TestAssetOpReturn:
    """Test asset records in OP_RETURN outputs."""

    def test_create_and_parse(self):
        asset = Asset.transfer([Payment(amount=50, output=1, input=0), Payment(amount=25, output=2, input=1)])
        op_return = create_asset_op_return(asset)
        assert op_return.script == b'\x6a\x09' + op_return.data
        assert op_return.opcode == 0x15
        assert op_return.leftover == []

        parsed = parse_asset_op_return(op_return.script)
        assert parsed.family == AssetFamily.TRANSFER
        assert [(p.amount, p.output, p.input) for p in parsed.payments] == [(50, 1, 0), (25, 2, 1)]

    def test_foreign_op_return(self):
        assert parse_asset_op_return(create_op_return_script(b'hello world')) is None
        assert parse_asset_op_return(CHANGE_SCRIPT) is None

    def test_find_asset_output(self):
        op_return = create_asset_op_return(Asset.burn([Payment(amount=1, burn=True, input=0)]))
        outputs = [
            TransactionOutput(546, CHANGE_SCRIPT),
            TransactionOutput(0, create_op_return_script(b'other')),
            TransactionOutput(0, op_return.script),
        ]
        assert find_asset_output(outputs) == 2
        assert find_asset_output(outputs[:2]) is None


class TestParseTransactionAssets:
    """Test restoring carried hashes from a transaction's outputs."""

    def test_restores_carried_sha2(self, carrier_pubkey, torrent_hash, sha2_hash):
        asset = Asset.transfer([Payment(amount=10, output=1, input=0)], torrent_hash=torrent_hash, sha2=sha2_hash)
        op_return = create_asset_op_return(asset, max_bytes=40)
        assert op_return.leftover == [sha2_hash]

        outputs = [TransactionOutput(600, script) for script in create_carriage_scripts(carrier_pubkey, op_return.leftover)]
        outputs += [TransactionOutput(546, CHANGE_SCRIPT), TransactionOutput(0, op_return.script)]

        parsed = parse_transaction_assets(outputs)
        assert parsed.torrent_hash == torrent_hash
        assert parsed.sha2 == sha2_hash
        assert parsed.external_hashes == [HashField.SHA2]

    def test_restores_both_hashes(self, carrier_pubkey, torrent_hash, sha2_hash):
        asset = Asset.transfer([Payment(amount=10, output=2, input=0)], torrent_hash=torrent_hash, sha2=sha2_hash)
        op_return = create_asset_op_return(asset, max_bytes=10)
        assert op_return.leftover == [torrent_hash, sha2_hash]

        outputs = [TransactionOutput(600, script) for script in create_carriage_scripts(carrier_pubkey, op_return.leftover)]
        outputs += [TransactionOutput(546, CHANGE_SCRIPT), TransactionOutput(0, op_return.script)]

        parsed = parse_transaction_assets(outputs)
        assert parsed.torrent_hash == torrent_hash
        assert parsed.sha2 == sha2_hash

    def test_missing_carriage_output(self, torrent_hash, sha2_hash):
        asset = Asset.transfer([Payment(amount=10, output=0, input=0)], torrent_hash=torrent_hash, sha2=sha2_hash)
        op_return = create_asset_op_return(asset, max_bytes=40)
        outputs = [TransactionOutput(546, CHANGE_SCRIPT), TransactionOutput(0, op_return.script)]
        with pytest.raises(MalformedWireError, match="No carriage output for sha2"):
            parse_transaction_assets(outputs)

    def test_no_asset_record(self):
        assert parse_transaction_assets([TransactionOutput(546, CHANGE_SCRIPT)]) is None

    @pytest.mark.parametrize("script", ['6a4c', '6a4d01', '6a4e0000'])
    def test_skips_malformed_op_return(self, script):
        asset = Asset.transfer([Payment(amount=10, output=0, input=0)])
        op_return = create_asset_op_return(asset)
        outputs = [
            TransactionOutput(546, CHANGE_SCRIPT),
            TransactionOutput(0, bytes.fromhex(script)),
            TransactionOutput(0, op_return.script),
        ]
        assert find_asset_output(outputs) == 2
        assert parse_asset_op_return(bytes.fromhex(script)) is None
        assert parse_transaction_assets(outputs).payments == [Payment(amount=10, output=0, input=0)]
