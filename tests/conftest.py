"""
Pytest configuration and fixtures for colored asset tests.
"""

import pytest

from assets.constants import AggregationPolicy
from psbt.assembly import AssemblyConfig, AssetHolding, AssetTransactionAssembler, AssetUtxo
from psbt.utils import create_p2pkh_script


# secp256k1 generator point, a valid compressed public key
CARRIER_PUBKEY = bytes.fromhex(
    "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
)

TORRENT_HASH = bytes(range(20))
SHA2_HASH = bytes(range(100, 132))


def make_txid(seed: int) -> str:
    return f"{seed:02x}" * 32


@pytest.fixture
def carrier_pubkey():
    return CARRIER_PUBKEY


@pytest.fixture
def torrent_hash():
    return TORRENT_HASH


@pytest.fixture
def sha2_hash():
    return SHA2_HASH


@pytest.fixture
def scripts():
    """Destination and change scripts."""
    return {
        "alice": create_p2pkh_script(b'\x01' * 20),
        "bob": create_p2pkh_script(b'\x02' * 20),
        "change": create_p2pkh_script(b'\x0c' * 20),
    }


@pytest.fixture
def utxo_factory(scripts):
    """Build unspent outputs with unique txids."""
    counter = {"seed": 0}

    def factory(value=546, assets=None, used=False, policy=AggregationPolicy.AGGREGATABLE):
        counter["seed"] += 1
        holdings = [
            AssetHolding(asset_id=asset_id, amount=amount, aggregation_policy=policy)
            for asset_id, amount in (assets or [])
        ]
        return AssetUtxo(
            txid=make_txid(counter["seed"]),
            vout=0,
            value=value,
            script=scripts["change"],
            assets=holdings,
            used=used,
        )

    return factory


@pytest.fixture
def assembler():
    """Assembler with default fee and dust settings."""
    return AssetTransactionAssembler(AssemblyConfig())


@pytest.fixture
def carrier_assembler():
    """Assembler with a small byte budget and a carrier key for overflowing hashes."""
    return AssetTransactionAssembler(AssemblyConfig(max_bytes=40, carrier_pubkey=CARRIER_PUBKEY))
