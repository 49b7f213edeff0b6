"""
Colored Asset Protocol - Constants and Enumerations
"""

from enum import Enum


# Protocol constants
PROTOCOL_ID = 0x4441  # 2-byte protocol identifier carried in every record
DEFAULT_VERSION = 0x03
MAX_DATA_BYTES = 80  # Default byte budget (OP_RETURN payload limit)

TORRENT_HASH_SIZE = 20
SHA2_HASH_SIZE = 32

# Header is protocol id (2 bytes) followed by version (1 byte)
HEADER_SIZE = 3
OPCODE_OFFSET = HEADER_SIZE

# Opcode high nibble selects the record family
FAMILY_MASK = 0xf0
ISSUANCE_BASE = 0x00
TRANSFER_BASE = 0x10
BURN_BASE = 0x20


class AssetFamily(Enum):
    """Record families, selected by the opcode's high nibble."""
    ISSUANCE = "issuance"
    TRANSFER = "transfer"
    BURN = "burn"


class AggregationPolicy(Enum):
    """Issuance-time rule for merging same-asset allocations on one input."""
    AGGREGATABLE = "aggregatable"
    HYBRID = "hybrid"
    DISPERSED = "dispersed"

    @property
    def index(self) -> int:
        """Wire index of the policy in the issuance flags byte."""
        return list(AggregationPolicy).index(self)

    @classmethod
    def from_index(cls, index: int) -> "AggregationPolicy":
        policies = list(cls)
        if not 0 <= index < len(policies):
            raise ValueError(f"Unknown aggregation policy index: {index}")
        return policies[index]


class HashField(Enum):
    """Optional content hashes a record may embed or carry externally."""
    TORRENT_HASH = "torrent_hash"
    SHA2 = "sha2"
