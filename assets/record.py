"""
Colored Asset Protocol - Asset Record

The ``Asset`` aggregate shared by the codecs and the orchestrator. A record is
built either from a caller's issuance/transfer/burn intent or by decoding a
wire byte sequence.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .constants import (
    DEFAULT_VERSION,
    PROTOCOL_ID,
    AggregationPolicy,
    AssetFamily,
    HashField,
)
from .payments import Payment


@dataclass
class Asset:
    """An issuance, transfer or burn record."""
    family: AssetFamily
    protocol: int = PROTOCOL_ID
    version: int = DEFAULT_VERSION
    payments: List[Payment] = field(default_factory=list)
    torrent_hash: Optional[bytes] = None
    sha2: Optional[bytes] = None
    no_rules: bool = False
    # Issuance-only fields
    amount: Optional[Union[int, Decimal]] = None
    divisibility: int = 0
    lock_status: Optional[bool] = None
    aggregation_policy: Optional[AggregationPolicy] = None
    # Set once derived from the issuance's first input
    asset_id: Optional[str] = None
    # Hash fields the opcode says travel outside the record, in carriage order
    external_hashes: List[HashField] = field(default_factory=list)

    @classmethod
    def issuance(
        cls,
        amount: Union[int, Decimal],
        payments: Optional[List[Payment]] = None,
        divisibility: int = 0,
        lock_status: bool = True,
        aggregation_policy: AggregationPolicy = AggregationPolicy.AGGREGATABLE,
        **kwargs
    ) -> "Asset":
        return cls(
            family=AssetFamily.ISSUANCE,
            amount=amount,
            payments=list(payments or []),
            divisibility=divisibility,
            lock_status=lock_status,
            aggregation_policy=aggregation_policy,
            **kwargs
        )

    @classmethod
    def transfer(cls, payments: List[Payment], **kwargs) -> "Asset":
        return cls(family=AssetFamily.TRANSFER, payments=list(payments), **kwargs)

    @classmethod
    def burn(cls, payments: List[Payment], **kwargs) -> "Asset":
        return cls(family=AssetFamily.BURN, payments=list(payments), **kwargs)

    @property
    def is_issuance(self) -> bool:
        return self.family == AssetFamily.ISSUANCE

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for display and JSON output."""
        data: Dict[str, Any] = {
            'type': self.family.value,
            'protocol': self.protocol,
            'version': self.version,
            'payments': [payment.to_dict() for payment in self.payments],
            'no_rules': self.no_rules,
            'torrent_hash': self.torrent_hash.hex() if self.torrent_hash else None,
            'sha2': self.sha2.hex() if self.sha2 else None,
            'external_hashes': [hash_field.value for hash_field in self.external_hashes],
        }
        if self.is_issuance:
            data.update({
                'asset_id': self.asset_id,
                'amount': str(self.amount) if isinstance(self.amount, Decimal) else self.amount,
                'divisibility': self.divisibility,
                'lock_status': self.lock_status,
                'aggregation_policy': (
                    self.aggregation_policy.value if self.aggregation_policy else None
                ),
            })
        return data

    def __str__(self) -> str:
        if self.is_issuance:
            return (
                f"<Asset: asset_id: {self.asset_id}, type: {self.family.value}, "
                f"amount: {self.amount}, protocol: {self.protocol}, version: {self.version}, "
                f"payments: {len(self.payments)}>"
            )
        return (
            f"<Asset: type: {self.family.value}, protocol: {self.protocol}, "
            f"version: {self.version}, payments: {len(self.payments)}>"
        )
