"""
Colored Asset Protocol - Transaction Assembly

This module maps a requested asset movement onto asset-bearing unspent
outputs and assembles the resulting transaction: coin selection, allocation
of input units to destinations, fee funding, the OP_RETURN asset record,
carriage outputs for hashes that did not fit, and change.

Output order of an assembled transaction::

    [carriage outputs] [destination outputs] [OP_RETURN] [change outputs]

Units not claimed by any payment (including asset change) go to the last
output, so change is always placed last.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from assets.asset_id import AssetIdGenerator, IssuanceInput
from assets.constants import DEFAULT_VERSION, MAX_DATA_BYTES, AggregationPolicy, AssetFamily
from assets.exceptions import (
    AlreadySpentOutputError,
    FieldValidationError,
    InsufficientAssetFundsError,
    InsufficientFundsError,
    LeftoverPlacementError,
)
from assets.payments import BURN_OUTPUT, MAX_OUTPUT, Payment
from assets.record import Asset

from .builder import AssetTransactionBuilder, serialize_witness_utxo
from .outputs.carriage import create_carriage_scripts
from .outputs.op_return import AssetOpReturn, create_asset_op_return


logger = logging.getLogger(__name__)

# Assembly constants
MIN_DUST_VALUE = 546
METADATA_SURCHARGE = 700
DEFAULT_FEE = 1000

BURN_ADDRESS = "burn"


def needs_range(output: int, family: AssetFamily) -> bool:
    """Whether a payment to ``output`` must use the two-byte range form."""
    if output > MAX_OUTPUT:
        return True
    # Burn records reserve the short form of output 31
    return family == AssetFamily.BURN and output == BURN_OUTPUT


@dataclass
class AssetHolding:
    """Units of one asset held by an unspent output."""
    asset_id: str
    amount: int
    aggregation_policy: AggregationPolicy = AggregationPolicy.AGGREGATABLE


@dataclass
class AssetUtxo:
    """An unspent output, optionally carrying asset units."""
    txid: str
    vout: int
    value: int
    script: bytes = b''
    assets: List[AssetHolding] = field(default_factory=list)
    used: bool = False

    @property
    def outpoint(self) -> Tuple[str, int]:
        return self.txid, self.vout

    @property
    def is_plain(self) -> bool:
        return not self.assets

    def holding(self, asset_id: str) -> int:
        return sum(item.amount for item in self.assets if item.asset_id == asset_id)


@dataclass
class TransferTarget:
    """Move ``amount`` units of ``asset_id`` to ``script`` (or burn them)."""
    asset_id: str
    amount: int
    script: Optional[bytes] = None
    burn: bool = False

    @property
    def address(self) -> str:
        return BURN_ADDRESS if self.burn else self.script.hex()


@dataclass
class IssuanceTarget:
    script: bytes
    amount: int


@dataclass
class TransferParameters:
    """Parameters for a transfer or burn transaction."""
    targets: List[TransferTarget]
    utxos: List[AssetUtxo]
    change_script: bytes
    torrent_hash: Optional[bytes] = None
    sha2: Optional[bytes] = None
    no_rules: bool = False
    finance_utxo: Optional[AssetUtxo] = None


@dataclass
class IssuanceParameters:
    """Parameters for an issuance transaction."""
    amount: int
    destinations: List[IssuanceTarget]
    utxos: List[AssetUtxo]
    change_script: bytes
    divisibility: int = 0
    lock_status: bool = True
    aggregation_policy: AggregationPolicy = AggregationPolicy.AGGREGATABLE
    torrent_hash: Optional[bytes] = None
    sha2: Optional[bytes] = None
    no_rules: bool = False
    finance_utxo: Optional[AssetUtxo] = None


@dataclass
class AssemblyConfig:
    """Fee, dust and encoding settings of the assembler."""
    min_dust_value: int = MIN_DUST_VALUE
    fee: int = DEFAULT_FEE
    metadata_surcharge: int = METADATA_SURCHARGE
    max_bytes: int = MAX_DATA_BYTES
    version: int = DEFAULT_VERSION
    split_change: bool = False
    carrier_pubkey: Optional[bytes] = None

    @classmethod
    def from_config(cls, manager: Any) -> "AssemblyConfig":
        """Build from a ConfigurationManager (anything with a dotted ``get``)."""
        carrier = manager.get('assembly.carrier_pubkey')
        return cls(
            min_dust_value=manager.get('assembly.min_dust_value', MIN_DUST_VALUE),
            fee=manager.get('assembly.fee', DEFAULT_FEE),
            metadata_surcharge=manager.get('assembly.metadata_surcharge', METADATA_SURCHARGE),
            max_bytes=manager.get('protocol.max_bytes', MAX_DATA_BYTES),
            version=manager.get('protocol.version', DEFAULT_VERSION),
            split_change=bool(manager.get('assembly.split_change', False)),
            carrier_pubkey=bytes.fromhex(carrier) if carrier else None,
        )


@dataclass
class InputAllocation:
    """Units of one asset taken from one input."""
    input_index: int
    amount: int
    sequence: int


@dataclass
class LedgerEntry:
    """Allocation state of one asset being moved."""
    asset_id: str
    need: int
    remaining: int
    destinations: List[Tuple[str, int]] = field(default_factory=list)
    inputs: List[InputAllocation] = field(default_factory=list)
    policy: AggregationPolicy = AggregationPolicy.AGGREGATABLE
    change: int = 0
    done: bool = False


class AssetLedger:
    """
    Accumulator for coin selection.

    Tracks, per asset, the need still open, where the units go and which
    inputs they come from, plus the outputs selected so far.
    """

    def __init__(self, targets: List[TransferTarget]):
        self.entries: Dict[str, LedgerEntry] = {}
        self.selected: List[AssetUtxo] = []
        self._sequence = 0

        for target in targets:
            if isinstance(target.amount, bool) or not isinstance(target.amount, int) or target.amount <= 0:
                raise FieldValidationError(f"Target amount must be a positive integer: {target.amount!r}")
            if not target.burn and not target.script:
                raise FieldValidationError(f"Target for {target.asset_id} needs a script or the burn flag")
            entry = self.entries.get(target.asset_id)
            if entry is None:
                entry = LedgerEntry(asset_id=target.asset_id, need=0, remaining=0)
                self.entries[target.asset_id] = entry
            entry.need += target.amount
            entry.remaining += target.amount
            entry.destinations.append((target.address, target.amount))

    def is_selected(self, utxo: AssetUtxo) -> bool:
        return any(item.outpoint == utxo.outpoint for item in self.selected)

    def candidates(self, pool: List[AssetUtxo]) -> List[AssetUtxo]:
        return [utxo for utxo in pool if not self.is_selected(utxo)]

    def open_entries(self) -> List[LedgerEntry]:
        return [entry for entry in self.entries.values() if not entry.done]

    def allocate(self, utxo: AssetUtxo, input_index: int) -> None:
        """Allocate the holdings of a newly selected output against the open needs."""
        previous: Optional[InputAllocation] = None
        previous_asset: Optional[str] = None

        for holding in utxo.assets:
            entry = self.entries.get(holding.asset_id)
            if entry is None or entry.done or holding.amount <= 0:
                continue
            entry.policy = holding.aggregation_policy

            if holding.amount >= entry.remaining:
                amount = entry.remaining
                entry.change = holding.amount - entry.remaining
                entry.remaining = 0
                entry.done = True
            else:
                amount = holding.amount
                entry.remaining -= holding.amount

            if (previous is not None and previous_asset == holding.asset_id
                    and entry.policy == AggregationPolicy.AGGREGATABLE):
                previous.amount += amount
            else:
                previous = InputAllocation(input_index, amount, self._sequence)
                self._sequence += 1
                entry.inputs.append(previous)
            previous_asset = holding.asset_id

    @property
    def has_asset_change(self) -> bool:
        return any(entry.change > 0 for entry in self.entries.values())


@dataclass
class AssemblyResult:
    """An assembled transaction and how it was put together."""
    builder: AssetTransactionBuilder
    asset: Asset
    record: bytes
    op_return_index: int
    carriage_outputs: int
    change_outputs: int
    fee: int
    asset_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'txid': self.builder.get_transaction_id(),
            'asset_id': self.asset_id,
            'record': self.record.hex(),
            'inputs': len(self.builder.inputs),
            'outputs': len(self.builder.outputs),
            'op_return_index': self.op_return_index,
            'carriage_outputs': self.carriage_outputs,
            'change_outputs': self.change_outputs,
            'fee': self.fee,
        }


class AssetTransactionAssembler:
    """
    Assembles issuance, transfer and burn transactions.

    Each build call works on its own builder and ledger; the caller's output
    pool is only read.
    """

    def __init__(self, config: Optional[AssemblyConfig] = None):
        self.config = config or AssemblyConfig()
        self.logger = logging.getLogger(__name__)

    # Coin selection

    def score_candidate(self, utxo: AssetUtxo, asset_id: str, ledger: AssetLedger) -> float:
        """
        Score a candidate holding enough of ``asset_id`` on its own.

        Exact matches beat larger holdings; holdings of the other assets being
        moved add a smaller bonus.
        """
        entry = ledger.entries[asset_id]
        score = 10000.0 if utxo.holding(asset_id) == entry.remaining else 1000.0

        for other in ledger.open_entries():
            if other.asset_id == asset_id:
                continue
            holding = utxo.holding(other.asset_id)
            if holding == other.remaining:
                score += 100
            elif holding > other.remaining:
                score += 10
            else:
                score += holding / other.remaining
        return score

    def select_for_asset(self, asset_id: str, pool: List[AssetUtxo], ledger: AssetLedger) -> List[AssetUtxo]:
        """
        Pick outputs covering the remaining need of one asset.

        Raises:
            InsufficientAssetFundsError: If the pool cannot cover the need
        """
        entry = ledger.entries[asset_id]
        candidates = ledger.candidates(pool)

        best = None
        best_score = None
        for utxo in candidates:
            if utxo.holding(asset_id) < entry.remaining:
                continue
            score = self.score_candidate(utxo, asset_id, ledger)
            if best_score is None or score > best_score:
                best, best_score = utxo, score
        if best is not None:
            self.logger.debug(f"Single output {best.txid}:{best.vout} covers {asset_id} (score {best_score})")
            return [best]

        selected = []
        total = 0
        for utxo in sorted(candidates, key=lambda item: item.holding(asset_id), reverse=True):
            if total >= entry.remaining:
                break
            if utxo.holding(asset_id) <= 0:
                break
            selected.append(utxo)
            total += utxo.holding(asset_id)

        if total < entry.remaining:
            raise InsufficientAssetFundsError(asset_id, entry.remaining, total)
        self.logger.debug(f"Greedy selection of {len(selected)} outputs covers {asset_id}")
        return selected

    def _add_input(self, builder: AssetTransactionBuilder, ledger: AssetLedger, utxo: AssetUtxo) -> int:
        if utxo.used:
            raise AlreadySpentOutputError(utxo.txid, utxo.vout)
        ledger.selected.append(utxo)
        witness_utxo = serialize_witness_utxo(utxo.value, utxo.script) if utxo.script else None
        return builder.add_input(utxo.txid, utxo.vout, value=utxo.value, script=utxo.script,
                                 witness_utxo=witness_utxo)

    def select_asset_inputs(self, builder: AssetTransactionBuilder, ledger: AssetLedger,
                            pool: List[AssetUtxo]) -> None:
        for asset_id, entry in ledger.entries.items():
            if entry.done:
                continue
            for utxo in self.select_for_asset(asset_id, pool, ledger):
                input_index = self._add_input(builder, ledger, utxo)
                ledger.allocate(utxo, input_index)
        self.logger.info(f"Selected {len(ledger.selected)} asset inputs for {len(ledger.entries)} assets")

    # Funding

    def transaction_cost(self, destination_count: int, has_metadata: bool) -> int:
        cost = self.config.fee + self.config.min_dust_value * destination_count + self.config.min_dust_value
        if has_metadata:
            cost += self.config.metadata_surcharge
        return cost

    def ensure_funding(self, builder: AssetTransactionBuilder, ledger: AssetLedger, pool: List[AssetUtxo],
                       required: int, finance_utxo: Optional[AssetUtxo] = None) -> None:
        """
        Add plain inputs (or the finance output) until inputs cover ``required``.

        Raises:
            InsufficientFundsError: If the pool is exhausted first
        """
        available = builder.total_input_value
        if available >= required:
            return

        if finance_utxo is not None and not ledger.is_selected(finance_utxo):
            self._add_input(builder, ledger, finance_utxo)
            available = builder.total_input_value
            self.logger.info(f"Added finance output {finance_utxo.txid}:{finance_utxo.vout}")
        else:
            plain = [utxo for utxo in ledger.candidates(pool) if utxo.is_plain and not utxo.used]
            for utxo in sorted(plain, key=lambda item: item.value, reverse=True):
                if available >= required:
                    break
                self._add_input(builder, ledger, utxo)
                available = builder.total_input_value

        if available < required:
            raise InsufficientFundsError(required, available)
        self.logger.debug(f"Funding covers {required} satoshis with {available}")

    # Payout

    @staticmethod
    def assign_outputs(ledger: AssetLedger) -> Dict[str, int]:
        """Give every distinct destination address a provisional output index."""
        indices: Dict[str, int] = {}
        for entry in ledger.entries.values():
            for address, _ in entry.destinations:
                if address != BURN_ADDRESS and address not in indices:
                    indices[address] = len(indices)
        return indices

    @staticmethod
    def build_payments(ledger: AssetLedger, output_indices: Dict[str, int],
                       family: AssetFamily = AssetFamily.TRANSFER) -> List[Payment]:
        """
        Split each asset's input records across its destinations.

        Payments come out ordered by input, then by allocation order.
        """
        ordered: List[Tuple[int, int, Payment]] = []
        for entry in ledger.entries.values():
            records = [[record, record.amount] for record in entry.inputs]
            cursor = 0
            for address, amount in entry.destinations:
                left = amount
                while left > 0:
                    while records[cursor][1] == 0:
                        cursor += 1
                    record, available = records[cursor]
                    take = min(available, left)
                    records[cursor][1] -= take
                    left -= take
                    if address == BURN_ADDRESS:
                        payment = Payment(amount=take, input=record.input_index, burn=True)
                    else:
                        output = output_indices[address]
                        payment = Payment(amount=take, input=record.input_index, output=output,
                                          range=needs_range(output, family))
                    ordered.append((record.input_index, record.sequence, payment))

        ordered.sort(key=lambda item: (item[0], item[1]))
        return [payment for _, _, payment in ordered]

    # Record placement

    @staticmethod
    def shift_payments(payments: List[Payment], offset: int,
                       family: AssetFamily = AssetFamily.TRANSFER) -> List[Payment]:
        shifted = []
        for payment in payments:
            if payment.burn or payment.output is None:
                shifted.append(payment)
                continue
            output = payment.output + offset
            shifted.append(Payment(amount=payment.amount, output=output, input=payment.input,
                                   range=needs_range(output, family), percent=payment.percent))
        return shifted

    def encode_record(self, asset: Asset) -> Tuple[Asset, AssetOpReturn, int]:
        """
        Encode the record, making room for carriage outputs when hashes overflow.

        Returns:
            (final asset, encoded OP_RETURN, number of carriage outputs)

        Raises:
            LeftoverPlacementError: If the overflow cannot be carried
        """
        encoded = create_asset_op_return(asset, self.config.max_bytes)
        if not encoded.leftover:
            return asset, encoded, 0

        count = len(encoded.leftover)
        if self.config.carrier_pubkey is None:
            raise LeftoverPlacementError(f"{count} hash(es) overflow the record and no carrier pubkey is configured")
        if count > 2:
            raise LeftoverPlacementError(f"Cannot place {count} leftover hashes")

        asset.payments = self.shift_payments(asset.payments, count, asset.family)
        encoded = create_asset_op_return(asset, self.config.max_bytes)
        if len(encoded.leftover) != count:
            raise LeftoverPlacementError(
                f"Shifting outputs changed the leftover count from {count} to {len(encoded.leftover)}"
            )
        self.logger.warning(f"{count} hash(es) placed in carriage outputs")
        return asset, encoded, count

    def place_outputs(self, builder: AssetTransactionBuilder, output_scripts: List[bytes],
                      encoded: AssetOpReturn) -> int:
        """Add carriage, destination and OP_RETURN outputs; returns the OP_RETURN index."""
        if encoded.leftover:
            scripts = create_carriage_scripts(self.config.carrier_pubkey, encoded.leftover)
            for script, carried in zip(scripts, encoded.leftover):
                index = builder.add_value_output(script, self.config.min_dust_value)
                builder.add_output_proprietary(index, AssetTransactionBuilder.CARRIED_HASH_KEY, carried)
        for script in output_scripts:
            builder.add_value_output(script, self.config.min_dust_value)
        op_return_index = builder.add_data_output(encoded.data)
        builder.add_global_proprietary(AssetTransactionBuilder.ASSET_RECORD_KEY, encoded.data)
        return op_return_index

    # Change

    def add_change(self, builder: AssetTransactionBuilder, ledger: AssetLedger, pool: List[AssetUtxo],
                   change_script: bytes, finance_utxo: Optional[AssetUtxo], asset_change: bool) -> int:
        """
        Add the change output(s), topping up funding once if needed.

        Returns:
            Number of change outputs added
        """
        required = builder.total_output_value + self.config.fee + self.config.min_dust_value
        if builder.total_input_value < required:
            self.ensure_funding(builder, ledger, pool, required, finance_utxo)

        remainder = builder.total_input_value - builder.total_output_value - self.config.fee
        dust = self.config.min_dust_value

        if self.config.split_change and asset_change and remainder >= 2 * dust:
            builder.add_value_output(change_script, remainder - dust)
            builder.add_value_output(change_script, dust)
            self.logger.info(f"Split change: {remainder - dust} plain, {dust} carrying asset change")
            return 2

        builder.add_value_output(change_script, remainder)
        self.logger.info(f"Change output of {remainder} satoshis")
        return 1

    # Builds

    def _build_movement(self, params: TransferParameters, family: AssetFamily) -> AssemblyResult:
        builder = AssetTransactionBuilder()
        ledger = AssetLedger(params.targets)
        pool = list(params.utxos)

        self.select_asset_inputs(builder, ledger, pool)

        output_indices = self.assign_outputs(ledger)
        has_metadata = bool(params.torrent_hash or params.sha2)
        cost = self.transaction_cost(len(output_indices), has_metadata)
        self.ensure_funding(builder, ledger, pool, cost, params.finance_utxo)

        payments = self.build_payments(ledger, output_indices, family)
        asset = Asset(
            family=family,
            version=self.config.version,
            payments=payments,
            torrent_hash=params.torrent_hash,
            sha2=params.sha2,
            no_rules=params.no_rules,
        )
        asset, encoded, carriage = self.encode_record(asset)

        scripts = [bytes.fromhex(address) for address in output_indices]
        op_return_index = self.place_outputs(builder, scripts, encoded)
        change_outputs = self.add_change(builder, ledger, pool, params.change_script,
                                         params.finance_utxo, ledger.has_asset_change)

        self.logger.info(
            f"Assembled {family.value}: {len(builder.inputs)} inputs, {len(builder.outputs)} outputs"
        )
        return AssemblyResult(
            builder=builder,
            asset=asset,
            record=encoded.data,
            op_return_index=op_return_index,
            carriage_outputs=carriage,
            change_outputs=change_outputs,
            fee=builder.get_fee(),
        )

    def build_transfer(self, params: TransferParameters) -> AssemblyResult:
        """
        Assemble a transfer transaction.

        Args:
            params: Targets, output pool, change script and optional metadata

        Returns:
            AssemblyResult with the filled builder and the encoded record

        Raises:
            InsufficientAssetFundsError: If an asset cannot be covered
            InsufficientFundsError: If plain outputs cannot cover fees and dust
            AlreadySpentOutputError: If a chosen output is marked used
            LeftoverPlacementError: If overflowing hashes cannot be carried
        """
        if any(target.burn for target in params.targets):
            raise FieldValidationError("Transfers cannot burn, use build_burn")
        return self._build_movement(params, AssetFamily.TRANSFER)

    def build_burn(self, params: TransferParameters) -> AssemblyResult:
        """Assemble a burn transaction; targets may mix burns and transfers."""
        return self._build_movement(params, AssetFamily.BURN)

    def build_issuance(self, params: IssuanceParameters) -> AssemblyResult:
        """
        Assemble an issuance transaction.

        The asset id is derived from the first funding input; every
        destination gets a dust output paid from input 0, and unassigned
        units go to the change output.
        """
        distributed = sum(target.amount for target in params.destinations)
        if distributed > params.amount:
            raise FieldValidationError(f"Destinations receive {distributed} of {params.amount} issued units")

        builder = AssetTransactionBuilder()
        ledger = AssetLedger([])
        pool = list(params.utxos)

        has_metadata = bool(params.torrent_hash or params.sha2)
        cost = self.transaction_cost(len(params.destinations), has_metadata)
        self.ensure_funding(builder, ledger, pool, cost, params.finance_utxo)

        first = builder.inputs[0]
        asset_id = AssetIdGenerator().generate_id(
            IssuanceInput(first.prev_txid, first.output_n, previous_output_script=first.script or None),
            params.lock_status,
            params.aggregation_policy,
            params.divisibility,
        )

        payments = [
            Payment(amount=target.amount, input=0, output=index, range=needs_range(index, AssetFamily.ISSUANCE))
            for index, target in enumerate(params.destinations)
        ]
        asset = Asset.issuance(
            amount=params.amount,
            payments=payments,
            divisibility=params.divisibility,
            lock_status=params.lock_status,
            aggregation_policy=params.aggregation_policy,
            version=self.config.version,
            torrent_hash=params.torrent_hash,
            sha2=params.sha2,
            no_rules=params.no_rules,
            asset_id=asset_id,
        )
        asset, encoded, carriage = self.encode_record(asset)

        op_return_index = self.place_outputs(builder, [target.script for target in params.destinations], encoded)
        change_outputs = self.add_change(builder, ledger, pool, params.change_script,
                                         params.finance_utxo, distributed < params.amount)

        self.logger.info(f"Assembled issuance of {params.amount} units of {asset_id}")
        return AssemblyResult(
            builder=builder,
            asset=asset,
            record=encoded.data,
            op_return_index=op_return_index,
            carriage_outputs=carriage,
            change_outputs=change_outputs,
            fee=builder.get_fee(),
            asset_id=asset_id,
        )
