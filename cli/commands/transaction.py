#!/usr/bin/env python3
"""
Transaction Assembly Commands for the Colored Asset Protocol CLI

Commands that select unspent outputs, assemble issuance, transfer and burn
transactions and emit them as unsigned PSBTs.

Unspent outputs are read from a JSON or YAML file::

    utxos:
      - txid: <64 hex chars>
        vout: 0
        value: 10000
        script: <locking script hex>
        used: false
        assets:
          - asset_id: <base58 asset id>
            amount: 100
            aggregation_policy: aggregatable
    finance:        # optional output reserved for fees and dust
      txid: ...
      vout: 1
      value: 50000
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple

import click
import yaml

from assets.constants import AggregationPolicy
from cli.context import CLIContext, handle_cli_error, parse_hex, pass_context
from psbt.assembly import (
    AssemblyConfig,
    AssemblyResult,
    AssetHolding,
    AssetTransactionAssembler,
    AssetUtxo,
    IssuanceParameters,
    IssuanceTarget,
    TransferParameters,
    TransferTarget,
)
from psbt.exceptions import PSBTConstructionError


def load_utxo_file(file_path: str) -> Tuple[List[AssetUtxo], Optional[AssetUtxo]]:
    """
    Load unspent outputs and the optional finance output from a file.

    Returns:
        (unspent outputs, finance output or None)
    """
    path = Path(file_path)
    try:
        with open(path, 'r') as f:
            if path.suffix in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise click.FileError(file_path, f"Invalid UTXO file: {e}")

    if not isinstance(data, dict) or not isinstance(data.get('utxos'), list):
        raise click.FileError(file_path, "UTXO file must contain a 'utxos' list")

    utxos = [_parse_utxo(entry, file_path) for entry in data['utxos']]
    finance = _parse_utxo(data['finance'], file_path) if data.get('finance') else None
    return utxos, finance


def _parse_utxo(entry: Dict[str, Any], file_path: str) -> AssetUtxo:
    try:
        return AssetUtxo(
            txid=entry['txid'],
            vout=int(entry['vout']),
            value=int(entry['value']),
            script=bytes.fromhex(entry.get('script', '')),
            assets=[
                AssetHolding(
                    asset_id=holding['asset_id'],
                    amount=int(holding['amount']),
                    aggregation_policy=AggregationPolicy(
                        holding.get('aggregation_policy', AggregationPolicy.AGGREGATABLE.value)
                    ),
                )
                for holding in entry.get('assets', [])
            ],
            used=bool(entry.get('used', False)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise click.FileError(file_path, f"Invalid UTXO entry {entry!r}: {e}")


def parse_target(value: str) -> TransferTarget:
    """Parse an ``ASSET_ID:SCRIPT:AMOUNT`` option."""
    parts = value.split(':')
    if len(parts) != 3 or not parts[2].isdigit():
        raise click.BadParameter(f"Target must be ASSET_ID:SCRIPT:AMOUNT, got {value}")
    asset_id, script, amount = parts
    return TransferTarget(asset_id, int(amount), parse_hex(script, 'target script'))


def parse_burn(value: str) -> TransferTarget:
    """Parse an ``ASSET_ID:AMOUNT`` burn option."""
    asset_id, _, amount = value.partition(':')
    if not asset_id or not amount.isdigit():
        raise click.BadParameter(f"Burn must be ASSET_ID:AMOUNT, got {value}")
    return TransferTarget(asset_id, int(amount), burn=True)


def parse_destination(value: str) -> IssuanceTarget:
    """Parse a ``SCRIPT:AMOUNT`` issuance destination."""
    script, _, amount = value.partition(':')
    if not script or not amount.isdigit():
        raise click.BadParameter(f"Destination must be SCRIPT:AMOUNT, got {value}")
    return IssuanceTarget(parse_hex(script, 'destination script'), int(amount))


def transaction_options(func):
    """Options shared by the assembly commands."""
    options = [
        click.option('--utxos', 'utxo_file', required=True, type=click.Path(exists=True, dir_okay=False),
                     help='Unspent outputs (JSON or YAML)'),
        click.option('--change', 'change_script', required=True, help='Change script (hex)'),
        click.option('--torrent-hash', help='20-byte torrent hash (hex)'),
        click.option('--sha2', help='32-byte sha2 hash (hex)'),
        click.option('--no-rules', is_flag=True, help='Record carries no rules'),
        click.option('--output-file', type=click.Path(dir_okay=False), help='Save PSBT to file'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _assembler(ctx: CLIContext) -> AssetTransactionAssembler:
    return AssetTransactionAssembler(AssemblyConfig.from_config(ctx.config))


def _emit(ctx: CLIContext, result: AssemblyResult, output_file: Optional[str]):
    issues = result.builder.validate_structure()
    if issues:
        raise PSBTConstructionError("; ".join(issues))

    data = result.to_dict()
    data['psbt'] = result.builder.to_base64()

    if output_file:
        _save_psbt_file(data, output_file)
        ctx.logger.info(f"PSBT saved to {output_file}")

    ctx.output(data)


def _save_psbt_file(data: Dict[str, Any], output_file: str):
    """Save PSBT data to file."""
    psbt_output = {
        "txid": data['txid'],
        "psbt_base64": data['psbt'],
        "fee": data['fee'],
        "created_at": datetime.utcnow().isoformat() + "Z"
    }

    with open(output_file, 'w') as f:
        json.dump(psbt_output, f, indent=2)


@click.command('issue')
@click.option('--amount', type=int, required=True, help='Issued amount')
@click.option('--to', 'destinations', multiple=True, help='Destination as SCRIPT:AMOUNT (repeatable)')
@click.option('--divisibility', type=click.IntRange(0, 7), default=0, show_default=True)
@click.option('--unlocked', is_flag=True, help='Allow reissuance (asset is locked by default)')
@click.option('--policy', type=click.Choice([policy.value for policy in AggregationPolicy]),
              default=AggregationPolicy.AGGREGATABLE.value, show_default=True,
              help='Aggregation policy')
@transaction_options
@pass_context
@handle_cli_error
def issue(ctx: CLIContext, amount: int, destinations: Tuple[str, ...], divisibility: int, unlocked: bool,
          policy: str, utxo_file: str, change_script: str, torrent_hash: Optional[str], sha2: Optional[str],
          no_rules: bool, output_file: Optional[str]):
    """
    Assemble an issuance transaction.

    Examples:
        cap issue --utxos wallet.json --change <script> --amount 1000 --to <script>:400
    """
    if amount <= 0:
        raise click.BadParameter("Amount must be positive")

    utxos, finance = load_utxo_file(utxo_file)
    params = IssuanceParameters(
        amount=amount,
        destinations=[parse_destination(item) for item in destinations],
        utxos=utxos,
        change_script=parse_hex(change_script, 'change script'),
        divisibility=divisibility,
        lock_status=not unlocked,
        aggregation_policy=AggregationPolicy(policy),
        torrent_hash=parse_hex(torrent_hash, 'torrent hash', 20),
        sha2=parse_hex(sha2, 'sha2', 32),
        no_rules=no_rules,
        finance_utxo=finance,
    )

    ctx.logger.info(f"Assembling issuance of {amount} units")
    _emit(ctx, _assembler(ctx).build_issuance(params), output_file)


@click.command('transfer')
@click.option('--to', 'targets', multiple=True, required=True,
              help='Target as ASSET_ID:SCRIPT:AMOUNT (repeatable)')
@transaction_options
@pass_context
@handle_cli_error
def transfer(ctx: CLIContext, targets: Tuple[str, ...], utxo_file: str, change_script: str,
             torrent_hash: Optional[str], sha2: Optional[str], no_rules: bool, output_file: Optional[str]):
    """
    Assemble a transfer transaction.

    Examples:
        cap transfer --utxos wallet.json --change <script> --to <asset id>:<script>:50
    """
    utxos, finance = load_utxo_file(utxo_file)
    params = TransferParameters(
        targets=[parse_target(item) for item in targets],
        utxos=utxos,
        change_script=parse_hex(change_script, 'change script'),
        torrent_hash=parse_hex(torrent_hash, 'torrent hash', 20),
        sha2=parse_hex(sha2, 'sha2', 32),
        no_rules=no_rules,
        finance_utxo=finance,
    )

    ctx.logger.info(f"Assembling transfer to {len(params.targets)} targets")
    _emit(ctx, _assembler(ctx).build_transfer(params), output_file)


@click.command('burn')
@click.option('--burn', 'burns', multiple=True, required=True, help='Burn as ASSET_ID:AMOUNT (repeatable)')
@click.option('--to', 'targets', multiple=True, help='Also transfer, as ASSET_ID:SCRIPT:AMOUNT (repeatable)')
@transaction_options
@pass_context
@handle_cli_error
def burn(ctx: CLIContext, burns: Tuple[str, ...], targets: Tuple[str, ...], utxo_file: str, change_script: str,
         torrent_hash: Optional[str], sha2: Optional[str], no_rules: bool, output_file: Optional[str]):
    """
    Assemble a burn transaction, optionally transferring units as well.

    Examples:
        cap burn --utxos wallet.json --change <script> --burn <asset id>:10
    """
    utxos, finance = load_utxo_file(utxo_file)
    params = TransferParameters(
        targets=[parse_burn(item) for item in burns] + [parse_target(item) for item in targets],
        utxos=utxos,
        change_script=parse_hex(change_script, 'change script'),
        torrent_hash=parse_hex(torrent_hash, 'torrent hash', 20),
        sha2=parse_hex(sha2, 'sha2', 32),
        no_rules=no_rules,
        finance_utxo=finance,
    )

    ctx.logger.info(f"Assembling burn of {len(burns)} targets")
    _emit(ctx, _assembler(ctx).build_burn(params), output_file)


# Register commands with main CLI
def register_commands(cli_app):
    """Register transaction commands with the main CLI application."""
    cli_app.add_command(issue)
    cli_app.add_command(transfer)
    cli_app.add_command(burn)
