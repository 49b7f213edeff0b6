#!/usr/bin/env python3
"""
Colored Asset Protocol - Command Line Interface

Decode asset records, encode issuance, transfer and burn records, derive
or inspect asset identifiers, and assemble asset transactions as PSBTs.
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List, Tuple

import click

from assets.asset import decode_asset, encode_asset
from assets.asset_id import (
    AssetIdGenerator,
    IssuanceInput,
    aggregation_policy_of,
    decode_asset_id,
    is_locked_asset_id,
    validate_asset_id,
)
from assets.constants import AggregationPolicy, AssetFamily
from assets.payments import Payment
from assets.record import Asset
from cli.commands import transaction
from cli.context import CLIContext, handle_cli_error, parse_hex, pass_context
from psbt.assembly import needs_range
from psbt.utils import extract_op_return_data, parse_outpoint


def parse_payment(value: str, family: AssetFamily) -> Payment:
    """
    Parse an ``INPUT:OUTPUT:AMOUNT`` payment option.

    ``OUTPUT`` may be ``burn`` for burn records.
    """
    parts = value.split(':')
    if len(parts) != 3:
        raise click.BadParameter(f"Payment must be INPUT:OUTPUT:AMOUNT, got {value}")
    input_text, output_text, amount_text = parts
    if not input_text.isdigit() or not amount_text.isdigit():
        raise click.BadParameter(f"Payment input and amount must be non-negative integers: {value}")

    if output_text == 'burn':
        if family != AssetFamily.BURN:
            raise click.BadParameter("Only burn records can burn units")
        return Payment(amount=int(amount_text), input=int(input_text), burn=True)

    if not output_text.isdigit():
        raise click.BadParameter(f"Payment output must be an integer or 'burn': {value}")
    output = int(output_text)
    return Payment(amount=int(amount_text), input=int(input_text), output=output,
                   range=needs_range(output, family))


def record_options(func):
    """Options shared by the encode commands."""
    options = [
        click.option('--payment', '-p', 'payments', multiple=True,
                     help='Payment as INPUT:OUTPUT:AMOUNT (repeatable)'),
        click.option('--torrent-hash', help='20-byte torrent hash (hex)'),
        click.option('--sha2', help='32-byte sha2 hash (hex)'),
        click.option('--no-rules', is_flag=True, help='Record carries no rules'),
        click.option('--max-bytes', type=int, help='Byte budget (default from configuration)'),
        click.option('--record-version', type=int, help='Record version byte (default from configuration)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def encoded_output(asset: Asset, record) -> Dict[str, Any]:
    return {
        'type': asset.family.value,
        'opcode': f"0x{record.opcode:02x}",
        'size': len(record.data),
        'hex': record.data.hex(),
        'leftover': [item.hex() for item in record.leftover],
    }


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True, dir_okay=False),
              help='Path to configuration file (YAML or JSON)')
@click.option('--profile', help='Configuration profile')
@click.option('--output-format', '-o',
              type=click.Choice(['table', 'json', 'yaml']),
              help='Output format')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.version_option(package_name='colored-asset-protocol', message='%(prog)s v%(version)s')
@pass_context
def cli(ctx: CLIContext, config_file: Optional[str], profile: Optional[str],
        output_format: Optional[str], verbose: int):
    """
    Colored Asset Protocol command line interface.

    Examples:
        cap decode 44410315...
        cap encode-issuance --amount 1000 -p 0:0:1000
        cap encode-transfer -p 0:1:50 -p 1:2:25
        cap asset-id --outpoint <txid>:0 --divisibility 2
        cap transfer --utxos wallet.json --change <script> --to <asset id>:<script>:50
    """
    ctx.config_file = config_file
    ctx.profile = profile

    ctx.load_config()
    ctx.verbose = verbose or ctx.get_config('cli.verbose', 0)
    ctx.setup_logging()
    ctx.output_format = output_format or ctx.get_config('cli.output_format', 'table')

    ctx.logger.info(f"Configuration sources: {', '.join(ctx.config.get_sources())}")
    ctx.logger.debug("CLI initialized with context")


@cli.command()
@click.argument('data')
@click.option('--script', 'is_script', is_flag=True, help='DATA is a full OP_RETURN script')
@pass_context
@handle_cli_error
def decode(ctx: CLIContext, data: str, is_script: bool):
    """
    Decode an asset record given as hex.
    """
    raw = parse_hex(data, 'DATA')
    if is_script:
        raw = extract_op_return_data(raw)
        if raw is None:
            raise click.BadParameter("Script is not an OP_RETURN output")

    asset = decode_asset(raw)
    ctx.logger.info(f"Decoded {asset}")
    ctx.output(asset.to_dict())


@cli.command('encode-issuance')
@click.option('--amount', required=True, help='Issued amount')
@click.option('--divisibility', type=click.IntRange(0, 7), default=0, show_default=True)
@click.option('--unlocked', is_flag=True, help='Allow reissuance (asset is locked by default)')
@click.option('--policy', type=click.Choice([policy.value for policy in AggregationPolicy]),
              default=AggregationPolicy.AGGREGATABLE.value, show_default=True,
              help='Aggregation policy')
@record_options
@pass_context
@handle_cli_error
def encode_issuance(ctx: CLIContext, amount: str, divisibility: int, unlocked: bool, policy: str,
                    payments: Tuple[str, ...], torrent_hash: Optional[str], sha2: Optional[str],
                    no_rules: bool, max_bytes: Optional[int], record_version: Optional[int]):
    """
    Encode an issuance record.

    Examples:
        cap encode-issuance --amount 1000000 -p 0:0:400000 -p 0:1:600000
    """
    version = record_version if record_version is not None else ctx.get_config('protocol.version')
    issued = Decimal(amount) if version == 0x01 else int(amount)

    asset = Asset.issuance(
        amount=issued,
        payments=[parse_payment(item, AssetFamily.ISSUANCE) for item in payments],
        divisibility=divisibility,
        lock_status=not unlocked,
        aggregation_policy=AggregationPolicy(policy),
        version=version,
        torrent_hash=parse_hex(torrent_hash, 'torrent hash', 20),
        sha2=parse_hex(sha2, 'sha2', 32),
        no_rules=no_rules,
    )
    record = encode_asset(asset, max_bytes or ctx.get_config('protocol.max_bytes'))
    ctx.output(encoded_output(asset, record))


@cli.command('encode-transfer')
@click.option('--burn', 'is_burn', is_flag=True, help='Encode a burn record')
@record_options
@pass_context
@handle_cli_error
def encode_transfer(ctx: CLIContext, is_burn: bool, payments: Tuple[str, ...], torrent_hash: Optional[str],
                    sha2: Optional[str], no_rules: bool, max_bytes: Optional[int],
                    record_version: Optional[int]):
    """
    Encode a transfer (or, with --burn, a burn) record.

    Examples:
        cap encode-transfer -p 0:0:50 -p 1:1:25
        cap encode-transfer --burn -p 0:burn:10 -p 0:1:90
    """
    family = AssetFamily.BURN if is_burn else AssetFamily.TRANSFER
    if not payments:
        raise click.UsageError("At least one --payment is required")

    version = record_version if record_version is not None else ctx.get_config('protocol.version')
    asset = Asset(
        family=family,
        version=version,
        payments=[parse_payment(item, family) for item in payments],
        torrent_hash=parse_hex(torrent_hash, 'torrent hash', 20),
        sha2=parse_hex(sha2, 'sha2', 32),
        no_rules=no_rules,
    )
    record = encode_asset(asset, max_bytes or ctx.get_config('protocol.max_bytes'))
    ctx.output(encoded_output(asset, record))


@cli.command('asset-id')
@click.option('--outpoint', required=True, help='First issuance input as TXID:VOUT')
@click.option('--script', 'previous_script', help='Previous output script (hex)')
@click.option('--spending-script', help='Spending script of the input (hex)')
@click.option('--unlocked', is_flag=True, help='Derive the id of an unlocked asset')
@click.option('--policy', type=click.Choice([policy.value for policy in AggregationPolicy]),
              default=AggregationPolicy.AGGREGATABLE.value, show_default=True)
@click.option('--divisibility', type=click.IntRange(0, 7), default=0, show_default=True)
@pass_context
@handle_cli_error
def asset_id(ctx: CLIContext, outpoint: str, previous_script: Optional[str], spending_script: Optional[str],
             unlocked: bool, policy: str, divisibility: int):
    """
    Derive the identifier of an asset from its first issuance input.
    """
    txid, vout = parse_outpoint(outpoint)
    first_input = IssuanceInput(
        prev_txid=txid,
        output_index=vout,
        script=parse_hex(spending_script, 'spending script') or b'',
        previous_output_script=parse_hex(previous_script, 'script'),
    )
    generated = AssetIdGenerator().generate_id(first_input, not unlocked, AggregationPolicy(policy), divisibility)
    ctx.output({'asset_id': generated})


@cli.command('inspect-id')
@click.argument('identifier')
@pass_context
@handle_cli_error
def inspect_id(ctx: CLIContext, identifier: str):
    """
    Decode an asset identifier into its parts.
    """
    decoded = decode_asset_id(identifier)
    if not validate_asset_id(identifier):
        raise click.BadParameter(f"Unknown padding 0x{decoded.padding:04x} in {identifier}")
    ctx.output({
        'asset_id': identifier,
        'padding': f"0x{decoded.padding:04x}",
        'locked': is_locked_asset_id(identifier),
        'aggregation_policy': aggregation_policy_of(identifier).value,
        'payload_hash': decoded.payload_hash.hex(),
        'divisibility': decoded.divisibility,
    })


# Command registration
transaction.register_commands(cli)


def main(argv: Optional[List[str]] = None):
    cli(args=argv, prog_name='cap')


if __name__ == '__main__':
    main()
