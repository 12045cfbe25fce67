#!/usr/bin/env python3
"""
NFT Machine Minter - Command Line Interface

A CLI for driving a minting machine collection through its lifecycle:
creating the collection, scheduling public and whitelist mint phases,
updating collection metadata and reading back on-chain state.
"""

import functools
import json
import logging
import sys
from typing import Any, List, Optional

import click

from crypto.exceptions import CryptoError
from nft.collections import (
    Allowlist,
    CollectionQuery,
    CollectionSettings,
    MetadataUpdate,
    MintWindow,
)
from nft.coordinator import CollectionCoordinator
from nft.exceptions import GatewayError, MinterError, PersistAfterSuccessError
from registry.storage import StorageError
from . import __version__
from .config import ConfigurationError, ConfigurationManager

DEFAULT_WINDOW_SECONDS = 24 * 60 * 60
DEFAULT_FAUCET_AMOUNT = 100_000_000


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.output_format: str = "table"
        self.verbose: int = 0
        self.config: Optional[ConfigurationManager] = None
        self.logger: logging.Logger = logging.getLogger('nft-minter')
        self._coordinator: Optional[CollectionCoordinator] = None

    def setup_logging(self):
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }

        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)

        root = logging.getLogger()
        root.setLevel(level)
        root.handlers = [handler]

        # Suppress verbose third-party logs unless in debug mode
        if self.verbose < 2:
            logging.getLogger('requests').setLevel(logging.WARNING)
            logging.getLogger('urllib3').setLevel(logging.WARNING)

    def coordinator(self) -> CollectionCoordinator:
        """Build the coordinator from configuration on first use."""
        if self._coordinator is None:
            self._coordinator = build_coordinator(self.config)
        return self._coordinator

    def output(self, data: Any, format_override: Optional[str] = None):
        """Output data in specified format."""
        format_type = format_override or self.output_format

        if format_type == "json":
            click.echo(json.dumps(data, indent=2, default=str))
        else:
            self._output_table(data)

    def _output_table(self, data: Any):
        """Output data in table format."""
        if isinstance(data, dict):
            for key, value in data.items():
                if isinstance(value, dict):
                    value = ", ".join(f"{k}={v}" for k, v in value.items())
                click.echo(f"{key:20} {value}")
        elif isinstance(data, list):
            for item in data:
                click.echo(item)
        else:
            click.echo(str(data))


def build_coordinator(config: ConfigurationManager) -> CollectionCoordinator:
    """Wire the gateway and record store described by the configuration."""
    return CollectionCoordinator(config.gateway(), config.record_store())


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator to handle CLI errors gracefully."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo("\nOperation cancelled by user.", err=True)
            sys.exit(130)
        except PersistAfterSuccessError as e:
            click.echo(f"Error: {e}", err=True)
            click.echo("The collection exists on chain. Save this record manually and do not resubmit:", err=True)
            click.echo(json.dumps(e.record.to_storage(), indent=2), err=True)
            sys.exit(1)
        except (MinterError, ConfigurationError, CryptoError, StorageError) as e:
            ctx = click.get_current_context().find_object(CLIContext)
            message = e.describe() if isinstance(e, GatewayError) else str(e)
            click.echo(f"Error: {message}", err=True)

            if ctx and ctx.verbose >= 2:
                import traceback
                click.echo(traceback.format_exc(), err=True)
            else:
                click.echo("Use -vv for detailed error information.", err=True)

            sys.exit(1)

    return wrapper


def parse_flags(value: str) -> List[bool]:
    """Parse a comma separated list of true/false values."""
    flags = []
    for token in value.split(","):
        token = token.strip().lower()
        if token in ("true", "1", "yes"):
            flags.append(True)
        elif token in ("false", "0", "no"):
            flags.append(False)
        else:
            raise click.BadParameter(f"Not a boolean: {token!r}")
    return flags


def parse_allowlist_entries(entries: List[str]) -> List[tuple]:
    """Parse ADDRESS=ALLOWANCE pairs."""
    pairs = []
    for entry in entries:
        account, separator, allowance = entry.partition("=")
        if not separator or not allowance.strip().isdigit():
            raise click.BadParameter(f"Expected ADDRESS=ALLOWANCE, got {entry!r}")
        pairs.append((account.strip(), int(allowance)))
    return pairs


def build_window(price: int, start: Optional[int], end: Optional[int], duration: int) -> MintWindow:
    """Mint window from CLI options; missing bounds default to now and start + duration."""
    if start is None:
        window = MintWindow.starting_now(duration, price)
        if end is not None:
            window = MintWindow(window.start_time, end, price)
        return window
    return MintWindow(start, end if end is not None else start + duration, price)


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              help='Path to configuration file')
@click.option('--output-format', '-o',
              type=click.Choice(['table', 'json']),
              default='table',
              help='Output format')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.version_option(__version__, prog_name='nft-minter')
@pass_context
def cli(ctx: CLIContext, config_file: Optional[str], output_format: str,
        verbose: int):
    """
    NFT Machine Minter Command Line Interface

    Create a collection on the minting machine, schedule its mint phases and
    read it back. The active collection is kept in a local record file.

    Examples:
        nft-minter create --name "Highland" --symbol HL --uri https://... --max-supply 1000
        nft-minter set-whitelist-mint --price 170000000 --entry 0xa=1 --entry 0xb=5
        nft-minter read
    """
    ctx.config_file = config_file
    ctx.output_format = output_format
    ctx.verbose = verbose

    ctx.setup_logging()

    ctx.config = ConfigurationManager(config_file)

    ctx.logger.debug("CLI initialized with context")


@cli.command()
@click.option('--name', required=True, help='Collection name')
@click.option('--symbol', required=True, help='Collection symbol')
@click.option('--uri', required=True, help='Collection base URI')
@click.option('--max-supply', type=int, required=True, help='Maximum supply (0 for unlimited)')
@click.option('--royalty-bps', type=int, default=0, show_default=True, help='Royalty in basis points')
@click.option('--royalty-config', type=int, default=3, show_default=True, help='Royalty configuration code')
@click.option('--royalty-payee', help='Royalty payee address (default: signer)')
@click.option('--feature-flags', default='false,true,false', show_default=True,
              help='Comma separated machine feature flags')
@click.option('--mutability-flags', default='true,true,true,true,true', show_default=True,
              help='Comma separated mutability flags')
@click.option('--token-base-name', default=None, help='Base name of minted tokens')
@click.option('--token-description', default=None, help='Description of minted tokens')
@click.option('--seed', help='Creation seed (default: current time in ms)')
@click.option('--replace', is_flag=True, help='Replace the collection tracked in this workspace')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@pass_context
@handle_cli_error
def create(ctx: CLIContext, name, symbol, uri, max_supply, royalty_bps, royalty_config,
           royalty_payee, feature_flags, mutability_flags, token_base_name,
           token_description, seed, replace, yes):
    """Create a collection and make it the active collection."""
    coordinator = ctx.coordinator()

    if replace and coordinator.store.exists() and not yes:
        click.confirm(
            f"Replace the collection recorded in {coordinator.store.file_path}? "
            f"The current record is kept as a backup",
            abort=True
        )

    settings = CollectionSettings(
        display_name=name,
        symbol=symbol,
        base_uri=uri,
        royalty_payee=royalty_payee or coordinator.gateway.account_address,
        max_supply=max_supply,
        royalty_bps=royalty_bps,
        royalty_config=royalty_config,
        feature_flags=parse_flags(feature_flags),
        token_base_name=token_base_name,
        token_description=token_description,
        mutability_flags=parse_flags(mutability_flags)
    )

    record = coordinator.create(settings, seed=seed, replace=replace)
    ctx.output(record.to_storage())


@cli.command('set-public-mint')
@click.option('--price', type=int, required=True, help='Mint price in octas')
@click.option('--start', type=int, help='Window start (Unix seconds, default: now)')
@click.option('--end', type=int, help='Window end (Unix seconds)')
@click.option('--duration', type=int, default=DEFAULT_WINDOW_SECONDS, show_default=True,
              help='Window length in seconds when --end is omitted')
@pass_context
@handle_cli_error
def set_public_mint(ctx: CLIContext, price, start, end, duration):
    """Schedule or replace the public mint window."""
    window = build_window(price, start, end, duration)
    ctx.coordinator().configure_public_mint(window)
    ctx.output({"phase": "public", **window.to_dict()})


@cli.command('set-whitelist-mint')
@click.option('--price', type=int, required=True, help='Mint price in octas')
@click.option('--start', type=int, help='Window start (Unix seconds, default: now)')
@click.option('--end', type=int, help='Window end (Unix seconds)')
@click.option('--duration', type=int, default=DEFAULT_WINDOW_SECONDS, show_default=True,
              help='Window length in seconds when --end is omitted')
@click.option('--entry', 'entries', multiple=True, help='ADDRESS=ALLOWANCE (repeatable)')
@click.option('--allowlist-file', type=click.Path(exists=True, dir_okay=False),
              help='CSV file of address,allowance rows')
@pass_context
@handle_cli_error
def set_whitelist_mint(ctx: CLIContext, price, start, end, duration, entries, allowlist_file):
    """Schedule or replace the whitelist mint window."""
    pairs = parse_allowlist_entries(list(entries))
    if allowlist_file:
        pairs.extend(Allowlist.from_csv(allowlist_file).entries)

    window = build_window(price, start, end, duration)
    allowlist = Allowlist(pairs)
    ctx.coordinator().configure_whitelist_mint(window, allowlist)
    ctx.output({"phase": "whitelist", **window.to_dict(), "accounts": len(allowlist)})


@cli.command()
@click.option('--name', required=True, help='New collection name')
@click.option('--uri', required=True, help='New collection URI')
@click.option('--max-supply', type=int, required=True, help='New maximum supply')
@click.option('--royalty-payee', required=True, help='New royalty payee address')
@click.option('--royalty-numerator', type=int, required=True, help='Royalty numerator')
@click.option('--royalty-denominator', type=int, required=True, help='Royalty denominator')
@pass_context
@handle_cli_error
def update(ctx: CLIContext, name, uri, max_supply, royalty_payee, royalty_numerator, royalty_denominator):
    """Update the active collection's on-chain metadata."""
    metadata = MetadataUpdate(
        name=name,
        uri=uri,
        max_supply=max_supply,
        royalty_payee=royalty_payee,
        royalty_numerator=royalty_numerator,
        royalty_denominator=royalty_denominator
    )
    ctx.coordinator().update_metadata(metadata)
    ctx.output({"updated": ctx.coordinator().record.collection_address, "name": name, "uri": uri})


@cli.command()
@click.option('--address', help='Read this collection address instead of the active one')
@pass_context
@handle_cli_error
def read(ctx: CLIContext, address):
    """Read collection state from chain."""
    coordinator = ctx.coordinator()
    if address:
        view = coordinator.gateway.read_resource(CollectionQuery.COLLECTION, address)
    else:
        view = coordinator.read()
    ctx.output(view.to_dict())


@cli.command()
@pass_context
@handle_cli_error
def show(ctx: CLIContext):
    """Show the local collection record."""
    record = ctx.config.record_store().load()
    ctx.output(record.to_storage())


@cli.command()
@click.option('--amount', type=int, default=DEFAULT_FAUCET_AMOUNT, show_default=True,
              help='Amount in octas')
@pass_context
@handle_cli_error
def fund(ctx: CLIContext, amount):
    """Fund the signing account from the network faucet."""
    receipts = ctx.coordinator().gateway.fund_account(amount)
    ctx.output({"account": ctx.coordinator().gateway.account_address,
                "amount": amount,
                "transactions": [receipt.hash for receipt in receipts]})


@cli.group()
@pass_context
def backups(ctx: CLIContext):
    """Inspect and restore replaced collection records."""
    ctx.logger.debug("Backups command group invoked")


@backups.command('list')
@pass_context
@handle_cli_error
def list_backups(ctx: CLIContext):
    """List backup timestamps, newest first."""
    ctx.output(ctx.config.record_store().list_backups())


@backups.command('restore')
@click.argument('timestamp')
@pass_context
@handle_cli_error
def restore_backup(ctx: CLIContext, timestamp):
    """Make a backed up record the active collection again."""
    store = ctx.config.record_store()
    if not store.restore_backup(timestamp):
        raise click.ClickException(f"No backup with timestamp {timestamp}")
    ctx.output(store.load().to_storage())


def main():
    cli()


if __name__ == '__main__':
    main()
