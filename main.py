#!/usr/bin/env python3
"""
StakeBot - Validator Stake Rebalancing
Main CLI entry point
"""

import sys
from pathlib import Path

ROOT_DIR = Path(__file__).parent
sys.path.insert(0, str(ROOT_DIR))

import click
from rich.console import Console
from rich.table import Table

from stakebot import __version__
from stakebot.config import load_config
from stakebot.errors import StakeBotError
from stakebot.ledger.types import from_base_units
from stakebot.runner import build_client, build_context, classify_epoch, classify_previous_epoch, run
from stakebot.utils import get_logger, setup_logging_from_config

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option('--config', 'config_path', default='config/config.yaml', show_default=True,
              type=click.Path(dir_okay=False), help='Path to the YAML configuration')
@click.pass_context
def cli(ctx, config_path):
    """
    StakeBot - Validator Stake Rebalancing

    Classifies validators by block production once per epoch and moves
    stake towards quality producers.

    \b
    Quick start:
        stakebot status            # Check configuration and ledger health
        stakebot classify          # Classify the previous epoch
        stakebot run               # Dry run (default)
        stakebot run --confirm     # Submit operations to the ledger
    """
    if ctx.obj is None:
        ctx.obj = {}

    try:
        ctx.obj['config'] = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Failed to load configuration:[/red] {e}")
        sys.exit(1)

    config = ctx.obj['config']
    try:
        setup_logging_from_config(config._raw_config)
    except ValueError as e:
        console.print(f"[red]Invalid logging configuration:[/red] {e}")
        sys.exit(1)

    ctx.obj['logger'] = get_logger('stakebot.cli')


# ==============================================================================
# STATUS
# ==============================================================================

@cli.command()
@click.pass_context
def status(ctx):
    """Show configuration and ledger health"""
    config = ctx.obj['config']

    console.print(f"\n[bold cyan]StakeBot v{__version__}[/bold cyan]\n")
    console.print(f"Cluster: {config.get('cluster.name')}")
    console.print(f"RPC: {config.get('cluster.json_rpc_url')}")
    console.print(f"Backend: {config.get('allocation.backend')}")
    console.print(f"Dry run: {config.get('dry_run')}\n")

    client = build_client(config._raw_config)
    try:
        client.get_health()
        epoch_info = client.get_epoch_info()
    except StakeBotError as e:
        console.print(f"Ledger: [red]{e}[/red]")
        sys.exit(1)

    console.print("Ledger: [green]healthy[/green]")
    console.print(
        f"Epoch: {epoch_info.epoch} "
        f"({epoch_info.slot_index}/{epoch_info.slots_in_epoch} slots, "
        f"absolute slot {epoch_info.absolute_slot})"
    )


# ==============================================================================
# CLASSIFY
# ==============================================================================

@cli.command()
@click.option('--epoch', type=int, default=None, help='Epoch to classify (default: previous epoch)')
@click.option('--verbose', '-v', is_flag=True, help='List every validator')
@click.pass_context
def classify(ctx, epoch, verbose):
    """Classify block producers of an epoch"""
    logger = ctx.obj['logger']
    config = ctx.obj['config']._raw_config

    client = build_client(config)
    cache_path = Path(config['cache']['path']).expanduser()

    try:
        if epoch is None:
            epoch, classification = classify_previous_epoch(config, client, cache_path)
        else:
            classification = classify_epoch(config, client, cache_path, epoch)
    except StakeBotError as e:
        logger.error(f"Classification failed: {e}")
        console.print(f"[red]Classification failed:[/red] {e}")
        sys.exit(1)

    console.print(f"\n[bold]Epoch {epoch}[/bold]")
    console.print(f"Cluster average skip rate: {classification.cluster_average_skip_rate}%")
    console.print(f"Quality producers: [green]{len(classification.quality)}[/green]")
    console.print(f"Poor producers: [red]{len(classification.poor)}[/red]")
    console.print(
        f"Poor percentage: {classification.poor_percentage}% "
        f"(too many: {classification.too_many_poor})\n"
    )

    if verbose:
        table = Table(title=f"Block Producers (epoch {epoch})")
        table.add_column("Identity", style="cyan")
        table.add_column("Slots")
        table.add_column("Blocks")
        table.add_column("Skip Rate")
        table.add_column("Class")

        for identity, stats in sorted(classification.stats.items(), key=lambda kv: -kv[1].skip_rate):
            quality = identity in classification.quality
            table.add_row(
                str(identity),
                str(stats.slots),
                str(stats.blocks),
                f"{stats.skip_rate}%",
                "[green]quality[/green]" if quality else "[red]poor[/red]",
            )

        console.print(table)


# ==============================================================================
# RUN
# ==============================================================================

@cli.command(name='run')
@click.option('--confirm', is_flag=True, help='Submit operations even if config sets dry_run')
@click.pass_context
def run_command(ctx, confirm):
    """Run one rebalancing pass"""
    logger = ctx.obj['logger']
    config = ctx.obj['config']._raw_config

    dry_run = False if confirm else bool(config['dry_run'])
    if dry_run:
        console.print("[yellow]DRY RUN: no operations will be submitted[/yellow]")
    else:
        console.print("[bold red]LIVE: operations will be submitted to the ledger[/bold red]")

    try:
        context = build_context(config, dry_run=dry_run)
        result = run(context)
    except (StakeBotError, ValueError) as e:
        logger.error(f"Run failed: {e}")
        console.print(f"[red]Run failed:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"Decisions (epoch {result.epoch})")
    table.add_column("Identity", style="cyan")
    table.add_column("State")
    table.add_column("Memo")
    for stake in result.decisions.desired:
        table.add_row(str(stake.identity), stake.stake_state.name, stake.memo)
    console.print(table)

    if result.report.outcomes:
        table = Table(title="Operations")
        table.add_column("Kind")
        table.add_column("Identity", style="cyan")
        table.add_column("Amount")
        table.add_column("Status")
        for outcome in result.report.outcomes:
            operation = outcome.operation
            table.add_row(
                operation.kind.value,
                str(operation.identity),
                f"{from_base_units(operation.amount):.4f}",
                outcome.status.value,
            )
        console.print(table)

    if not result.ok:
        console.print("[red]One or more operations failed to execute[/red]")
        sys.exit(1)

    console.print("[green]Run complete[/green]")


# ==============================================================================
# MAIN ENTRY POINT
# ==============================================================================

if __name__ == "__main__":
    cli(obj={})
