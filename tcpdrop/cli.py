#!/usr/bin/env python3
"""
tcpdrop CLI

Command-line front-end for single-file TCP transfers.

Usage:
    tcpdrop receive                     # Listen and receive one file
    tcpdrop send IP PORT FILE           # Send FILE to a listening receiver
    tcpdrop config                      # Show effective configuration
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.logging import RichHandler

from .config import Config, load_config
from .errors import TransferError
from .node import TransferNode
from .progress import TransferCallbacks, TransferResult

console = Console()


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def _progress_bar() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    )


def _bar_callbacks(progress: Progress, task) -> TransferCallbacks:
    """Route transfer callbacks into a rich progress task."""
    def on_progress(fraction: float):
        progress.update(task, completed=fraction * 100)

    def on_status(text: str):
        # Multi-line status (the address banner) is shown in a panel instead
        progress.update(task, description=(text.splitlines() or [''])[0])

    return TransferCallbacks(on_progress=on_progress, on_status=on_status)


def _print_result(result: TransferResult):
    verb = "Received" if result.direction == 'receive' else "Sent"
    console.print(
        f"\n[green]✓ {verb} {format_size(result.bytes_moved)} "
        f"({result.bytes_moved:,} bytes) in {result.chunks} chunks, "
        f"{format_size(result.speed_bytes_per_sec)}/s[/green]"
    )
    if not result.complete:
        console.print(
            f"[yellow]Peer declared {result.total_size:,} bytes; "
            f"{result.bytes_moved:,} arrived[/yellow]"
        )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """tcpdrop - move one file to another host over TCP."""
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--config')
    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Where to write the received file')
@click.option('--bind', help='Address to listen on')
@click.option('--advertise', help='Address to show to the sender')
@click.option('--timeout', type=float, help='Give up if no sender connects in time')
@click.option('--verify-size', is_flag=True, default=None,
              help='Fail if fewer bytes arrive than the sender declared')
@click.pass_context
def receive(ctx, output, bind, advertise, timeout, verify_size):
    """Listen for one sender and receive its file."""
    config: Config = ctx.obj['config']
    if bind:
        config.host = bind
    if advertise:
        config.advertise_host = advertise
    if timeout is not None:
        config.accept_timeout = timeout
    if verify_size:
        config.verify_size = True
    destination = Path(output) if output else config.destination

    async def run() -> Optional[TransferResult]:
        with _progress_bar() as progress:
            task = progress.add_task("Starting listener...", total=100)
            node = TransferNode(config, callbacks=_bar_callbacks(progress, task))

            address, port = await node.start_listening(destination)
            progress.console.print(Panel.fit(
                f"[bold green]Waiting for sender[/bold green]\n\n"
                f"IP: [cyan]{address}[/cyan]\n"
                f"Port: [yellow]{port}[/yellow]\n"
                f"Saving to: [blue]{destination}[/blue]\n\n"
                f"[dim]tcpdrop send {address} {port} FILE[/dim]",
                title="Receiver"
            ))
            return await node.wait()

    try:
        result = asyncio.run(run())
    except TransferError as e:
        console.print(f"\n[red]✗ {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)

    _print_result(result)


@cli.command()
@click.argument('address')
@click.argument('port', type=int)
@click.argument('file_path', type=click.Path())
@click.pass_context
def send(ctx, address, port, file_path):
    """Send FILE_PATH to a receiver listening on ADDRESS:PORT."""
    config: Config = ctx.obj['config']

    async def run() -> TransferResult:
        with _progress_bar() as progress:
            task = progress.add_task(f"Connecting to {address}:{port}...", total=100)
            node = TransferNode(config, callbacks=_bar_callbacks(progress, task))
            return await node.send(address, port, Path(file_path))

    try:
        result = asyncio.run(run())
    except TransferError as e:
        console.print(f"\n[red]✗ {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)

    _print_result(result)


@cli.command('config')
@click.option('--save', 'save_path', type=click.Path(dir_okay=False),
              help='Write the effective configuration to this file')
@click.pass_context
def show_config(ctx, save_path):
    """Show the effective configuration."""
    config: Config = ctx.obj['config']
    if save_path:
        config.save(Path(save_path))
        console.print(f"[green]Saved configuration to {save_path}[/green]")
        return
    click.echo(json.dumps(config.to_dict(), indent=2))


if __name__ == '__main__':
    cli()
