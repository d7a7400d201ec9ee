"""Configuration CLI commands."""

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from loopback_auth.auth.listener import start_listener
from loopback_auth.cli.errors import format_error, is_verbose
from loopback_auth.cli.progress import print_info, print_success
from loopback_auth.config import CONFIG_PATH, get_settings
from loopback_auth.exceptions import AuthFlowError

console = Console()
app = typer.Typer(help="Configuration commands")


@app.command("show")
def show():
    """Show the resolved configuration and callback addresses."""
    settings = get_settings()

    console.print(f"[dim]Config file: {CONFIG_PATH}[/dim]")
    console.print()

    table = Table(title="Callback addresses (tried in order)")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Sign in", style="cyan")
    table.add_column("Sign out", style="cyan")
    for index, pair in enumerate(settings.redirect_addresses, start=1):
        table.add_row(str(index), pair.sign_in, pair.sign_out)
    console.print(table)

    timeout = f"{settings.auth_timeout:g}s" if settings.auth_timeout else "none"
    console.print(f"Auth timeout: [cyan]{timeout}[/cyan]")
    console.print(f"Window: [cyan]{settings.window.width}x{settings.window.height}[/cyan]")
    console.print(f"Client factory: [cyan]{settings.client_factory or 'not set'}[/cyan]")


@app.command("probe")
def probe(
    ctx: typer.Context,
    sign_out: Annotated[
        bool,
        typer.Option("--sign-out", help="Probe the sign out addresses instead"),
    ] = False,
):
    """Check which callback address would be used right now."""
    settings = get_settings()
    uris = settings.sign_out_uris() if sign_out else settings.sign_in_uris()

    async def bind_first() -> str:
        listener, url = start_listener(lambda request: None, *uris)
        await listener.aclose()
        return url

    try:
        url = asyncio.run(bind_first())
    except AuthFlowError as e:
        format_error(e, console, verbose=is_verbose(ctx))
        raise typer.Exit(1)

    print_success(f"Callback listener would use [cyan]{url}[/cyan]")


@app.command("path")
def path():
    """Show the config file location."""
    console.print(str(CONFIG_PATH))
    if not CONFIG_PATH.exists():
        print_info("File does not exist yet; defaults are in use.")
