"""Main CLI entry point for loopback-auth."""

import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from loopback_auth.cli.commands import auth, config
from loopback_auth.cli.progress import console
from loopback_auth.config import get_settings

app = typer.Typer(
    name="loopback-auth",
    help="Browser sign in with a local redirect callback",
    no_args_is_help=True,
)

app.command("login")(auth.do_login)
app.command("auto-login")(auth.do_auto_login)
app.command("logout")(auth.do_logout)
app.command("status")(auth.status)
app.add_typer(config.app, name="config", help="Show configuration and probe callback addresses")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
):
    """Configure logging before running a command."""
    ctx.obj = {"verbose": verbose}
    level = "DEBUG" if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


if __name__ == "__main__":
    app()
