"""Authentication CLI commands."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated

import typer
from rich.console import Console

from loopback_auth.auth.protocol import SignInOptions
from loopback_auth.auth.service import AuthService
from loopback_auth.cli.errors import format_error, is_verbose
from loopback_auth.cli.progress import auth_spinner, print_error, print_success, print_warning
from loopback_auth.config import get_settings
from loopback_auth.exceptions import AuthFlowError

console = Console()
app = typer.Typer(help="Authentication commands")


def _build_service(ctx: typer.Context) -> AuthService:
    """Create the service from settings, exiting on configuration errors."""
    try:
        return AuthService.from_settings(get_settings())
    except AuthFlowError as e:
        format_error(e, console, verbose=is_verbose(ctx))
        raise typer.Exit(1)


def _run_attempt(
    ctx: typer.Context,
    service: AuthService,
    attempt: Callable[[AuthService], Awaitable[bool]],
) -> bool:
    """Run one attempt on a fresh event loop and release the browser afterwards."""

    async def runner() -> bool:
        try:
            return await attempt(service)
        finally:
            await service.aclose()

    try:
        return asyncio.run(runner())
    except AuthFlowError as e:
        format_error(e, console, verbose=is_verbose(ctx))
        raise typer.Exit(1)


@app.command("login")
def do_login(
    ctx: typer.Context,
    prompt: Annotated[
        str,
        typer.Option("--prompt", help="Prompt value passed to the provider (e.g. login, consent)"),
    ] = "",
    login_hint: Annotated[
        str,
        typer.Option("--login-hint", help="Prefill the identifier on the sign-in page"),
    ] = "",
    first_screen: Annotated[
        str,
        typer.Option("--first-screen", help="First screen to show (e.g. register)"),
    ] = "",
):
    """
    Sign in through a browser window.

    Opens the provider's sign-in page and waits for the redirect back to
    the local callback address.
    """
    service = _build_service(ctx)
    options = SignInOptions(prompt=prompt, login_hint=login_hint, first_screen=first_screen)

    console.print("[dim]Complete the sign in in the browser window.[/dim]")
    with auth_spinner("Waiting for sign in via browser..."):
        succeeded = _run_attempt(ctx, service, lambda s: s.sign_in(options))

    if succeeded:
        print_success("Signed in.")
    else:
        print_error("Sign in did not complete.")
        raise typer.Exit(1)


@app.command("auto-login")
def do_auto_login(
    ctx: typer.Context,
    time_allowed: Annotated[
        str,
        typer.Argument(help="How long to try, e.g. 10s or 1m"),
    ] = "10s",
):
    """Sign in silently using an existing provider session."""
    service = _build_service(ctx)

    with auth_spinner("Checking for an active session..."):
        succeeded = _run_attempt(ctx, service, lambda s: s.try_auto_sign_in(time_allowed))

    if succeeded:
        print_success("Signed in with existing session.")
    else:
        print_warning("No active session found.")
        console.print("\nSign in with: [cyan]loopback-auth login[/cyan]")
        raise typer.Exit(1)


@app.command("logout")
def do_logout(ctx: typer.Context):
    """End the session at the identity provider."""
    service = _build_service(ctx)

    with auth_spinner("Signing out..."):
        succeeded = _run_attempt(ctx, service, lambda s: s.sign_out())

    if succeeded:
        print_success("Signed out.")
    else:
        print_error("Sign out did not complete.")
        raise typer.Exit(1)


@app.command()
def status(ctx: typer.Context):
    """Show current authentication status."""
    service = _build_service(ctx)

    if not service.is_authenticated():
        console.print("[red]Not signed in[/red]")
        console.print("\nSign in with: [cyan]loopback-auth login[/cyan]")
        raise typer.Exit(1)

    console.print("[green]Signed in[/green]")
    try:
        info = service.fetch_user_info()
    except Exception as e:
        print_warning(f"Could not fetch user info: {e}")
        return
    console.print(info)
