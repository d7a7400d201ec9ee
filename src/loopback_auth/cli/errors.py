"""User-friendly error messages with actionable suggestions."""

from dataclasses import dataclass

import typer
from rich.console import Console
from rich.panel import Panel

from loopback_auth.exceptions import (
    AuthCancelledError,
    AuthTimeoutError,
    BindError,
    ConfigError,
    ProtocolError,
    UserClosedError,
    WindowError,
)


@dataclass
class ErrorInfo:
    """Structured error information for display."""

    title: str
    message: str
    suggestion: str
    command: str | None = None


ERROR_MESSAGES = {
    "config": ErrorInfo(
        title="Invalid configuration",
        message="A callback address or duration in your configuration is invalid.",
        suggestion="Check redirect_addresses in your config file.",
        command="loopback-auth config show",
    ),
    "bind": ErrorInfo(
        title="No callback address available",
        message="None of the configured callback addresses could be opened on this machine.",
        suggestion="Close programs using those ports or add another address pair.",
        command="loopback-auth config probe",
    ),
    "protocol": ErrorInfo(
        title="Sign in rejected",
        message="The identity provider flow did not complete successfully.",
        suggestion="Try again. If it keeps failing, check the client configuration.",
        command=None,
    ),
    "window": ErrorInfo(
        title="Browser unavailable",
        message="The authentication window could not be opened.",
        suggestion="Make sure the Chromium browser for Playwright is installed.",
        command="playwright install chromium",
    ),
    "timeout": ErrorInfo(
        title="Timed out",
        message="The sign in was not completed in time.",
        suggestion="Try again, or raise auth_timeout in your configuration.",
        command=None,
    ),
    "user_closed": ErrorInfo(
        title="Window closed",
        message="The authentication window was closed before the flow finished.",
        suggestion="Run the command again and complete the flow in the browser.",
        command=None,
    ),
    "cancelled": ErrorInfo(
        title="Cancelled",
        message="The authentication attempt was cancelled.",
        suggestion="Run the command again.",
        command=None,
    ),
    "unknown": ErrorInfo(
        title="Unexpected error",
        message="An unexpected error occurred.",
        suggestion="Run again with --verbose for details.",
        command=None,
    ),
}


def get_error_type(error: Exception) -> str:
    """Determine error type from exception."""
    if isinstance(error, ConfigError):
        return "config"
    elif isinstance(error, BindError):
        return "bind"
    elif isinstance(error, ProtocolError):
        return "protocol"
    elif isinstance(error, WindowError):
        return "window"
    elif isinstance(error, AuthTimeoutError):
        return "timeout"
    elif isinstance(error, UserClosedError):
        return "user_closed"
    elif isinstance(error, AuthCancelledError):
        return "cancelled"
    return "unknown"


def format_error(error: Exception, console: Console, verbose: bool = False) -> None:
    """Format and display a user-friendly error message."""
    info = ERROR_MESSAGES[get_error_type(error)]

    content_lines = [
        f"[white]{info.message}[/white]",
        "",
        f"[yellow]Suggestion:[/yellow] {info.suggestion}",
    ]

    if info.command:
        content_lines.append("")
        content_lines.append(f"[cyan]{info.command}[/cyan]")

    # Show technical details in verbose mode
    if verbose:
        content_lines.append("")
        content_lines.append("[dim]" + "─" * 40 + "[/dim]")
        content_lines.append(f"[dim]Type: {type(error).__name__}[/dim]")
        content_lines.append(f"[dim]Details: {error}[/dim]")

    console.print()
    console.print(Panel(
        "\n".join(content_lines),
        title=f"[red bold]Error: {info.title}[/red bold]",
        border_style="red",
        padding=(1, 2),
    ))
    console.print()


def is_verbose(ctx: typer.Context) -> bool:
    """Return True if the root command was given --verbose."""
    root = ctx.find_root()
    return bool(root.obj and root.obj.get("verbose"))
