"""Progress indicators for CLI operations.

This module provides Rich-based status utilities for consistent
user feedback across all CLI commands.
"""

from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.status import Status

# Shared console instance
console = Console()


@contextmanager
def auth_spinner(message: str) -> Generator[Status, None, None]:
    """Spinner shown while waiting for the browser flow to complete.

    Usage:
        with auth_spinner("Waiting for sign in..."):
            asyncio.run(service.sign_in())

    Args:
        message: Status message to display during operation

    Yields:
        Rich Status object for updating the message if needed
    """
    with console.status(f"[bold blue]{message}", spinner="dots") as status:
        yield status


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message with X mark."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
