"""Loopback redirect authentication for desktop and CLI applications."""

__version__ = "0.1.0"
