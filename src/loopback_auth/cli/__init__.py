"""Command line interface for loopback-auth."""
