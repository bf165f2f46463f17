"""Ledger command-line interface and MCP tool server."""

__version__ = "0.1.0"
