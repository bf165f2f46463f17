"""Ledger core: row-level security enforcement for owner-scoped financial records."""

__version__ = "0.1.0"
