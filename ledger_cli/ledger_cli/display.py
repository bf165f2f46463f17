"""Rich output formatting for the ledger CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.table import Table

from ledger_core.models.record import AuditEntry, UserSummary

_OPERATION_COLOURS: dict[str, str] = {
    "INSERT": "green",
    "UPDATE": "yellow",
    "DELETE": "red",
}


def _coloured_operation(operation: str) -> str:
    colour = _OPERATION_COLOURS.get(operation, "white")
    return f"[{colour}]{operation}[/{colour}]"


def _row_image(data: dict[str, Any] | None) -> str:
    if not data:
        return "[dim]-[/dim]"
    return json.dumps(data, default=str, sort_keys=True)


def display_audit_entries(console: Console, entries: Sequence[AuditEntry]) -> None:
    """Render audit entries newest first.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    entries:
        Entries as returned by the audit repository, already ordered.
    """
    if not entries:
        console.print("[dim]No audit entries.[/dim]")
        return

    table = Table(title=f"Audit Trail ({len(entries)})", show_lines=False)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("When")
    table.add_column("Op")
    table.add_column("Table")
    table.add_column("Record", justify="right")
    table.add_column("App User", justify="right")
    table.add_column("DB User", style="dim")
    table.add_column("Old")
    table.add_column("New")

    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.created_at.isoformat(sep=" ", timespec="seconds") if entry.created_at else "-",
            _coloured_operation(entry.operation.value),
            entry.table_name,
            str(entry.record_id),
            str(entry.app_user_id) if entry.app_user_id is not None else "-",
            entry.db_user or "-",
            _row_image(entry.old_data),
            _row_image(entry.new_data),
        )
    console.print(table)


def display_user(console: Console, user: UserSummary) -> None:
    console.print(
        f"[green]Created user[/green] [bold]{user.username}[/bold] "
        f"(id={user.id}, role={user.role}, email={user.email})"
    )
