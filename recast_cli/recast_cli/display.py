"""Rich output formatting for the Recast CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from recast_core.models import EntitlementResult, UsageRecord, User


def display_entitlement(console: Console, identity: str | None, result: EntitlementResult) -> None:
    """Render one entitlement decision as a panel."""
    who = identity or "anonymous"
    if result.allowed:
        remaining = "unlimited (pro)" if result.remaining_free is None else str(result.remaining_free)
        body = f"[green]allowed[/green]\nRemaining free generations: {remaining}"
    else:
        body = f"[red]denied[/red]\n{result.reason}"
    console.print(Panel(body, title=f"Entitlement: {who}", expand=False))


def display_user(console: Console, user: User | None) -> None:
    if user is None:
        console.print("[dim]No user record (treated as free plan).[/dim]")
        return
    colour = "green" if user.is_pro else "white"
    console.print(
        f"User [bold]{user.id}[/bold] <{user.email}> plan=[{colour}]{user.plan.value}[/{colour}] "
        f"subscription={user.subscription_ref or '-'}"
    )


def display_history(console: Console, user_id: str, records: list[UsageRecord]) -> None:
    """Render usage records, most recent first."""
    if not records:
        console.print(f"[dim]No generations recorded for {user_id}.[/dim]")
        return

    table = Table(title=f"History for {user_id}", show_lines=False)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Created (UTC)")
    table.add_column("URL", overflow="fold")
    table.add_column("Tone", style="magenta")
    table.add_column("Snapshot", justify="right")

    for record in records:
        snapshot = f"{len(record.payload_snapshot)} chars" if record.payload_snapshot else "-"
        table.add_row(
            str(record.id),
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.subject_url,
            record.tone or "-",
            snapshot,
        )
    console.print(table)
