"""Recast CLI application -- Typer-based operator interface.

Provides commands to serve the API, initialise the durable record store,
inspect entitlements and history, and replay Stripe events.  Human-readable
output goes to *stderr* via Rich; ``--json`` switches stdout to
machine-readable JSON so that scripts can compose cleanly.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import timedelta
from pathlib import Path
from typing import Any, TypeVar

import typer
from recast_core.billing.events import decode_stripe_event
from recast_core.billing.reconciler import BillingReconciler
from recast_core.entitlement import EntitlementEngine
from recast_core.errors import RecastError
from recast_core.state.sql import SQLRecordStore
from rich.console import Console

from recast_cli.display import display_entitlement, display_history, display_user

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="recast",
    help="Recast - repurpose articles with a free tier and a Stripe-billed pro plan",
    no_args_is_help=True,
)
console = Console(stderr=True)

_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///.recast/state.db"

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_database_url: str = _DEFAULT_DATABASE_URL


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    database_url: str = typer.Option(
        _DEFAULT_DATABASE_URL,
        "--database-url",
        help="Record store database URL.",
        envvar="RECAST_DATABASE_URL",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _database_url  # noqa: PLW0603
    _json_output = json_mode
    _database_url = database_url


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str, ensure_ascii=False) + "\n")


def _with_store(work: Callable[[SQLRecordStore], Awaitable[T]], *, create: bool = False) -> T:
    """Open the durable store, run *work*, and always close it.

    Store failures are reported on stderr and exit with code 3.
    """

    async def _run() -> T:
        store = SQLRecordStore.from_url(_database_url)
        try:
            if create:
                await store.create_tables()
            return await work(store)
        finally:
            await store.close()

    try:
        return asyncio.run(_run())
    except RecastError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(code=3) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to listen on."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes (development only)."),
) -> None:
    """Run the Recast API with uvicorn."""
    import uvicorn

    console.print(f"Starting Recast API on http://{host}:{port}")
    uvicorn.run("recast_api.main:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db() -> None:
    """Create the users and usage tables (idempotent)."""

    async def _noop(store: SQLRecordStore) -> bool:
        return await store.ping()

    healthy = _with_store(_noop, create=True)
    if _json_output:
        _emit_json({"database_url": _database_url, "initialised": healthy})
    else:
        console.print(f"[green]Record store initialised[/green] ({_database_url})")


@app.command()
def entitlement(
    user_id: str | None = typer.Argument(None, help="Stripe customer id to check."),
    anonymous: bool = typer.Option(False, "--anonymous", help="Check the anonymous identity instead."),
    free_limit: int = typer.Option(1, "--free-limit", help="Free generations per window."),
    window_days: int = typer.Option(30, "--window-days", help="Length of the quota window in days."),
) -> None:
    """Show whether an identity may generate right now (does not consume quota)."""
    if anonymous == (user_id is not None):
        console.print("[red]Pass exactly one of USER_ID or --anonymous.[/red]")
        raise typer.Exit(code=2)

    async def _check(store: SQLRecordStore) -> tuple[Any, Any]:
        engine = EntitlementEngine(store, free_limit=free_limit, window=timedelta(days=window_days))
        user = await store.get_user_by_id(user_id) if user_id is not None else None
        return user, await engine.can_generate(user_id)

    user, result = _with_store(_check)

    if _json_output:
        _emit_json(
            {
                "user_id": user_id,
                "plan": user.plan.value if user is not None else None,
                **result.model_dump(),
            }
        )
        return

    if user_id is not None:
        display_user(console, user)
    display_entitlement(console, user_id, result)


@app.command()
def history(
    user_id: str = typer.Argument(..., help="Stripe customer id."),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum records to show."),
) -> None:
    """List a user's most recent generations.

    Unlike the HTTP endpoint this operator view is not restricted to pro users.
    """

    async def _load(store: SQLRecordStore) -> list[Any]:
        return await store.get_history(user_id, limit=limit)

    records = _with_store(_load)

    if _json_output:
        _emit_json([r.model_dump(mode="json") for r in records])
    else:
        display_history(console, user_id, records)


@app.command()
def reconcile(
    event_file: Path = typer.Argument(
        ...,
        help="Path to a Stripe event JSON file (as shown in the Stripe dashboard).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Replay one Stripe event through the billing reconciler.

    Intended for operator backfills of missed webhooks; the payload is
    trusted as-is and no signature is checked.
    """
    try:
        raw = json.loads(event_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Failed to read event: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if not isinstance(raw, dict):
        console.print("[red]Event file must contain a JSON object.[/red]")
        raise typer.Exit(code=3)

    event = decode_stripe_event(raw)

    async def _apply(store: SQLRecordStore) -> Any:
        return await BillingReconciler(store).reconcile(event)

    outcome = _with_store(_apply)

    if _json_output:
        _emit_json({"event_id": raw.get("id"), "kind": event.kind, "outcome": outcome.value})
    else:
        console.print(f"{raw.get('type', 'unknown')} ({event.kind}) -> [bold]{outcome.value}[/bold]")
