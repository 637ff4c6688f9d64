"""Status: cached account plus a bounded Graph connectivity self-test."""

import asyncio
import json

import typer
from rich.table import Table

from myoffice.auth import SessionManager, get_session_manager
from myoffice.config import CONNECTIVITY_TIMEOUT_SECONDS, load_auth_settings
from myoffice.graph import GraphClient

from .shared import console, logger


async def collect_status(
    manager: SessionManager,
    check: bool = True,
    timeout: float = CONNECTIVITY_TIMEOUT_SECONDS,
) -> dict:
    """Gather auth state and, when authenticated, the /me round trip."""
    authenticated = await manager.is_authenticated()
    status = {
        "authenticated": authenticated,
        "user": await manager.current_account_label(),
        "client_id_configured": bool(manager.settings.client_id),
        "tenant_id": manager.settings.tenant_id,
        "cache_path": str(manager.settings.cache_path),
    }
    if check and authenticated:
        async with GraphClient(manager) as client:
            report = await client.check_connectivity(timeout=timeout)
        status["graph_api"] = report.model_dump(exclude_none=True)
    return status


def status(
    check: bool = typer.Option(True, "--check/--no-check", help="Call /me to verify connectivity"),
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    """Show authentication status and current user."""
    log = logger.bind(command="status")
    manager = get_session_manager(load_auth_settings())
    result = asyncio.run(collect_status(manager, check=check))
    log.info("status.done", authenticated=result["authenticated"])

    if as_json:
        typer.echo(json.dumps(result, indent=2))
        return

    table = Table(title="myoffice status", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Authenticated", "yes" if result["authenticated"] else "[red]no[/red]")
    table.add_row("User", result["user"] or "-")
    table.add_row("Tenant", result["tenant_id"])
    table.add_row("Token cache", result["cache_path"])
    graph = result.get("graph_api")
    if graph:
        detail = f"{graph['status']}"
        if "response_time_ms" in graph:
            detail += f" ({graph['response_time_ms']} ms)"
        if "error" in graph:
            detail += f" - {graph['error']}"
        table.add_row("Graph API", detail)
    console.print(table)

    if not result["authenticated"]:
        console.print("[yellow]Run: myoffice login[/yellow]")
        raise typer.Exit(1)
