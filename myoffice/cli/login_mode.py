"""Login / logout: the only place the interactive device code flow is started."""

import asyncio

import typer

from myoffice.auth import get_session_manager
from myoffice.config import load_auth_settings, save_stored_config
from myoffice.errors import AuthError

from .shared import console, fail, logger, present_device_code


def login(
    client_id: str | None = typer.Option(None, "--client-id", help="Azure app (client) ID; saved to config.json"),
    tenant_id: str | None = typer.Option(None, "--tenant-id", help="Tenant ID or 'common'; saved to config.json"),
) -> None:
    """Sign in with the device code flow and cache tokens for silent refresh."""
    log = logger.bind(command="login")
    if client_id or tenant_id:
        save_stored_config(client_id=client_id, tenant_id=tenant_id)
        log.info("login.config_saved", client_id=bool(client_id), tenant_id=tenant_id)

    settings = load_auth_settings()
    if not settings.client_id:
        console.print("[red]No client ID configured.[/red]")
        console.print("Run: myoffice login --client-id <your-azure-app-client-id>")
        console.print("Or set M365_CLIENT_ID environment variable.")
        raise typer.Exit(1)

    manager = get_session_manager(settings, present_device_code=present_device_code)
    try:
        record = asyncio.run(manager.acquire_interactive())
    except AuthError as e:
        log.error("login.failed", error=str(e), error_type=type(e).__name__)
        fail(e)

    console.print(f"[green]Authenticated as: {record.username or '(unknown)'}[/green]")
    console.print(f"Token cached at: {settings.cache_path}")
    log.info("login.ok", username=record.username)


def logout() -> None:
    """Delete the cached token file."""
    manager = get_session_manager(load_auth_settings())
    removed = asyncio.run(manager.logout())
    if removed:
        console.print("[green]Signed out; token cache removed.[/green]")
    else:
        console.print("No cached credentials found.")
