"""Shared CLI helpers: console, logger, device-code presenter, auth error output."""

import typer
from rich.console import Console
from rich.panel import Panel

from myoffice.auth import DeviceCodeInfo
from myoffice.errors import MyOfficeError
from myoffice.utils.logger import get_logger

console = Console()
logger = get_logger("myoffice.cli")


def present_device_code(info: DeviceCodeInfo) -> None:
    """Show the device-code instructions prominently."""
    minutes = max(info.expires_in_seconds // 60, 1) if info.expires_in_seconds else None
    footer = f"Code expires in about {minutes} minutes" if minutes else None
    console.print()
    console.print(
        Panel(
            info.message,
            title="[bold]AUTHENTICATION REQUIRED[/bold]",
            subtitle=footer,
            expand=False,
        )
    )
    console.print()


def fail(error: MyOfficeError) -> None:
    """Print the error (and its remediation, if any) and exit 1."""
    console.print(f"[red]{error}[/red]")
    remediation = getattr(error, "remediation", None)
    if remediation:
        console.print(f"[yellow]{remediation}[/yellow]")
    raise typer.Exit(1)
