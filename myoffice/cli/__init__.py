"""CLI commands: login, logout, status."""

from typer import Typer

from myoffice.cli import login_mode, status_mode

app = Typer(help="Personal Microsoft 365 access via delegated Graph credentials")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(login_mode.login)
    app.command()(login_mode.logout)
    app.command()(status_mode.status)


register_commands()
