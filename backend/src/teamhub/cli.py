"""Command-line interface for TeamHub operators."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from teamhub.billing.intents import IntentStore
from teamhub.errors import NotFoundError
from teamhub.logging_config import configure_logging, get_logger
from teamhub.payments.webhooks import webhook_reconciler
from teamhub.storage.db import db
from teamhub.teams.registry import team_registry

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="teamhub",
    help="TeamHub - team task management with paid memberships",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("sweep-owner-intents")
def sweep_owner_intents() -> None:
    """Create teams for owner payments the success page never completed."""
    created = webhook_reconciler.sweep_owner_intents()
    if not created:
        console.print("[yellow]No paid owner checkouts waiting[/yellow]")
        return
    console.print(f"[bold green]✓[/bold green] Created {len(created)} team(s)")
    for team_id in created:
        console.print(f"  {team_id}")


@app.command("purge-intents")
def purge_intents() -> None:
    """Mark unpaid checkout intents past their expiry as expired."""
    with db.session() as session:
        expired = IntentStore(session).expire_stale()
    console.print(f"[bold green]✓[/bold green] Expired {expired} checkout intent(s)")


@app.command("cleanup-events")
def cleanup_events(
    days: Annotated[int | None, typer.Option("--days", "-d", help="Keep events newer than this many days")] = None,
) -> None:
    """Delete old processed-webhook records."""
    deleted = webhook_reconciler.cleanup_old_events(days)
    console.print(f"[bold green]✓[/bold green] Deleted {deleted} processed event record(s)")


@app.command("team-info")
def show_team_info(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
) -> None:
    """Show a team's summary and members."""
    try:
        info = team_registry.get_team_info(team_id)
    except NotFoundError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    team = team_registry.get_team(team_id)

    console.print(f"[bold]Team:[/bold] {info.name} (ID: {info.id})")
    console.print(f"[bold]Access:[/bold] {info.access_mode.value}")
    console.print(f"[bold]Tier:[/bold] {info.tier.value}")
    console.print(f"[bold]Joining fee:[/bold] {info.joining_fee}")
    console.print(f"[bold]Members:[/bold] {info.member_count}")

    members = team_registry.list_members(team_id, team.created_by)
    if members:
        table = Table(title="Members")
        table.add_column("User ID", style="cyan")
        table.add_column("Email", style="green")
        table.add_column("Role")
        table.add_column("Joined")

        for member in members:
            table.add_row(
                member["user_id"],
                member["email"] or "N/A",
                member["role"],
                (member["joined_at"] or "")[:16],
            )

        console.print(table)


if __name__ == "__main__":
    app()
