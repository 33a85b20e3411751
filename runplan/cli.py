"""Command-line interface for the runplan tool."""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich import box

from .config import config
from .api import PLATFORMS
from .auth import AuthManager
from .db import Database
from .analysis import PlanError, PlanService, TrainingConfig

console = Console()

GOAL_TYPES = [
    "5k", "10k", "half_marathon", "marathon", "ultra", "custom",
    "build_mileage", "maintain_fitness", "base_building",
]

PHASE_COLORS = {
    "base": "blue",
    "build": "green",
    "peak": "magenta",
    "taper": "yellow",
    "race_week": "red",
    "maintenance": "cyan",
}

CONFIDENCE_COLORS = {"high": "green", "medium": "yellow", "low": "red"}


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _escape(text) -> str:
    return str(text).replace("[", r"\[")


@click.group()
@click.option("--user", "user_id", default="default", show_default=True, help="User to act on")
@click.option("--database-url", default=None, help="Override DATABASE_URL")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
@click.pass_context
def cli(ctx, user_id, database_url, log_level):
    """Recovery-aware weekly running plans from Garmin and Strava data."""
    setup_logging(log_level or config.LOG_LEVEL)
    db = Database(database_url)
    ctx.obj = {
        "user_id": user_id,
        "db": db,
        "service": PlanService(db),
    }
    ctx.call_on_close(db.close)


@cli.command(name="init-db")
@click.pass_obj
def init_db(obj):
    """Create database tables."""
    obj["db"].create_tables()
    console.print(f"[green]✅ Database initialized at {obj['db'].database_url}[/green]")


@cli.command()
@click.option("--goal-category", type=click.Choice(["race", "non_race"]), default="race", show_default=True)
@click.option("--goal-type", type=click.Choice(GOAL_TYPES), default="marathon", show_default=True)
@click.option("--goal-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Race date (YYYY-MM-DD)")
@click.option("--goal-time", type=float, help="Goal finish time in minutes")
@click.option("--custom-distance", type=float, help="Race distance in miles for custom goals")
@click.option("--weekly-mileage", type=float, required=True, help="Current weekly mileage")
@click.option("--intensity", type=click.Choice(["conservative", "normal", "aggressive"]), default="normal", show_default=True)
@click.option("--long-run-day", type=click.Choice(["saturday", "sunday"]), default="saturday", show_default=True)
@click.option("--platform", type=click.Choice(PLATFORMS), help="Preferred data platform")
@click.pass_obj
def configure(obj, goal_category, goal_type, goal_date, goal_time, custom_distance,
              weekly_mileage, intensity, long_run_day, platform):
    """Set training goals and current volume."""
    training_config = TrainingConfig(
        user_id=obj["user_id"],
        goal_category=goal_category,
        goal_type=goal_type,
        goal_date=goal_date.date() if goal_date else None,
        goal_time_minutes=goal_time,
        custom_distance_miles=custom_distance,
        current_weekly_mileage=weekly_mileage,
        intensity_preference=intensity,
        preferred_long_run_day=long_run_day,
    )
    obj["service"].save_training_config(training_config, preferred_platform=platform)
    console.print(f"[green]✅ Training config saved for {obj['user_id']}[/green]")


@cli.command()
@click.option("--platform", type=click.Choice(PLATFORMS), required=True)
@click.option("--access-token", required=True)
@click.option("--refresh-token", required=True)
@click.option("--expires-at", type=int, required=True, help="Unix timestamp of access token expiry")
@click.pass_obj
def connect(obj, platform, access_token, refresh_token, expires_at):
    """Store platform tokens obtained from an OAuth flow."""
    auth_manager = AuthManager(obj["db"], obj["user_id"], platform)
    auth_manager.save_token({
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_at": expires_at,
    })
    console.print(f"[green]✅ Connected {platform}[/green]")


@cli.command()
@click.option("--platform", type=click.Choice(PLATFORMS), required=True)
@click.pass_obj
def disconnect(obj, platform):
    """Remove stored platform tokens."""
    AuthManager(obj["db"], obj["user_id"], platform).disconnect()
    console.print(f"[green]✅ Disconnected {platform}[/green]")


@cli.command()
@click.pass_obj
def status(obj):
    """Show platform connections and training config."""
    console.print(Panel.fit("ℹ️  Status", style="bold blue"))

    for platform in PLATFORMS:
        if AuthManager(obj["db"], obj["user_id"], platform).is_connected():
            console.print(f"[green]✅ {platform.title()} connected[/green]")
        else:
            console.print(f"[yellow]⚠️  {platform.title()} not connected[/yellow]")

    training_config = obj["service"].get_training_config(obj["user_id"])
    if not training_config:
        console.print("\n[yellow]No training config. Run 'runplan configure' first.[/yellow]")
        return

    console.print(f"\n  • Goal: {training_config.goal_type} ({training_config.goal_category})")
    if training_config.goal_date:
        console.print(f"  • Goal date: {training_config.goal_date}")
    console.print(f"  • Weekly mileage: {training_config.current_weekly_mileage}")
    console.print(f"  • Intensity: {training_config.intensity_preference}")


@cli.command()
@click.pass_obj
def mileage(obj):
    """Calculate average weekly mileage from recent runs."""
    with console.status("[black]Fetching activities...[/black]"):
        summary = obj["service"].calculate_mileage(obj["user_id"])

    if summary is None:
        console.print("[red]❌ Could not fetch activities. Is a platform connected?[/red]")
        return

    color = CONFIDENCE_COLORS[summary.confidence]
    console.print(Panel(
        f"Average weekly mileage: [bold]{summary.calculated_mileage} mi[/bold]\n"
        f"Weeks analyzed: {summary.weeks_analyzed}\n"
        f"Runs found: {summary.total_run_count}\n"
        f"Confidence: [{color}]{summary.confidence}[/{color}]",
        title="🏃 Weekly Mileage",
        border_style="blue",
    ))


@cli.command()
@click.pass_obj
def baseline(obj):
    """Update baseline weekly mileage from recent training."""
    with console.status("[black]Analyzing recent weeks...[/black]"):
        update = obj["service"].update_baseline(obj["user_id"])

    if update is None:
        console.print("[red]❌ Baseline not updated. Check training config and platform connection.[/red]")
        return

    table = Table(title="Baseline Update", box=box.ROUNDED)
    table.add_column("Previous", justify="right")
    table.add_column("Recent Avg", justify="right")
    table.add_column("New", justify="right", style="bold")
    table.add_column("Change", justify="right")
    table.add_column("Weeks", justify="right")
    table.add_row(
        f"{update.previous_baseline:g}",
        f"{update.actual_recent_average:g}",
        f"{update.new_baseline:g}",
        f"{update.change_percent:+d}%",
        str(update.weeks_analyzed),
    )
    console.print(table)
    console.print(f"[black]{update.reasoning}[/black]")


@cli.command()
@click.option("--force", is_flag=True, help="Regenerate even if a cached plan exists")
@click.option("--unit", type=click.Choice(["mi", "km"]), default="mi", show_default=True)
@click.pass_obj
def plan(obj, force, unit):
    """Show this week's training plan."""
    try:
        with console.status("[black]Generating training plan...[/black]"):
            result = obj["service"].get_plan(obj["user_id"], force_refresh=force, distance_unit=unit)
    except PlanError as e:
        console.print(f"[red]❌ {e}[/red]")
        return

    summary = result.plan.week_summary
    phase = summary["training_phase"]
    color = PHASE_COLORS.get(phase, "white")
    source = "cached" if result.cached else "fresh"

    header = (
        f"[bold]{summary['total_miles']} miles[/bold] · [{color}]{phase.replace('_', ' ').title()}[/{color}]\n"
        f"{_escape(summary['focus'])}"
    )
    if summary["recovery_adjustment"] < 1.0:
        header += (
            f"\n[yellow]Recovery adjustment {summary['recovery_adjustment']:.0%}: "
            f"{summary['base_miles']} → {summary['target_miles']} miles[/yellow]"
        )
    console.print(Panel(
        header,
        title=f"📅 Week of {summary['week_start']}",
        subtitle=f"{source}, generated {result.generated_at:%Y-%m-%d %H:%M}",
        border_style=color,
    ))

    table = Table(box=box.ROUNDED)
    table.add_column("Day", style="bold")
    table.add_column("Workout")
    table.add_column("Miles", justify="right")
    table.add_column("Details")
    for day in result.plan.daily_plan:
        miles = f"{day.distance_miles:g}" if day.distance_miles else "-"
        details = day.description if not day.notes else f"{day.description}\n[dim]{day.notes}[/dim]"
        table.add_row(day.day, day.title, miles, details)
    console.print(table)

    if result.plan.coaching_notes:
        console.print("\n[bold blue]📋 Coaching Notes[/bold blue]")
        for note in result.plan.coaching_notes:
            console.print(f"   • {note}")

    if result.plan.recovery_recommendations:
        console.print("\n[bold yellow]💤 Recovery[/bold yellow]")
        for rec in result.plan.recovery_recommendations:
            console.print(f"   • {rec}")

    if result.plan.insights:
        console.print("\n[bold green]🔍 Insights[/bold green]")
        for insight in result.plan.insights:
            console.print(f"   • {insight['message']}")


@cli.command()
@click.pass_obj
def overview(obj):
    """Show the week-by-week projection to race day."""
    data = obj["service"].get_overview(obj["user_id"])
    if data is None:
        console.print("[yellow]No training config. Run 'runplan configure' first.[/yellow]")
        return

    projection = data["projection"]
    if not projection:
        console.print(f"[black]No race date set. Current phase: {data['current_phase']}[/black]")
        return

    modified_weeks = {m.week_start_date: m for m in data["modifications"]}

    table = Table(title=f"Plan to {data['config'].goal_date}", box=box.ROUNDED)
    table.add_column("Week", justify="right")
    table.add_column("Starts")
    table.add_column("Phase")
    table.add_column("Miles", justify="right")
    table.add_column("Long Run", justify="right")
    table.add_column("Adjusted", justify="right")

    for week in projection:
        color = PHASE_COLORS.get(week.phase, "white")
        modification = modified_weeks.get(week.week_start_date)
        table.add_row(
            f"{week.week_number}{' ←' if week.is_current_week else ''}",
            week.week_start_date.strftime("%b %d"),
            f"[{color}]{week.phase}[/{color}]",
            str(week.projected_mileage),
            str(week.long_run_miles) if week.long_run_miles else "-",
            f"{modification.adjusted_mileage:g}" if modification else "",
        )

    console.print(table)
    summary = data["summary"]
    console.print(
        f"[bold]{summary['total_weeks']} weeks until {summary['race_date']}[/bold], "
        f"peak of {summary['peak_mileage']} miles in week {summary['peak_mileage_week']}"
    )


@cli.command()
@click.pass_obj
def modifications(obj):
    """List weeks where recovery data reduced the plan."""
    records = obj["service"].get_modifications(obj["user_id"])
    if not records:
        console.print("[green]No recovery-driven plan changes recorded.[/green]")
        return

    table = Table(title="Plan Modifications", box=box.ROUNDED)
    table.add_column("Week")
    table.add_column("Phase")
    table.add_column("Planned", justify="right")
    table.add_column("Adjusted", justify="right")
    table.add_column("Factor", justify="right")
    table.add_column("Concerns")

    for record in records:
        table.add_row(
            record.week_start_date.isoformat(),
            record.phase or "",
            f"{record.original_mileage:g}",
            f"{record.adjusted_mileage:g}",
            f"{record.recovery_adjustment:.2f}",
            ", ".join(record.concern_list),
        )

    console.print(table)


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")


if __name__ == "__main__":
    main()
