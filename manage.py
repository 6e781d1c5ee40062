#!/usr/bin/env python3
"""
League Scoring Management CLI

Command-line management for seasons, winner determination and retroactive
points backfills.
"""

import logging

import click
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from league_scoring import create_app, db
from league_scoring.models import (
    COMPETITION_TYPES,
    LEAGUE,
    BettingRound,
    Season,
    SeasonWinner,
    User,
)
from league_scoring.services.retroactive_points import RetroactivePointsService
from league_scoring.services.scheduler_service import scheduler_service
from league_scoring.services.winner_determination import WinnerDeterminationService

app = create_app()

competition_type_option = click.option(
    "--type",
    "competition_type",
    type=click.Choice(COMPETITION_TYPES),
    default=LEAGUE,
    show_default=True,
    help="Competition type",
)


def _echo_errors(errors):
    for error in errors:
        message = error.get("message") if isinstance(error, dict) else error
        click.echo(f"   ❌ {message}")


@click.group()
def cli():
    """League Scoring Management CLI"""
    pass


# Season Management Commands
@cli.group()
def season():
    """Season management commands"""
    pass


@season.command()
@click.argument("season_id", type=int)
@with_appcontext
def complete(season_id):
    """Mark a season as complete"""
    try:
        season_obj = db.session.get(Season, season_id)
        if not season_obj:
            click.echo(f"❌ Season {season_id} not found!")
            return

        if not season_obj.mark_complete():
            click.echo(f"Season {season_obj.name} is already complete")
            return

        db.session.commit()
        click.echo(f"✅ Completed season {season_obj.name}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error completing season: {str(e)}")
        logging.error(f"Season completion failed - SQL error: {e}")


@season.command("activate-cup")
@click.argument("season_id", type=int)
@with_appcontext
def activate_cup(season_id):
    """Activate the last round special (cup) for a season"""
    try:
        season_obj = db.session.get(Season, season_id)
        if not season_obj:
            click.echo(f"❌ Season {season_id} not found!")
            return

        if not season_obj.activate_last_round_special():
            click.echo(f"Cup already active for season {season_obj.name}")
            return

        db.session.commit()
        click.echo(f"✅ Activated cup for season {season_obj.name}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error activating cup: {str(e)}")
        logging.error(f"Cup activation failed - SQL error: {e}")


@season.command("list")
@with_appcontext
def list_seasons():
    """List all seasons"""
    seasons = Season.query.order_by(Season.id.desc()).all()

    if not seasons:
        click.echo("No seasons found.")
        return

    click.echo("Seasons:")
    for s in seasons:
        complete_label = "✅ Complete" if s.is_complete else "⚪ In progress"
        cup = " 🏆 Cup active" if s.last_round_special_activated else ""
        determined = " (winners recorded)" if s.winner_determined_at else ""
        click.echo(f"  {s.id}: {s.name} - {complete_label}{cup}{determined}")


# Winner Commands
@cli.group()
def winners():
    """Winner determination commands"""
    pass


@winners.command()
@click.argument("season_id", type=int)
@competition_type_option
@with_appcontext
def determine(season_id, competition_type):
    """Determine winners for one season"""
    result = WinnerDeterminationService().determine_winners(season_id, competition_type)

    if result.errors:
        click.echo(f"❌ Winner determination failed for season {season_id}")
        _echo_errors(result.errors)
        return

    if not result.winners:
        click.echo(f"⚠️  No participants in season {season_id} ({competition_type})")
        return

    label = "Already determined" if result.is_already_determined else "Determined"
    click.echo(f"✅ {label}: {len(result.winners)} winner(s)")
    for winner in result.winners:
        tied = " (tied)" if winner.is_tied else ""
        click.echo(f"   🏆 {winner.username}: {winner.total_points} pts{tied}")


@winners.command()
@click.option(
    "--type",
    "competition_type",
    type=click.Choice(COMPETITION_TYPES),
    help="Competition type (default: all)",
)
@with_appcontext
def sweep(competition_type):
    """Determine winners for every eligible season"""
    service = WinnerDeterminationService()
    competition_types = [competition_type] if competition_type else COMPETITION_TYPES

    for current_type in competition_types:
        batch = service.determine_for_eligible_seasons(current_type)
        click.echo(
            f"{current_type}: {batch.seasons_processed} season(s) processed, "
            f"{len(batch.newly_determined)} newly determined"
        )
        _echo_errors(batch.errors)


@winners.command()
@click.argument("season_id", type=int)
@competition_type_option
@with_appcontext
def show(season_id, competition_type):
    """Show recorded winners for a season"""
    rows = SeasonWinner.query.filter_by(
        season_id=season_id, competition_type=competition_type
    ).all()

    if not rows:
        click.echo(f"No winners recorded for season {season_id} ({competition_type})")
        return

    click.echo(f"Winners for season {season_id} ({competition_type}):")
    for row in rows:
        click.echo(f"  🏆 {row.user.username}: {row.total_points} pts")


# Backfill Commands
@cli.group()
def backfill():
    """Retroactive points commands"""
    pass


def _echo_backfill_result(result):
    mode = "Preview" if result.dry_run else "Applied"
    click.echo(
        f"{mode}: {result.total_points_awarded} point(s) over "
        f"{result.rounds_processed} round(s) for user {result.user_id}"
    )
    for plan in result.rounds:
        click.echo(
            f"   Round {plan.round_id} ({plan.round_name}): {plan.points_awarded} pts "
            f"(min of {plan.participant_count} participant(s))"
        )
    for warning in result.warnings:
        click.echo(f"   ⚠️  {warning}")
    _echo_errors(result.errors)


@backfill.command()
@click.argument("user_id", type=int)
@click.option("--competition-id", type=int, help="Competition (default: latest)")
@click.option("--from-round-id", type=int, help="Only rounds from this id on")
@with_appcontext
def apply(user_id, competition_id, from_round_id):
    """Award retroactive points to a user"""
    result = RetroactivePointsService().apply_for_user(
        user_id, competition_id=competition_id, from_round_id=from_round_id
    )
    _echo_backfill_result(result)


@backfill.command()
@click.argument("user_id", type=int)
@click.option("--competition-id", type=int, help="Competition (default: latest)")
@click.option("--from-round-id", type=int, help="Only rounds from this id on")
@with_appcontext
def preview(user_id, competition_id, from_round_id):
    """Show what a backfill would award without writing"""
    result = RetroactivePointsService().preview_for_user(
        user_id, competition_id=competition_id, from_round_id=from_round_id
    )
    _echo_backfill_result(result)


@backfill.command()
@click.argument("user_id", type=int)
@click.option("--competition-id", type=int, help="Competition (default: latest)")
@with_appcontext
def check(user_id, competition_id):
    """Check whether a user has missed rounds"""
    summary = RetroactivePointsService().check_if_user_needs_backfill(
        user_id, competition_id=competition_id
    )

    if summary["needs_backfill"]:
        click.echo(
            f"⚠️  User {user_id} missed {summary['missed_rounds']} round(s), "
            f"~{summary['estimated_points_to_award']} point(s) to award"
        )
    else:
        click.echo(f"✅ User {user_id} needs no backfill")
    _echo_errors(summary["errors"])


@backfill.command()
@click.option(
    "--joined-after",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    required=True,
    help="Process users created on or after this date (YYYY-MM-DD)",
)
@click.option("--competition-id", type=int, help="Competition (default: latest)")
@click.option("--from-round-id", type=int, help="Only rounds from this id on")
@click.option("--dry-run", is_flag=True, help="Preview without writing")
@with_appcontext
def bulk(joined_after, competition_id, from_round_id, dry_run):
    """Backfill every user who joined after a date"""
    result = RetroactivePointsService().apply_for_new_users(
        joined_after,
        competition_id=competition_id,
        from_round_id=from_round_id,
        dry_run=dry_run,
    )
    click.echo(
        f"{'Preview' if dry_run else 'Applied'}: {result.total_users_processed} user(s), "
        f"{result.total_rounds_processed} round(s), "
        f"{result.total_points_awarded} point(s)"
    )
    _echo_errors(result.errors)


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏆 League Scoring Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    season_count = Season.query.count()
    completed = Season.query.filter(Season.completed_at.isnot(None)).count()
    click.echo(f"📅 Seasons: {completed}/{season_count} completed")

    undetermined = Season.query.filter(
        Season.completed_at.isnot(None), Season.winner_determined_at.is_(None)
    ).count()
    if undetermined:
        click.echo(f"⚠️  Completed seasons without winners: {undetermined}")

    scored = BettingRound.query.filter_by(status="scored").count()
    click.echo(f"🎯 Scored rounds: {scored}")

    click.echo(f"👥 Users: {User.query.count()}")

    scheduler_status = scheduler_service.get_status()
    state = "🟢 Running" if scheduler_status["is_running"] else "⚪ Stopped"
    click.echo(f"⏰ Scheduler: {state}")
    for job in scheduler_status["jobs"]:
        click.echo(f"   {job['name']}: next run {job['next_run'] or 'paused'}")


if __name__ == "__main__":
    with app.app_context():
        cli()
