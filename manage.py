#!/usr/bin/env python3
"""
Premier Predictor Management CLI

This script provides command-line management functionality for the live
scores subsystem: polling control, scoring and fixture sync.
"""

import json
import logging
import os

# The CLI never runs the background scheduler
os.environ.setdefault("SCHEDULER_ENABLED", "False")
os.environ.setdefault("LIVE_POLLING_AUTOSTART", "False")

import click  # noqa: E402
from flask import current_app  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from flask_migrate import downgrade, init, migrate, upgrade  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from app import create_app, db  # noqa: E402
from app.models import Fixture, FixtureStatus, Prediction, User  # noqa: E402
from app.services.live_scores_service import get_live_scores_service  # noqa: E402
from app.utils.fixture_sync import sync_fixtures, sync_teams  # noqa: E402

app = create_app()


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
def cli():
    """Premier Predictor Management CLI"""
    pass


# Live Polling Commands
@cli.group()
def poll():
    """Live score polling commands"""
    pass


@poll.command("status")
@with_appcontext
def poll_status():
    """Show polling state"""
    _echo_json(get_live_scores_service().status())


@poll.command("force")
@with_appcontext
def poll_force():
    """Run one poll cycle now"""
    result = get_live_scores_service().force_poll()
    if result.get("success"):
        click.echo(
            f"✅ Poll complete: {result.get('fixturesUpdated', 0)} fixtures updated, "
            f"{result.get('predictionsScored', 0)} predictions scored"
        )
    else:
        click.echo(f"❌ Poll failed: {result.get('error')}")
    _echo_json(result)


@poll.command("smart-start")
@with_appcontext
def poll_smart_start():
    """Show whether polling should run right now"""
    decision = get_live_scores_service().smart_start()
    click.echo(f"Action: {decision['action']} ({decision['reason']})")
    _echo_json(decision["details"])


# Scoring Commands
@cli.group()
def scores():
    """Prediction scoring commands"""
    pass


@scores.command("calculate")
@click.option("--fixture-id", type=int, help="Score a single finished fixture")
@with_appcontext
def scores_calculate(fixture_id):
    """Score finished fixtures with unscored predictions"""
    try:
        if fixture_id:
            count, user_ids = Prediction.recalculate_for_fixture(fixture_id, commit=False)
            db.session.flush()
            User.recalculate_stats_for(user_ids)
            db.session.commit()
            click.echo(
                f"✅ Scored {count} predictions for fixture {fixture_id} "
                f"({len(user_ids)} users updated)"
            )
            return

        stats = Prediction.calculate_all_pending()
        click.echo(
            f"✅ Scored {stats['total_scores']} predictions across "
            f"{stats['processed_fixtures']} fixtures ({stats['users_updated']} users updated)"
        )

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error scoring predictions: {str(e)}")
        logging.error(f"Scoring failed - SQL error: {e}")


@scores.command("reset")
@with_appcontext
def scores_reset():
    """⚠️  Clear all prediction points and user statistics"""
    if not click.confirm("This will clear ALL prediction points. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        predictions_reset = Prediction.reset_all()
        users = User.query.all()
        for user in users:
            user.reset_stats()
        db.session.commit()
        click.echo(
            f"✅ Reset {predictions_reset} predictions and {len(users)} users"
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error resetting scores: {str(e)}")
        logging.error(f"Score reset failed - SQL error: {e}")


# Data Sync Commands
@cli.group()
def sync():
    """Data synchronization commands"""
    pass


@sync.command("teams")
@with_appcontext
def sync_teams_cmd():
    """Sync Premier League teams"""
    try:
        count, source = sync_teams(get_live_scores_service().api_client)
        click.echo(f"✅ Synced {count} teams ({source})")
    except Exception as e:
        db.session.rollback()
        click.echo(f"❌ Error syncing teams: {str(e)}")


@sync.command("fixtures")
@click.option("--round", "round_number", type=int, help="Only sync one round")
@with_appcontext
def sync_fixtures_cmd(round_number):
    """Sync Premier League fixtures (and their teams)"""
    try:
        count, source = sync_fixtures(
            get_live_scores_service().api_client,
            current_app.config["SEASON_LABEL"],
            round_number,
        )
        click.echo(f"✅ Synced {count} fixtures ({source})")
    except Exception as e:
        db.session.rollback()
        click.echo(f"❌ Error syncing fixtures: {str(e)}")


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
    except Exception as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Create the migrations directory"""
    try:
        init()
        click.echo("✅ Migrations directory created")
    except Exception as e:
        click.echo(f"❌ Error initializing migrations: {str(e)}")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    try:
        migrate(message=message)
        click.echo(f"✅ Migration created: {message}")
    except Exception as e:
        click.echo(f"❌ Error creating migration: {str(e)}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    try:
        upgrade(revision=revision)
        click.echo(f"✅ Migrations applied to {revision}")
    except Exception as e:
        click.echo(f"❌ Error applying migrations: {str(e)}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    try:
        downgrade(revision=revision)
        click.echo(f"✅ Rolled back to {revision}")
    except Exception as e:
        click.echo(f"❌ Error rolling back: {str(e)}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show fixture, prediction and polling status"""
    click.echo("⚽ Premier Predictor Status")
    click.echo("=" * 30)

    season = current_app.config.get("SEASON_LABEL")
    total = Fixture.query.filter_by(season=season).count()
    live = Fixture.query.filter_by(season=season, status=FixtureStatus.LIVE).count()
    finished = Fixture.query.filter_by(
        season=season, status=FixtureStatus.FINISHED
    ).count()
    click.echo(f"📅 Season {season}: {finished}/{total} fixtures finished, {live} live")

    stats = Prediction.get_scoring_stats()
    click.echo(
        f"🎯 Predictions: {stats['scored_predictions']}/"
        f"{stats['submitted_predictions']} scored"
    )

    click.echo(f"👥 Users: {User.query.count()}")

    polling = get_live_scores_service().status()
    state = "🟢 ACTIVE" if polling["isActive"] else "⚪ Stopped"
    click.echo(f"📡 Polling: {state} (last poll: {polling['lastPoll'] or 'never'})")


if __name__ == "__main__":
    with app.app_context():
        cli()
