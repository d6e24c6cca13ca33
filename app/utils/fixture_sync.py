import logging
from datetime import timezone

from app import db
from app.models import Fixture, Team
from app.utils.football_api import parse_kickoff, parse_match_state, parse_round

logger = logging.getLogger(__name__)


def sync_teams(api_client):
    """
    Upsert teams from the API (or fallback data).

    Returns:
        (number of teams, source)
    """
    teams, source = api_client.get_teams()
    for item in teams:
        Team.upsert_from_api(item.get("team", item))
    db.session.commit()
    logger.info(f"Synced {len(teams)} teams from {source}")
    return len(teams), source


def _team_for(team_info):
    team = Team.query.filter_by(api_id=str(team_info.get("id", ""))).first()
    if team is None:
        team = Team.upsert_from_api(team_info)
        db.session.flush()
    return team


def sync_fixtures(api_client, season_label, round_number=None):
    """
    Upsert fixtures (and any teams they reference) from the API or fallback
    data. Match state is written through the same change-detecting path the
    poll cycle uses.

    Returns:
        (number of fixtures, source)
    """
    items, source = api_client.get_fixtures(round_number)

    synced = 0
    for item in items:
        state = parse_match_state(item)
        teams = item.get("teams", {})
        home = _team_for(teams.get("home", {}))
        away = _team_for(teams.get("away", {}))

        fixture = Fixture.query.filter_by(api_id=state["api_id"]).first()
        if fixture is None:
            fixture = Fixture(api_id=state["api_id"])
            db.session.add(fixture)

        info = item.get("fixture", {})
        fixture.season = season_label
        fixture.gameweek = parse_round(item.get("league", {}).get("round")) or 0
        fixture.home_team_id = home.id
        fixture.away_team_id = away.id
        kickoff = parse_kickoff(info.get("date"))
        # Stored as naive UTC
        fixture.kickoff_time = (
            kickoff.astimezone(timezone.utc).replace(tzinfo=None) if kickoff else None
        )
        fixture.venue = (info.get("venue") or {}).get("name")
        fixture.referee = info.get("referee")
        fixture.apply_match_state(
            state["status"],
            state["home_score"],
            state["away_score"],
            minute=state["minute"],
            status_long=state["status_long"],
        )
        synced += 1

    db.session.commit()
    logger.info(f"Synced {synced} fixtures from {source}")
    return synced, source
