import logging

from flask import current_app, jsonify, request

from app.routes.football import bp
from app.services.live_scores_service import get_live_scores_service
from app.utils.football_api import FootballApiError
from app.utils.fallback_data import FALLBACK_TEAMS, get_fallback_fixtures

logger = logging.getLogger(__name__)


def _api_client():
    return get_live_scores_service().api_client


@bp.route("/teams")
def teams():
    """Premier League teams, from the API or fallback data"""
    try:
        data, source = _api_client().get_teams()
    except FootballApiError as e:
        logger.warning(f"Team fetch failed, serving fallback data: {e}")
        data, source = list(FALLBACK_TEAMS), "fallback"

    return jsonify(
        {
            "success": True,
            "source": source,
            "season": current_app.config.get("SEASON_LABEL"),
            "count": len(data),
            "teams": data,
        }
    )


@bp.route("/fixtures")
def fixtures():
    """Premier League fixtures, optionally for one round (``?round=``)"""
    round_number = request.args.get("round", type=int)

    try:
        data, source = _api_client().get_fixtures(round_number)
    except FootballApiError as e:
        logger.warning(f"Fixture fetch failed, serving fallback data: {e}")
        data, source = get_fallback_fixtures(round_number), "fallback"

    return jsonify(
        {
            "success": True,
            "source": source,
            "season": current_app.config.get("SEASON_LABEL"),
            "round": round_number,
            "count": len(data),
            "fixtures": data,
        }
    )
