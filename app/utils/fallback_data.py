"""
Static Premier League data served when no football API key is configured.

Shapes follow the API-Football v3 responses so callers can treat fallback
and live payloads the same way.
"""


def _team(team_id, name, code, venue_id, venue_name, city):
    return {
        "team": {
            "id": team_id,
            "name": name,
            "code": code,
            "country": "England",
            "national": False,
            "logo": f"https://media.api-sports.io/football/teams/{team_id}.png",
        },
        "venue": {"id": venue_id, "name": venue_name, "city": city},
    }


def _fixture(fixture_id, date, venue_name, gameweek, home, away):
    return {
        "fixture": {
            "id": fixture_id,
            "referee": None,
            "timezone": "UTC",
            "date": date,
            "venue": {"name": venue_name},
            "status": {"long": "Not Started", "short": "NS", "elapsed": None},
        },
        "league": {
            "id": 39,
            "name": "Premier League",
            "country": "England",
            "round": f"Regular Season - {gameweek}",
        },
        "teams": {
            "home": {
                "id": home[0],
                "name": home[1],
                "logo": f"https://media.api-sports.io/football/teams/{home[0]}.png",
            },
            "away": {
                "id": away[0],
                "name": away[1],
                "logo": f"https://media.api-sports.io/football/teams/{away[0]}.png",
            },
        },
        "goals": {"home": None, "away": None},
    }


FALLBACK_TEAMS = [
    _team(33, "Manchester United", "MUN", 556, "Old Trafford", "Manchester"),
    _team(34, "Newcastle United", "NEW", 562, "St. James' Park", "Newcastle upon Tyne"),
    _team(40, "Liverpool", "LIV", 550, "Anfield", "Liverpool"),
    _team(42, "Arsenal", "ARS", 494, "Emirates Stadium", "London"),
    _team(47, "Tottenham", "TOT", 593, "Tottenham Hotspur Stadium", "London"),
    _team(50, "Manchester City", "MCI", 555, "Etihad Stadium", "Manchester"),
]

FALLBACK_FIXTURES = [
    _fixture(
        868086,
        "2025-01-18T15:00:00+00:00",
        "Anfield",
        21,
        (40, "Liverpool"),
        (50, "Manchester City"),
    ),
    _fixture(
        868087,
        "2025-01-18T17:30:00+00:00",
        "Emirates Stadium",
        21,
        (42, "Arsenal"),
        (33, "Manchester United"),
    ),
    _fixture(
        868088,
        "2025-01-19T14:00:00+00:00",
        "St. James' Park",
        21,
        (34, "Newcastle United"),
        (47, "Tottenham"),
    ),
]


def get_fallback_fixtures(round_number=None):
    if round_number is None:
        return list(FALLBACK_FIXTURES)
    label = f"Regular Season - {round_number}"
    return [f for f in FALLBACK_FIXTURES if f["league"]["round"] == label]
