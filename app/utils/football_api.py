import logging
import time
from datetime import datetime
from functools import wraps

import requests
from flask import current_app, has_app_context

from app.models.fixture import FixtureStatus
from app.utils.fallback_data import FALLBACK_TEAMS, get_fallback_fixtures

logger = logging.getLogger(__name__)

# API-Football accepts at most 20 ids per /fixtures?ids= call
MAX_IDS_PER_REQUEST = 20

STATUS_MAP = {
    "NS": FixtureStatus.SCHEDULED,  # Not Started
    "1H": FixtureStatus.LIVE,  # First Half
    "HT": FixtureStatus.LIVE,  # Half Time
    "2H": FixtureStatus.LIVE,  # Second Half
    "ET": FixtureStatus.LIVE,  # Extra Time
    "BT": FixtureStatus.LIVE,  # Break Time (in extra time)
    "P": FixtureStatus.LIVE,  # Penalty In Progress
    "FT": FixtureStatus.FINISHED,  # Full Time
    "AET": FixtureStatus.FINISHED,  # After Extra Time
    "PEN": FixtureStatus.FINISHED,  # Penalties Finished
    "SUSP": FixtureStatus.SUSPENDED,
    "INT": FixtureStatus.SUSPENDED,  # Interrupted
    "PST": FixtureStatus.POSTPONED,
    "CANC": FixtureStatus.POSTPONED,  # Cancelled
}


class FootballApiError(Exception):
    """The football data API could not be reached or returned an error"""


class FootballApiConfigError(FootballApiError):
    """No API key configured"""


def map_api_status(short_status):
    """Map an API-Football short status code to the internal vocabulary"""
    return STATUS_MAP.get(short_status, FixtureStatus.SCHEDULED)


def parse_match_state(item):
    """
    Pull the fields the poll cycle needs out of an API-Football fixture.

    Returns:
        dict with ``api_id``, ``status``, ``status_long``, ``home_score``,
        ``away_score`` and ``minute``
    """
    fixture = item.get("fixture", {})
    status = fixture.get("status", {}) or {}
    goals = item.get("goals", {}) or {}
    return {
        "api_id": str(fixture.get("id", "")),
        "status": map_api_status(status.get("short")),
        "status_long": status.get("long"),
        "home_score": goals.get("home"),
        "away_score": goals.get("away"),
        "minute": status.get("elapsed"),
    }


def parse_kickoff(date_string):
    if not date_string:
        return None
    return datetime.fromisoformat(date_string.replace("Z", "+00:00"))


def parse_round(round_label):
    """'Regular Season - 21' -> 21"""
    try:
        return int(str(round_label).rsplit("-", 1)[-1].strip())
    except (TypeError, ValueError):
        return None


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else 0
                    if status_code != 429 and status_code < 500:
                        raise
                    delay = base_delay * (backoff_factor**attempt)
                    if status_code == 429 and e.response is not None:
                        delay = float(e.response.headers.get("Retry-After", delay))
                    logger.warning(
                        f"API returned {status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise

                except (
                    requests.exceptions.ConnectionError,
                    requests.exceptions.Timeout,
                ) as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise

            raise FootballApiError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


class FootballApiClient:
    """
    API-Football (RapidAPI) client with bounded timeouts and retries
    """

    def __init__(
        self,
        api_key=None,
        base_url=None,
        host=None,
        timeout=None,
        league_id=None,
        season=None,
    ):
        config = current_app.config if has_app_context() else {}

        self.api_key = api_key if api_key is not None else config.get("FOOTBALL_API_KEY")
        self.base_url = (
            base_url
            or config.get("FOOTBALL_API_BASE_URL")
            or "https://api-football-v1.p.rapidapi.com/v3"
        ).rstrip("/")
        self.host = host or config.get("FOOTBALL_API_HOST") or "api-football-v1.p.rapidapi.com"
        self.timeout = timeout or config.get("FOOTBALL_API_TIMEOUT", 10)
        self.league_id = league_id or config.get("FOOTBALL_LEAGUE_ID", 39)
        self.season = season or config.get("FOOTBALL_SEASON", 2025)

        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "Premier-Predictor/1.0"})
        if self.api_key:
            self.session.headers.update(
                {"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.host}
            )

        self.request_count = 0

    @classmethod
    def from_app(cls, app):
        with app.app_context():
            return cls()

    @property
    def is_configured(self):
        return bool(self.api_key)

    @rate_limit_decorator(max_retries=2, base_delay=1.0)
    def _send(self, endpoint, params=None, on_send=None):
        """Make API request with retry logic"""
        self.request_count += 1
        if on_send is not None:
            on_send()
        response = self.session.get(
            f"{self.base_url}{endpoint}", params=params, timeout=self.timeout
        )
        response.raise_for_status()
        return response

    def _request(self, endpoint, params=None, on_send=None):
        if not self.is_configured:
            raise FootballApiConfigError("FOOTBALL_API_KEY is not set")

        logger.debug(f"API-Football request: {endpoint} {params or ''}")
        try:
            response = self._send(endpoint, params, on_send)
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise FootballApiError(f"Request timed out after {self.timeout}s: {endpoint}") from e
        except requests.exceptions.RequestException as e:
            raise FootballApiError(f"Request failed for {endpoint}: {e}") from e
        except ValueError as e:
            raise FootballApiError(f"Invalid JSON from {endpoint}") from e

        errors = data.get("errors")
        if errors:
            if isinstance(errors, dict):
                errors = [f"{k}: {v}" for k, v in errors.items()]
            raise FootballApiError(f"API-Football error: {', '.join(map(str, errors))}")

        logger.debug(f"API-Football response: {data.get('results', 0)} results")
        return data.get("response", [])

    def get_fixtures_by_ids(self, api_ids, on_send=None):
        """
        Fetch fixtures by external id, batched to the per-call maximum.

        A failed batch is logged and skipped so the remaining batches are
        still fetched. ``on_send`` is called once for every HTTP request
        sent, retries included.

        Returns:
            (list of fixture payloads, list of error messages for failed batches)
        """
        if not self.is_configured:
            raise FootballApiConfigError("FOOTBALL_API_KEY is not set")

        api_ids = [str(api_id) for api_id in api_ids if api_id]
        results = []
        errors = []
        for start in range(0, len(api_ids), MAX_IDS_PER_REQUEST):
            batch = api_ids[start : start + MAX_IDS_PER_REQUEST]
            try:
                results.extend(
                    self._request("/fixtures", {"ids": "-".join(batch)}, on_send)
                )
            except FootballApiError as e:
                logger.warning(f"Fixture batch of {len(batch)} ids failed: {e}")
                errors.append(str(e))
        return results, errors

    def get_teams(self):
        """
        Premier League teams for the configured season.

        Returns:
            (teams, source) where source is "api" or "fallback"
        """
        if not self.is_configured:
            logger.info("No API key configured, serving fallback teams")
            return list(FALLBACK_TEAMS), "fallback"
        return (
            self._request("/teams", {"league": self.league_id, "season": self.season}),
            "api",
        )

    def get_fixtures(self, round_number=None):
        """
        Premier League fixtures, optionally for one round.

        Returns:
            (fixtures, source) where source is "api" or "fallback"
        """
        if not self.is_configured:
            logger.info("No API key configured, serving fallback fixtures")
            return get_fallback_fixtures(round_number), "fallback"

        params = {"league": self.league_id, "season": self.season}
        if round_number:
            params["round"] = f"Regular Season - {round_number}"
        return self._request("/fixtures", params), "api"

    def get_status(self):
        return {
            "configured": self.is_configured,
            "base_url": self.base_url,
            "league_id": self.league_id,
            "season": self.season,
            "total_requests": self.request_count,
        }
