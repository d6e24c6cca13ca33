import itertools
import math
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import requests

from app import create_app
from app import db as _db
from app.models import Fixture, FixtureStatus, Prediction, Team, User
from app.utils.fallback_data import FALLBACK_TEAMS, get_fallback_fixtures
from app.utils.football_api import MAX_IDS_PER_REQUEST, FootballApiConfigError


class FakeFootballApi:
    """In-memory stand-in for the API-Football client"""

    def __init__(self):
        self.states = {}
        self.error = None
        self.requested = []
        self.is_configured = True
        self.on_fetch = None

    def set_state(self, api_id, short, home=None, away=None, elapsed=None, long=None):
        self.states[str(api_id)] = {
            "fixture": {
                "id": int(api_id),
                "status": {"short": short, "long": long, "elapsed": elapsed},
            },
            "goals": {"home": home, "away": away},
        }

    def get_fixtures_by_ids(self, api_ids, on_send=None):
        api_ids = [str(api_id) for api_id in api_ids]
        self.requested.append(api_ids)
        if self.on_fetch is not None:
            self.on_fetch()
        if isinstance(self.error, FootballApiConfigError):
            raise self.error
        batches = math.ceil(len(api_ids) / MAX_IDS_PER_REQUEST)
        if on_send is not None:
            for _ in range(batches):
                on_send()
        if self.error is not None:
            return [], [str(self.error)] * batches
        payloads = [self.states[api_id] for api_id in api_ids if api_id in self.states]
        return payloads, []

    def get_teams(self):
        if self.error is not None:
            raise self.error
        return list(FALLBACK_TEAMS), "fallback"

    def get_fixtures(self, round_number=None):
        if self.error is not None:
            raise self.error
        return get_fallback_fixtures(round_number), "fallback"


def api_response(payload, status_code=200):
    """A mocked ``requests`` response for patching ``session.get``"""
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            response=response
        )
        response.headers = {}
    return response


def utc_now():
    return datetime.now(timezone.utc)


def naive_utc(dt):
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@pytest.fixture
def football_api():
    return FakeFootballApi()


@pytest.fixture
def app(football_api):
    app = create_app("testing", api_client=football_api)

    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["live_scores"]


@pytest.fixture
def make_team(db):
    counter = itertools.count(1)

    def _make_team(name=None):
        n = next(counter)
        team = Team(
            api_id=str(900 + n),
            name=name or f"Team {n}",
            short_name=name or f"Team {n}",
            code=f"T{n:02d}",
        )
        db.session.add(team)
        db.session.commit()
        return team

    return _make_team


@pytest.fixture
def make_fixture(db, make_team):
    counter = itertools.count(1001)

    def _make_fixture(
        kickoff=None,
        status=FixtureStatus.SCHEDULED,
        home_score=None,
        away_score=None,
        api_id=None,
        season="2025-26",
    ):
        fixture = Fixture(
            api_id=api_id or str(next(counter)),
            gameweek=1,
            season=season,
            home_team_id=make_team().id,
            away_team_id=make_team().id,
            kickoff_time=naive_utc(kickoff) if kickoff else None,
            status=status,
            home_score=home_score,
            away_score=away_score,
        )
        db.session.add(fixture)
        db.session.commit()
        return fixture

    return _make_fixture


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make_user(username=None):
        user = User(username=username or f"user{next(counter)}")
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_prediction(db):
    def _make_prediction(user, fixture, home_score, away_score, submitted=True):
        prediction = Prediction(
            user_id=user.id,
            fixture_id=fixture.id,
            home_score=home_score,
            away_score=away_score,
            is_submitted=submitted,
            submitted_at=naive_utc(utc_now()) if submitted else None,
        )
        db.session.add(prediction)
        db.session.commit()
        return prediction

    return _make_prediction


@pytest.fixture
def live_fixture(make_fixture):
    """A fixture that kicked off an hour ago and is in play"""
    return make_fixture(
        kickoff=utc_now() - timedelta(minutes=60),
        status=FixtureStatus.LIVE,
        home_score=1,
        away_score=0,
    )
