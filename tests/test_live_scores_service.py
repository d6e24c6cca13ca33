import threading
import time
from datetime import timedelta
from unittest import mock

import pytest
from conftest import api_response, utc_now

from app.models import ApiUsage, Fixture, FixtureStatus, Prediction, User
from app.services.broadcaster import SSEChannel
from app.services.live_scores_service import POLL_JOB_ID, get_live_scores_service
from app.utils.football_api import MAX_IDS_PER_REQUEST, FootballApiClient, FootballApiError


class TestServiceLifecycle:
    def test_service_is_registered_on_app(self, service, football_api):
        assert get_live_scores_service() is service
        assert service.api_client is football_api

    def test_initial_status(self, service):
        assert service.status() == {
            "isActive": False,
            "lastPoll": None,
            "nextPoll": None,
            "currentlyLiveCount": 0,
            "totalPolls": 0,
            "errors": 0,
            "lastError": None,
            "subscribers": 0,
        }

    def test_start_is_idempotent(self, service):
        first = service.start()
        second = service.start()

        assert first["started"] is True
        assert first["poll"]["success"] is True
        assert second["started"] is False
        assert service.status()["isActive"] is True
        assert [job.id for job in service.scheduler.get_jobs()].count(POLL_JOB_ID) == 1

    def test_start_schedules_next_poll(self, service):
        service.start()
        status = service.status()
        assert status["lastPoll"] is not None
        assert status["nextPoll"] is not None
        assert status["nextPoll"] > status["lastPoll"]

    def test_stop(self, service):
        assert service.stop()["stopped"] is False

        service.start()
        assert service.stop()["stopped"] is True

        status = service.status()
        assert status["isActive"] is False
        assert status["nextPoll"] is None
        assert service.scheduler.get_job(POLL_JOB_ID) is None

    def test_restart_without_fixtures_stays_stopped(self, service):
        service.start()
        result = service.restart()
        assert result["action"] == "unchanged"
        assert service.status()["isActive"] is False

    def test_force_poll_does_not_start_polling(self, service):
        result = service.force_poll()
        assert result["success"] is True
        status = service.status()
        assert status["isActive"] is False
        assert status["totalPolls"] == 1
        assert status["nextPoll"] is None


class TestPollCycle:
    def test_no_candidates_skips_api(self, service, football_api):
        result = service.force_poll()
        assert result["success"] is True
        assert result["fixturesChecked"] == 0
        assert football_api.requested == []

    def test_fixture_without_kickoff_is_not_polled(self, service, football_api, make_fixture):
        make_fixture(kickoff=None)
        service.force_poll()
        assert football_api.requested == []

    def test_live_update(self, db, service, football_api, live_fixture):
        football_api.set_state(live_fixture.api_id, "2H", 2, 0, elapsed=67, long="Second Half")

        result = service.force_poll()
        db.session.expire_all()

        assert result["success"] is True
        assert result["fixturesChecked"] == 1
        assert result["fixturesUpdated"] == 1
        assert result["newlyFinished"] == 0
        assert result["currentlyLive"] == 1

        fixture = db.session.get(Fixture, live_fixture.id)
        assert (fixture.home_score, fixture.away_score) == (2, 0)
        assert fixture.minute == 67
        assert fixture.status_long == "Second Half"
        assert service.status()["currentlyLiveCount"] == 1

    def test_live_without_scores_defaults_to_zero(self, db, service, football_api, make_fixture):
        fixture = make_fixture(kickoff=utc_now() - timedelta(minutes=2))
        football_api.set_state(fixture.api_id, "1H", None, None, elapsed=2)

        service.force_poll()
        db.session.expire_all()

        fixture = db.session.get(Fixture, fixture.id)
        assert fixture.status == FixtureStatus.LIVE
        assert (fixture.home_score, fixture.away_score) == (0, 0)

    def test_finished_fixture_scores_predictions(
        self, db, service, football_api, live_fixture, make_user, make_prediction
    ):
        exact_user, result_user = make_user(), make_user()
        exact = make_prediction(exact_user, live_fixture, 2, 1)
        result_only = make_prediction(result_user, live_fixture, 3, 0)
        draft = make_prediction(make_user(), live_fixture, 2, 1, submitted=False)
        football_api.set_state(live_fixture.api_id, "FT", 2, 1)

        result = service.force_poll()
        db.session.expire_all()

        assert result["newlyFinished"] == 1
        assert result["predictionsScored"] == 2
        assert result["currentlyLive"] == 0

        assert db.session.get(Prediction, exact.id).points == 5
        assert db.session.get(Prediction, result_only.id).points == 1
        assert db.session.get(Prediction, draft.id).points is None

        user = db.session.get(User, exact_user.id)
        assert user.total_points == 5
        assert user.total_predictions == 1
        assert user.correct_predictions == 1
        assert user.accuracy_rate == 100.0
        assert user.current_streak == 1

    def test_second_poll_is_idempotent(
        self, db, service, football_api, live_fixture, make_user, make_prediction
    ):
        user = make_user()
        prediction = make_prediction(user, live_fixture, 2, 1)
        football_api.set_state(live_fixture.api_id, "FT", 2, 1)

        service.force_poll()
        again = service.force_poll()
        db.session.expire_all()

        assert again["success"] is True
        assert again["fixturesUpdated"] == 0
        assert again["newlyFinished"] == 0
        assert again["predictionsScored"] == 0
        assert db.session.get(Prediction, prediction.id).points == 5
        assert db.session.get(User, user.id).total_points == 5

    def test_pending_predictions_in_window_are_scored(
        self, db, service, football_api, make_fixture, make_user, make_prediction
    ):
        # Finished before this process saw it, predictions never scored
        fixture = make_fixture(
            kickoff=utc_now() - timedelta(minutes=110),
            status=FixtureStatus.FINISHED,
            home_score=0,
            away_score=0,
        )
        prediction = make_prediction(make_user(), fixture, 1, 1)
        football_api.set_state(fixture.api_id, "FT", 0, 0)

        result = service.force_poll()
        db.session.expire_all()

        assert result["newlyFinished"] == 0
        assert result["predictionsScored"] == 1
        assert db.session.get(Prediction, prediction.id).points == 3

    def test_api_failure_keeps_polling_active(self, service, football_api, live_fixture):
        football_api.error = FootballApiError("service unavailable")

        started = service.start()

        assert started["poll"] == {"success": False, "error": "service unavailable"}
        status = service.status()
        assert status["isActive"] is True
        assert status["errors"] == 1
        assert status["lastError"] == "service unavailable"

    def test_recovery_clears_last_error(self, service, football_api, live_fixture):
        football_api.error = FootballApiError("timeout")
        service.force_poll()

        football_api.error = None
        service.force_poll()

        status = service.status()
        assert status["errors"] == 1
        assert status["lastError"] is None
        assert status["totalPolls"] == 2

    def test_daily_limit_blocks_api_call(self, app, service, football_api, live_fixture):
        app.config["DAILY_API_CALL_LIMIT"] = 0

        result = service.force_poll()

        assert result == {"success": False, "error": "Daily API call limit reached"}
        assert football_api.requested == []

    def test_api_calls_are_recorded(self, service, football_api, live_fixture):
        service.force_poll()
        service.force_poll()
        assert ApiUsage.calls_today() == 2

    def test_update_is_broadcast(self, service, football_api, live_fixture):
        channel = SSEChannel()
        service.broadcaster.add_subscriber("sse-test", channel)
        football_api.set_state(live_fixture.api_id, "2H", 1, 1, elapsed=80)

        service.force_poll()

        message = channel.next_message(0.01)
        assert message["type"] == "update"
        assert message["data"]["currentlyLive"] == 1
        assert message["data"]["fixtures"][0]["home_score"] == 1
        assert message["data"]["fixtures"][0]["away_score"] == 1

    def test_unchanged_poll_is_not_broadcast(self, service, football_api, live_fixture):
        channel = SSEChannel()
        service.broadcaster.add_subscriber("sse-test", channel)
        football_api.set_state(live_fixture.api_id, "2H", 1, 0, elapsed=30)

        service.force_poll()
        channel.next_message(0.01)
        service.force_poll()

        assert channel.next_message(0.01) is None


class TestSmartStart:
    def test_no_fixtures_leaves_polling_stopped(self, service):
        decision = service.smart_start()
        assert decision["action"] == "unchanged"
        assert decision["shouldPoll"] is False
        assert decision["reason"] == "No active or upcoming matches"

    def test_live_fixture_starts_then_stops(self, db, service, live_fixture):
        decision = service.smart_start()
        assert decision["action"] == "started"
        assert service.status()["isActive"] is True

        live_fixture.status = FixtureStatus.FINISHED
        db.session.commit()

        decision = service.smart_start()
        assert decision["action"] == "stopped"
        assert service.status()["isActive"] is False

    def test_upcoming_fixture_starts_polling(self, service, make_fixture):
        make_fixture(kickoff=utc_now() + timedelta(minutes=20))
        decision = service.smart_start()
        assert decision["action"] == "started"
        assert decision["details"]["upcomingIn30Min"] == 1

    def test_other_season_is_ignored(self, service, make_fixture):
        make_fixture(kickoff=utc_now() + timedelta(minutes=20), season="2024-25")
        assert service.smart_start()["shouldPoll"] is False

    def test_ensure_initialized_runs_once(self, app, service, live_fixture):
        app.config["LIVE_POLLING_AUTOSTART"] = True

        service.ensure_initialized()
        assert service.status()["isActive"] is True

        service.stop()
        service.ensure_initialized()
        assert service.status()["isActive"] is False


def fixture_payload(api_id, short, home, away, elapsed=None):
    return {
        "fixture": {"id": int(api_id), "status": {"short": short, "elapsed": elapsed}},
        "goals": {"home": home, "away": away},
    }


class TestApiUsageAccounting:
    @pytest.fixture
    def api_client(self, service):
        client = FootballApiClient(api_key="key")
        service.api_client = client
        return client

    def test_failed_request_counts_against_quota(self, service, api_client, live_fixture):
        with mock.patch.object(
            api_client.session, "get", return_value=api_response({}, 400)
        ) as get:
            result = service.force_poll()

        assert get.call_count == 1
        assert result["success"] is False
        assert ApiUsage.calls_today() == 1
        assert service.status()["errors"] == 1

    def test_failed_batch_keeps_other_batches(self, db, service, api_client, make_fixture):
        kickoff = utc_now() - timedelta(minutes=60)
        for _ in range(MAX_IDS_PER_REQUEST + 1):
            make_fixture(
                kickoff=kickoff, status=FixtureStatus.LIVE, home_score=0, away_score=0
            )

        responses = []

        def fake_get(url, params=None, timeout=None):
            if not responses:
                responses.append(400)
                return api_response({}, 400)
            ids = params["ids"].split("-")
            return api_response(
                {"response": [fixture_payload(api_id, "2H", 2, 0, 70) for api_id in ids]}
            )

        with mock.patch.object(api_client.session, "get", side_effect=fake_get):
            result = service.force_poll()
        db.session.expire_all()

        assert result["success"] is True
        assert result["errors"] == 1
        assert result["fixturesChecked"] == MAX_IDS_PER_REQUEST + 1
        assert result["fixturesUpdated"] == 1
        assert Fixture.query.filter_by(home_score=2).count() == 1
        assert ApiUsage.calls_today() == 2


class TestConcurrentPolls:
    def test_overlapping_force_polls_score_once(
        self, db, service, football_api, live_fixture, make_user, make_prediction
    ):
        user = make_user()
        prediction = make_prediction(user, live_fixture, 2, 1)
        football_api.set_state(live_fixture.api_id, "FT", 2, 1)
        fixture_id, prediction_id, user_id = live_fixture.id, prediction.id, user.id

        first_fetching = threading.Event()
        release = threading.Event()

        def hold_first_fetch():
            if not first_fetching.is_set():
                first_fetching.set()
                release.wait(5)

        football_api.on_fetch = hold_first_fetch

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(service.force_poll()))
            for _ in range(2)
        ]
        threads[0].start()
        assert first_fetching.wait(5)
        threads[1].start()
        time.sleep(0.05)
        release.set()
        for thread in threads:
            thread.join(5)

        db.session.expire_all()

        assert len(results) == 2
        assert all(result["success"] for result in results)
        assert sum(result["newlyFinished"] for result in results) == 1
        assert sum(result["predictionsScored"] for result in results) == 1
        assert len(football_api.requested) == 2

        fixture = db.session.get(Fixture, fixture_id)
        assert fixture.status == FixtureStatus.FINISHED
        assert (fixture.home_score, fixture.away_score) == (2, 1)
        assert db.session.get(Prediction, prediction_id).points == 5
        assert db.session.get(User, user_id).total_points == 5
        assert service.status()["totalPolls"] == 2
