from datetime import datetime, timedelta, timezone

import pytest

from conftest import utc_now

from app.models import ApiUsage, Fixture, FixtureStatus, Prediction, User
from app.utils.fixture_sync import sync_fixtures, sync_teams


class TestApplyMatchState:
    def test_scheduled_scores_are_cleared(self, make_fixture):
        fixture = make_fixture(kickoff=utc_now())
        assert fixture.apply_match_state(FixtureStatus.SCHEDULED, 1, 1) is False
        assert fixture.home_score is None

    def test_live_scores_default_to_zero(self, make_fixture):
        fixture = make_fixture(kickoff=utc_now())
        assert fixture.apply_match_state(FixtureStatus.LIVE, None, None, minute=1) is True
        assert (fixture.home_score, fixture.away_score, fixture.minute) == (0, 0, 1)

    def test_minute_only_kept_while_live(self, make_fixture):
        fixture = make_fixture(kickoff=utc_now(), status=FixtureStatus.LIVE, home_score=1, away_score=1)
        fixture.apply_match_state(FixtureStatus.FINISHED, 1, 1, minute=90)
        assert fixture.minute is None
        assert fixture.has_final_score

    def test_unchanged_state(self, make_fixture):
        fixture = make_fixture(
            kickoff=utc_now(), status=FixtureStatus.FINISHED, home_score=2, away_score=0
        )
        assert fixture.apply_match_state(FixtureStatus.FINISHED, 2, 0) is False


class TestPollingCandidates:
    def test_window_and_live_status(self, make_fixture):
        now = utc_now()
        in_play = make_fixture(kickoff=now - timedelta(minutes=100), status=FixtureStatus.LIVE)
        about_to_start = make_fixture(kickoff=now + timedelta(minutes=25))
        long_ago_but_live = make_fixture(
            kickoff=now - timedelta(hours=5), status=FixtureStatus.LIVE
        )
        make_fixture(kickoff=now + timedelta(hours=2))
        make_fixture(kickoff=now - timedelta(hours=4), status=FixtureStatus.FINISHED)
        make_fixture(kickoff=None)

        candidates = Fixture.get_polling_candidates(now)

        assert {f.id for f in candidates} == {
            in_play.id,
            about_to_start.id,
            long_ago_but_live.id,
        }

    def test_kickoff_utc_is_aware(self, make_fixture):
        kickoff = datetime(2025, 1, 18, 15, 0, tzinfo=timezone.utc)
        fixture = make_fixture(kickoff=kickoff)
        assert fixture.kickoff_utc == kickoff
        assert fixture.to_dict()["kickoff"] == "2025-01-18T15:00:00+00:00"


class TestUserStats:
    def finished(self, make_fixture, hours_ago, home, away):
        return make_fixture(
            kickoff=utc_now() - timedelta(hours=hours_ago),
            status=FixtureStatus.FINISHED,
            home_score=home,
            away_score=away,
        )

    def test_aggregates_and_streaks(self, db, make_fixture, make_user, make_prediction):
        user = make_user()
        results = [
            (self.finished(make_fixture, 50, 2, 1), (2, 1)),  # exact
            (self.finished(make_fixture, 40, 1, 0), (2, 0)),  # result
            (self.finished(make_fixture, 30, 0, 0), (1, 2)),  # none
            (self.finished(make_fixture, 20, 3, 1), (2, 0)),  # difference
        ]
        for fixture, (home, away) in results:
            make_prediction(user, fixture, home, away)

        Prediction.calculate_all_pending()
        user = db.session.get(User, user.id)

        assert user.total_points == 5 + 1 + 0 + 3
        assert user.total_predictions == 4
        assert user.correct_predictions == 3
        assert user.accuracy_rate == 75.0
        assert user.current_streak == 1
        assert user.best_streak == 2

    def test_recalculation_is_idempotent(self, db, make_fixture, make_user, make_prediction):
        user = make_user()
        fixture = self.finished(make_fixture, 3, 1, 1)
        make_prediction(user, fixture, 0, 0)

        Prediction.recalculate_for_fixture(fixture.id)
        User.recalculate_stats_for({user.id})
        db.session.commit()
        Prediction.recalculate_for_fixture(fixture.id)
        User.recalculate_stats_for({user.id})
        db.session.commit()

        assert db.session.get(User, user.id).total_points == 3

    def test_unfinished_fixture_is_not_scored(self, make_fixture, make_user, make_prediction):
        fixture = make_fixture(kickoff=utc_now(), status=FixtureStatus.LIVE, home_score=0, away_score=0)
        make_prediction(make_user(), fixture, 0, 0)
        assert Prediction.recalculate_for_fixture(fixture.id) == (0, set())

    def test_scoring_stats(self, make_fixture, make_user, make_prediction):
        fixture = self.finished(make_fixture, 3, 2, 2)
        make_prediction(make_user(), fixture, 2, 2)
        make_prediction(make_user(), fixture, 1, 0)
        Prediction.calculate_all_pending()

        stats = Prediction.get_scoring_stats()
        assert stats["scored_predictions"] == 2
        assert stats["pending_predictions"] == 0
        assert stats["total_points_awarded"] == 5
        assert stats["recalculated_points"] == 5
        assert stats["needs_rescoring"] is False
        assert stats["breakdown"] == {"exact": 1, "difference": 0, "result": 0, "none": 1}

    def test_corrected_result_needs_rescoring(self, db, make_fixture, make_user, make_prediction):
        fixture = self.finished(make_fixture, 3, 1, 0)
        make_prediction(make_user(), fixture, 1, 0)
        Prediction.calculate_all_pending()

        fixture.home_score, fixture.away_score = 2, 1
        db.session.commit()

        stats = Prediction.get_scoring_stats()
        assert stats["total_points_awarded"] == 5
        assert stats["recalculated_points"] == 3
        assert stats["needs_rescoring"] is True


class TestApiUsage:
    def test_daily_count_resets_on_new_day(self, db, app):
        yesterday = datetime(2025, 1, 17, 22, 0, tzinfo=timezone.utc)
        today = datetime(2025, 1, 18, 9, 0, tzinfo=timezone.utc)

        ApiUsage.record("live_scores", 3, yesterday)
        db.session.commit()
        assert ApiUsage.calls_today(yesterday) == 3
        assert ApiUsage.calls_today(today) == 0

        app.config["DAILY_API_CALL_LIMIT"] = 5
        ApiUsage.record("live_scores", 2, today)
        db.session.commit()
        assert ApiUsage.remaining_today(today) == 3


@pytest.mark.usefixtures("db")
class TestFixtureSync:
    def test_sync_teams(self, football_api):
        count, source = sync_teams(football_api)
        assert (count, source) == (6, "fallback")

    def test_sync_fixtures_is_an_upsert(self, football_api):
        count, source = sync_fixtures(football_api, "2025-26", 21)
        assert (count, source) == (3, "fallback")

        sync_fixtures(football_api, "2025-26", 21)
        fixtures = Fixture.query.order_by(Fixture.api_id).all()

        assert len(fixtures) == 3
        assert fixtures[0].api_id == "868086"
        assert fixtures[0].gameweek == 21
        assert fixtures[0].status == FixtureStatus.SCHEDULED
        assert fixtures[0].home_team.name == "Liverpool"
        assert fixtures[0].kickoff_utc == datetime(2025, 1, 18, 15, 0, tzinfo=timezone.utc)
