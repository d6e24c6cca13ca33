"""
Premier Predictor Live Scores Polling Service

Polls the football data API on a fixed interval while matches are live,
writes changed fixture state, scores predictions for matches that just
finished and pushes updates to connected clients. Built on APScheduler so
the recurring job can be started and stopped on demand.
"""

import atexit
import logging
import math
import threading
import time
from datetime import timedelta

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import current_app

from app import db
from app.models import ApiUsage, Fixture, FixtureStatus, Prediction, User
from app.services.broadcaster import EventBroadcaster, make_event
from app.utils.cache_utils import cached_query, invalidate_model_cache
from app.utils.football_api import (
    MAX_IDS_PER_REQUEST,
    FootballApiClient,
    FootballApiError,
    parse_match_state,
)
from app.utils.match_window import compute_live_window_summary, polling_decision
from app.utils.timezone_utils import get_app_timezone, get_utc_time, to_iso

logger = logging.getLogger(__name__)

POLL_JOB_ID = "live_scores_poll"
SYNC_TYPE = "live_scores"


def get_live_scores_service():
    """The service owned by the current Flask app"""
    return current_app.extensions["live_scores"]


@cached_query("Fixture")
def get_live_snapshot():
    """Live window summary and near-term fixtures, cached between polls"""
    now = get_utc_time()
    fixtures = Fixture.get_scheduling_fixtures(
        now, season=current_app.config.get("SEASON_LABEL")
    )
    summary = compute_live_window_summary(fixtures, now, get_app_timezone())

    return {
        "isLive": summary["is_live"],
        "liveMatches": [f.to_dict() for f in summary["matches_in_window"]],
        "nextMatchStart": to_iso(summary["next_match_start"]),
        "allMatchesFinished": summary["all_matches_finished"],
        "fixtures": [f.to_dict() for f in fixtures],
        "generatedAt": now.isoformat(),
    }


class LiveScoresService:
    """Owns the recurring poll job and the subscriber broadcaster"""

    def __init__(self, app=None, api_client=None, broadcaster=None, scheduler=None):
        self.app = None
        self.api_client = api_client
        self.broadcaster = broadcaster or EventBroadcaster()
        self.scheduler = scheduler
        self._job = None
        self._lock = threading.Lock()
        self._poll_lock = threading.Lock()
        self._initialized = False
        self._last_poll = None
        self._next_poll = None
        self._currently_live = 0
        self._total_polls = 0
        self._errors = 0
        self._last_error = None

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Attach to a Flask app and register housekeeping jobs"""
        self.app = app
        if self.scheduler is None:
            self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        if self.api_client is None:
            self.api_client = FootballApiClient.from_app(app)

        app.extensions["live_scores"] = self

        self._add_housekeeping_jobs()

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True) and not self.scheduler.running:
            self.scheduler.start()
            logger.info("Live scores scheduler started")

    def _add_housekeeping_jobs(self):
        keepalive = self.app.config.get("SSE_KEEPALIVE_SECONDS", 30)
        check_minutes = self.app.config.get("SMART_START_CHECK_MINUTES", 60)

        self.scheduler.add_job(
            func=self.broadcaster.prune_stale,
            args=[keepalive * 2],
            trigger=IntervalTrigger(seconds=keepalive),
            id="prune_stale_subscribers",
            name="Prune Stale Subscribers",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        self.scheduler.add_job(
            func=self._scheduled_smart_start,
            trigger=IntervalTrigger(minutes=check_minutes),
            id="smart_start_check",
            name="Smart Start Check",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
            replace_existing=True,
        )

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Live scores scheduler stopped")

    @property
    def is_active(self):
        return self._job is not None

    @property
    def poll_interval(self):
        return timedelta(minutes=self.app.config.get("POLL_INTERVAL_MINUTES", 15))

    def status(self):
        """Snapshot of the polling state"""
        with self._lock:
            return {
                "isActive": self._job is not None,
                "lastPoll": to_iso(self._last_poll),
                "nextPoll": to_iso(self._next_poll),
                "currentlyLiveCount": self._currently_live,
                "totalPolls": self._total_polls,
                "errors": self._errors,
                "lastError": self._last_error,
                "subscribers": self.broadcaster.subscriber_count(),
            }

    def start(self):
        """
        Start the recurring poll job and run one cycle immediately.

        Returns:
            dict with ``started`` and, when started, the immediate ``poll``
            result
        """
        with self._lock:
            if self._job is not None:
                logger.info("Live polling already active")
                return {"started": False, "message": "Polling already active"}

            self._job = self.scheduler.add_job(
                func=self._scheduled_poll,
                trigger=IntervalTrigger(seconds=self.poll_interval.total_seconds()),
                id=POLL_JOB_ID,
                name="Poll Live Scores",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
                replace_existing=True,
            )
            self._next_poll = get_utc_time() + self.poll_interval

        logger.info(
            f"Live polling started (every {self.poll_interval.total_seconds() / 60:g} minutes)"
        )
        return {"started": True, "poll": self.poll()}

    def stop(self):
        """Remove the recurring poll job; safe to call when already stopped"""
        with self._lock:
            job, self._job = self._job, None
            self._next_poll = None

        if job is None:
            return {"stopped": False, "message": "Polling not active"}

        try:
            job.remove()
        except JobLookupError:
            logger.debug("Poll job already removed from scheduler")

        logger.info("Live polling stopped")
        return {"stopped": True}

    def smart_start(self):
        """
        Start or stop polling based on the fixtures around now.

        Returns:
            The polling decision plus the ``action`` taken
        """
        with self.app.app_context():
            now = get_utc_time()
            fixtures = Fixture.get_scheduling_fixtures(
                now, season=self.app.config.get("SEASON_LABEL")
            )
            decision = polling_decision(now, fixtures)

        if decision["shouldPoll"] and not self.is_active:
            self.start()
            action = "started"
        elif not decision["shouldPoll"] and self.is_active:
            self.stop()
            action = "stopped"
        else:
            action = "unchanged"

        logger.info(
            f"Smart start: {action} (should poll: {decision['shouldPoll']}, "
            f"reason: {decision['reason']})"
        )
        return {"action": action, **decision}

    def restart(self):
        self.stop()
        time.sleep(self.app.config.get("RESTART_DELAY_SECONDS", 1))
        return self.smart_start()

    def force_poll(self):
        """Run one poll cycle now without touching the recurring job"""
        logger.info("Manual poll triggered")
        return self.poll()

    def ensure_initialized(self):
        """Smart-start once per process on first use, if autostart is enabled"""
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            self._initialized = True

        if not self.app.config.get("LIVE_POLLING_AUTOSTART", True):
            return

        try:
            self.smart_start()
        except Exception as e:
            logger.error(f"Error initializing live polling: {e}", exc_info=True)

    def _scheduled_poll(self):
        self.poll()

    def _scheduled_smart_start(self):
        try:
            self.smart_start()
        except Exception as e:
            logger.error(f"Error in scheduled smart start: {e}", exc_info=True)

    def poll(self):
        """
        One poll cycle. Never raises; failures are reported in the result.
        Cycles run one at a time, so overlapping triggers wait for the
        running cycle and then see the state it committed.

        Returns:
            dict with ``success`` and either cycle counts or an ``error``
        """
        with self._poll_lock, self.app.app_context():
            try:
                result = self._run_cycle()
            except FootballApiError as e:
                db.session.rollback()
                logger.warning(f"Live poll failed: {e}")
                result = {"success": False, "error": str(e)}
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error in live poll: {e}", exc_info=True)
                result = {"success": False, "error": str(e)}

        self._record_cycle(result)
        return result

    def _record_cycle(self, result):
        now = get_utc_time()
        with self._lock:
            self._last_poll = now
            self._total_polls += 1
            if result.get("success"):
                self._last_error = None
                self._currently_live = result.get("currentlyLive", self._currently_live)
            else:
                self._errors += 1
                self._last_error = result.get("error")
            # A cycle finishing after stop() must not reschedule
            if self._job is not None:
                self._next_poll = now + self.poll_interval

    def _run_cycle(self):
        now = get_utc_time()
        result = {
            "success": True,
            "fixturesChecked": 0,
            "fixturesUpdated": 0,
            "newlyFinished": 0,
            "predictionsScored": 0,
            "currentlyLive": 0,
            "errors": 0,
        }

        candidates = Fixture.get_polling_candidates(now)
        if not candidates:
            result["currentlyLive"] = Fixture.query.filter_by(
                status=FixtureStatus.LIVE
            ).count()
            result["message"] = "No fixtures in a polling window"
            logger.debug("No fixtures in a polling window, skipping API call")
            return result

        calls_needed = math.ceil(len(candidates) / MAX_IDS_PER_REQUEST)
        remaining = ApiUsage.remaining_today(now)
        if remaining < calls_needed:
            logger.warning(
                f"Daily API call limit reached ({remaining} remaining, {calls_needed} needed)"
            )
            return {"success": False, "error": "Daily API call limit reached"}

        logger.info(f"Polling live scores for {len(candidates)} fixtures")
        sent = []
        try:
            payloads, fetch_errors = self.api_client.get_fixtures_by_ids(
                [fixture.api_id for fixture in candidates],
                on_send=lambda: sent.append(1),
            )
        finally:
            # Every request sent counts against the quota, failed ones included
            if sent:
                ApiUsage.record(SYNC_TYPE, len(sent), now)
                db.session.commit()

        if fetch_errors and not payloads:
            logger.warning(f"Live poll failed: {fetch_errors[0]}")
            return {"success": False, "error": fetch_errors[0]}
        result["errors"] += len(fetch_errors)

        states = {}
        for item in payloads:
            state = parse_match_state(item)
            states[state["api_id"]] = state

        # PHASE 1: Update fixture state
        changed = []
        newly_finished = []
        for fixture in candidates:
            result["fixturesChecked"] += 1
            state = states.get(fixture.api_id)
            if state is None:
                logger.debug(f"No data returned for fixture {fixture.api_id}")
                continue
            try:
                was_finished = fixture.is_finished
                if fixture.apply_match_state(
                    state["status"],
                    state["home_score"],
                    state["away_score"],
                    minute=state["minute"],
                    status_long=state["status_long"],
                ):
                    changed.append(fixture)
                    logger.info(
                        f"Score update: {fixture} {fixture.home_score}-{fixture.away_score}"
                    )
                    if fixture.is_finished and not was_finished:
                        newly_finished.append(fixture.id)
            except Exception as e:
                result["errors"] += 1
                logger.error(
                    f"Error updating fixture {fixture.api_id}: {e}", exc_info=True
                )

        db.session.commit()
        result["fixturesUpdated"] = len(changed)
        result["newlyFinished"] = len(newly_finished)

        # PHASE 2: Score predictions for finished fixtures
        candidate_ids = {fixture.id for fixture in candidates}
        to_score = set(newly_finished) | (
            set(Prediction.get_pending_fixture_ids()) & candidate_ids
        )
        affected_users = set()
        for fixture_id in sorted(to_score):
            count, user_ids = Prediction.recalculate_for_fixture(fixture_id, commit=False)
            result["predictionsScored"] += count
            affected_users |= user_ids

        if to_score:
            db.session.flush()
            User.recalculate_stats_for(affected_users)
            db.session.commit()
            logger.info(
                f"Scored {result['predictionsScored']} predictions across "
                f"{len(to_score)} finished fixtures"
            )

        result["currentlyLive"] = Fixture.query.filter_by(
            status=FixtureStatus.LIVE
        ).count()

        if changed or to_score:
            invalidate_model_cache("Fixture")

        if changed:
            self._emit_score_updates(changed, result)

        logger.info(
            f"Live poll completed. Live matches: {result['currentlyLive']}, "
            f"updates: {result['fixturesUpdated']}"
        )
        return result

    def _emit_score_updates(self, fixtures, result):
        """Push changed fixture state to every subscriber"""
        try:
            self.broadcaster.broadcast(
                make_event(
                    "update",
                    {
                        "fixtures": [fixture.to_dict() for fixture in fixtures],
                        "currentlyLive": result["currentlyLive"],
                        "newlyFinished": result["newlyFinished"],
                    },
                )
            )
        except Exception as e:
            logger.error(f"Error emitting score updates: {e}")
