import logging
import uuid
from datetime import timedelta

from flask import Response, current_app, jsonify, request

from app import limiter
from app.models import Fixture
from app.routes.live import bp
from app.services.broadcaster import SSEChannel, event_stream, make_event
from app.services.live_scores_service import get_live_scores_service, get_live_snapshot
from app.utils.auth import trigger_auth_required
from app.utils.match_window import (
    compute_match_windows,
    compute_polling_window,
    is_in_polling_window,
    polling_decision,
)
from app.utils.timezone_utils import get_utc_time, to_iso

logger = logging.getLogger(__name__)

POLL_ACTIONS = ("start", "stop", "smart-start", "force-poll", "restart")


@bp.route("/")
def live_scores():
    """Live window summary and near-term fixtures from the database"""
    service = get_live_scores_service()
    service.ensure_initialized()
    snapshot = get_live_snapshot()
    return jsonify(
        {
            "success": True,
            **snapshot,
            "pollingStatus": service.status(),
            "apiCallMade": False,
        }
    )


@bp.route("/poll-status")
def poll_status():
    return jsonify(get_live_scores_service().status())


@bp.route("/poll-control", methods=["POST"])
@limiter.limit("30 per minute")
@trigger_auth_required
def poll_control():
    """Start, stop, smart-start, force a poll or restart the polling job"""
    action = request.args.get("action")
    if action is None and request.is_json:
        action = (request.get_json(silent=True) or {}).get("action")

    if action not in POLL_ACTIONS:
        return (
            jsonify(
                {
                    "error": "Invalid action. Use one of: " + ", ".join(POLL_ACTIONS),
                }
            ),
            400,
        )

    service = get_live_scores_service()

    try:
        if action == "start":
            result = service.start()
        elif action == "stop":
            result = service.stop()
        elif action == "smart-start":
            result = service.smart_start()
        elif action == "force-poll":
            result = service.force_poll()
        else:
            result = service.restart()

        return jsonify({"action": action, "result": result, "status": service.status()})

    except Exception as e:
        logger.error(f"Poll control action '{action}' failed: {e}", exc_info=True)
        return jsonify({"error": f"Poll control failed: {str(e)}"}), 500


@bp.route("/cron-tick", methods=["GET", "POST"])
@limiter.limit("30 per minute")
@trigger_auth_required
def cron_tick():
    """External scheduler tick: poll once if fixtures warrant it"""
    try:
        now = get_utc_time()
        fixtures = Fixture.get_scheduling_fixtures(
            now, season=current_app.config.get("SEASON_LABEL")
        )
        decision = polling_decision(now, fixtures)

        if not decision["shouldPoll"]:
            logger.info(f"Cron tick skipped: {decision['reason']}")
            return jsonify(
                {
                    "success": True,
                    "action": "skipped",
                    "reason": decision["reason"],
                    "details": decision["details"],
                    "timestamp": now.isoformat(),
                }
            )

        logger.info(f"Cron tick polling: {decision['reason']}")
        result = get_live_scores_service().force_poll()

        return jsonify(
            {
                "success": True,
                "action": "polled",
                "reason": decision["reason"],
                "details": decision["details"],
                "result": result,
                "timestamp": now.isoformat(),
            }
        )

    except Exception as e:
        logger.error(f"Cron tick error: {e}", exc_info=True)
        return jsonify({"success": False, "error": str(e)}), 500


@bp.route("/live-stream")
def live_stream():
    """Server-Sent Events stream of live score updates"""
    service = get_live_scores_service()
    service.ensure_initialized()
    client_id = f"sse-{uuid.uuid4().hex[:12]}"

    initial_events = [
        make_event("connection", {"clientId": client_id, "pollingStatus": service.status()})
    ]
    try:
        initial_events.append(make_event("initial-data", get_live_snapshot()))
    except Exception as e:
        logger.error(f"Error loading initial live data: {e}", exc_info=True)
        initial_events.append(make_event("error", {"message": "Failed to load initial data"}))

    stream = event_stream(
        service.broadcaster,
        client_id,
        SSEChannel(),
        initial_events,
        current_app.config.get("SSE_KEEPALIVE_SECONDS", 30),
    )

    return Response(
        stream,
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@bp.route("/match-window-check")
@trigger_auth_required
def match_window_check():
    """Polling windows for the next 48 hours and a recommendation"""
    try:
        now = get_utc_time()
        next_48_hours = now + timedelta(hours=48)
        next_7_days = now + timedelta(days=7)

        upcoming = Fixture.get_in_range(now, next_48_hours)
        week_ahead = Fixture.get_in_range(next_48_hours, next_7_days)

        windows = compute_match_windows(upcoming)
        in_window = any(is_in_polling_window(f, now) for f in upcoming)
        next_start = min(
            (
                compute_polling_window(f)["start"]
                for f in upcoming
                if compute_polling_window(f)["start"] > now
            ),
            default=None,
        )
        next_window = {"startPolling": to_iso(next_start)} if next_start else None

        if in_window:
            reason = "Currently in match window"
        elif upcoming:
            reason = f"{len(upcoming)} matches in next 48 hours"
        else:
            reason = "No matches scheduled soon"

        if next_window:
            next_action = f"Enable polling at {next_window['startPolling']}"
        elif week_ahead:
            next_action = f"Check again closer to {to_iso(week_ahead[0].kickoff_utc)}"
        else:
            next_action = "No upcoming matches to schedule"

        analysis = {
            "currentTime": now.isoformat(),
            "next48Hours": {
                "totalMatches": len(upcoming),
                "matchWindows": len(windows),
                "currentlyInWindow": in_window,
                "nextWindowStart": next_window["startPolling"] if next_window else None,
            },
            "next7Days": {
                "totalMatches": len(week_ahead),
                "nextMatchDate": to_iso(week_ahead[0].kickoff_utc) if week_ahead else None,
            },
            "recommendation": {
                "shouldEnablePolling": in_window or len(upcoming) > 0,
                "reason": reason,
                "nextAction": next_action,
            },
        }

        return jsonify(
            {
                "success": True,
                "analysis": analysis,
                "matchWindows": windows,
                "upcomingMatches": [f.to_dict() for f in upcoming],
                "timestamp": now.isoformat(),
            }
        )

    except Exception as e:
        logger.error(f"Match window check error: {e}", exc_info=True)
        return jsonify({"success": False, "error": str(e)}), 500
