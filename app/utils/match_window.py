"""
Match window calculations used to decide when live polling is worthwhile.

All functions are pure: they take fixtures (any object with ``kickoff_time``
and ``status``) and an explicit ``now``. Naive datetimes are treated as UTC
and fixtures without a kickoff time never fall inside a window.
"""

from datetime import timedelta, timezone

from app.models.fixture import FixtureStatus
from app.utils.timezone_utils import ensure_utc, local_day_bounds, to_iso

LIVE_WINDOW = timedelta(minutes=120)
POLL_LEAD = timedelta(minutes=30)
POLL_TAIL = timedelta(minutes=150)
UPCOMING_HORIZON = timedelta(minutes=30)
RECENT_LOOKBACK = timedelta(minutes=15)


def _kickoff(fixture):
    return ensure_utc(getattr(fixture, "kickoff_time", None))


def _fixture_label(fixture):
    home = getattr(fixture, "home_team", None)
    away = getattr(fixture, "away_team", None)
    if home is not None and away is not None:
        return f"{getattr(home, 'name', home)} vs {getattr(away, 'name', away)}"
    return str(getattr(fixture, "id", "fixture"))


def is_in_live_window(fixture, now):
    """Kicked off within the last two hours and not yet finished"""
    kickoff = _kickoff(fixture)
    if kickoff is None:
        return False
    now = ensure_utc(now)
    return (
        kickoff <= now <= kickoff + LIVE_WINDOW
        and fixture.status != FixtureStatus.FINISHED
    )


def get_live_matches(fixtures, now):
    return [f for f in fixtures if is_in_live_window(f, now)]


def compute_live_window_summary(fixtures, now, tz=timezone.utc):
    """
    Summarize live conditions for a set of fixtures.

    ``all_matches_finished`` looks at the fixtures kicking off on the
    calendar day containing ``now`` in ``tz``; it is False when there are
    none.

    Returns:
        dict with ``is_live``, ``matches_in_window``, ``next_match_start``
        and ``all_matches_finished``
    """
    now = ensure_utc(now)
    live = get_live_matches(fixtures, now)

    upcoming = sorted(
        (
            _kickoff(f)
            for f in fixtures
            if f.status == FixtureStatus.SCHEDULED
            and _kickoff(f) is not None
            and _kickoff(f) > now
        )
    )

    day_start, day_end = local_day_bounds(now, tz)
    todays = [
        f
        for f in fixtures
        if _kickoff(f) is not None and day_start <= _kickoff(f) < day_end
    ]

    return {
        "is_live": len(live) > 0,
        "matches_in_window": live,
        "next_match_start": upcoming[0] if upcoming else None,
        "all_matches_finished": bool(todays)
        and all(f.status == FixtureStatus.FINISHED for f in todays),
    }


def _classify(now, fixtures):
    now = ensure_utc(now)
    horizon = now + UPCOMING_HORIZON
    recent_start = now - RECENT_LOOKBACK

    # A LIVE status counts even when the kickoff is unknown
    live = [f for f in fixtures if f.status == FixtureStatus.LIVE]
    upcoming = sorted(
        (
            f
            for f in fixtures
            if f.status == FixtureStatus.SCHEDULED
            and _kickoff(f) is not None
            and now <= _kickoff(f) <= horizon
        ),
        key=_kickoff,
    )
    recent = [
        f
        for f in fixtures
        if f.status in (FixtureStatus.LIVE, FixtureStatus.FINISHED)
        and _kickoff(f) is not None
        and recent_start <= _kickoff(f) <= horizon
    ]
    return now, live, upcoming, recent


def should_poll_now(now, fixtures):
    """
    True if any fixture is LIVE, any SCHEDULED fixture kicks off within the
    next 30 minutes, or a recently kicked-off fixture is still LIVE.
    """
    _, live, upcoming, recent = _classify(now, fixtures)
    return (
        len(live) > 0
        or len(upcoming) > 0
        or any(f.status == FixtureStatus.LIVE for f in recent)
    )


def polling_decision(now, fixtures):
    """
    The should-poll decision with a human readable reason and counts.

    Returns:
        dict with ``shouldPoll``, ``reason`` and ``details``
    """
    now, live, upcoming, recent = _classify(now, fixtures)
    should_poll = should_poll_now(now, fixtures)

    if live:
        reason = f"{len(live)} matches currently live"
    elif upcoming:
        minutes_until = round((_kickoff(upcoming[0]) - now).total_seconds() / 60)
        reason = f"{len(upcoming)} matches starting in {minutes_until} minutes"
    elif recent:
        reason = f"Monitoring {len(recent)} recent matches for completion"
    else:
        reason = "No active or upcoming matches"

    next_match = None
    if upcoming:
        next_match = {
            "teams": _fixture_label(upcoming[0]),
            "kickoff": to_iso(_kickoff(upcoming[0])),
        }

    return {
        "shouldPoll": should_poll,
        "reason": reason,
        "details": {
            "currentTime": now.isoformat(),
            "liveMatches": len(live),
            "upcomingIn30Min": len(upcoming),
            "recentMatches": len(recent),
            "nextMatch": next_match,
        },
    }


def compute_polling_window(fixture):
    """Polling window from 30 minutes before kickoff to 150 minutes after"""
    kickoff = _kickoff(fixture)
    if kickoff is None:
        return None
    return {"start": kickoff - POLL_LEAD, "end": kickoff + POLL_TAIL}


def is_in_polling_window(fixture, now):
    window = compute_polling_window(fixture)
    if window is None:
        return False
    return window["start"] <= ensure_utc(now) <= window["end"]


def compute_match_windows(fixtures):
    """Serializable polling windows for every fixture with a kickoff"""
    windows = []
    for fixture in fixtures:
        window = compute_polling_window(fixture)
        if window is None:
            continue
        windows.append(
            {
                "matchId": getattr(fixture, "id", None),
                "teams": _fixture_label(fixture),
                "kickoff": to_iso(_kickoff(fixture)),
                "startPolling": to_iso(window["start"]),
                "endPolling": to_iso(window["end"]),
                "status": fixture.status,
            }
        )
    return windows
