from datetime import datetime, timedelta, timezone

from app import db


class FixtureStatus:
    """Internal fixture status vocabulary"""

    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    FINISHED = "FINISHED"
    SUSPENDED = "SUSPENDED"
    POSTPONED = "POSTPONED"

    ALL = (SCHEDULED, LIVE, FINISHED, SUSPENDED, POSTPONED)


class Fixture(db.Model):
    __tablename__ = "fixtures"

    id = db.Column(db.Integer, primary_key=True)

    # External ID for API integration
    api_id = db.Column(db.String(50), unique=True, index=True)

    # Fixture identification
    gameweek = db.Column(db.Integer, nullable=False)
    season = db.Column(db.String(10), nullable=False)

    # Teams
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    # Kickoff is stored in UTC; null until the fixture is schedulable
    kickoff_time = db.Column(db.DateTime)

    # Match state
    status = db.Column(db.String(20), nullable=False, default=FixtureStatus.SCHEDULED)
    status_long = db.Column(db.String(50))
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)
    minute = db.Column(db.Integer)

    # Descriptive
    venue = db.Column(db.String(120))
    referee = db.Column(db.String(120))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    home_team = db.relationship("Team", foreign_keys=[home_team_id])
    away_team = db.relationship("Team", foreign_keys=[away_team_id])
    predictions = db.relationship(
        "Prediction", backref="fixture", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_fixture_season_gameweek", "season", "gameweek"),
        db.Index("idx_fixture_kickoff", "kickoff_time"),
        db.Index("idx_fixture_status", "status"),
        db.CheckConstraint("home_team_id != away_team_id", name="different_teams"),
    )

    def __repr__(self):
        home = self.home_team.short_name if self.home_team else "TBD"
        away = self.away_team.short_name if self.away_team else "TBD"
        return f"<Fixture {home} v {away} GW{self.gameweek} {self.status}>"

    @property
    def is_finished(self):
        return self.status == FixtureStatus.FINISHED

    @property
    def is_live(self):
        return self.status == FixtureStatus.LIVE

    @property
    def has_final_score(self):
        """Finished with both scores recorded (scoreable)"""
        return (
            self.is_finished and self.home_score is not None and self.away_score is not None
        )

    @property
    def kickoff_utc(self):
        """Kickoff as an aware UTC datetime (None if unscheduled)"""
        if self.kickoff_time is None:
            return None
        if self.kickoff_time.tzinfo is None:
            return self.kickoff_time.replace(tzinfo=timezone.utc)
        return self.kickoff_time.astimezone(timezone.utc)

    def apply_match_state(self, status, home_score, away_score, minute=None, status_long=None):
        """
        Apply match state reported by the external source.

        Scores are kept null while the fixture is scheduled and forced to a
        value (0 when unreported) once it is live or finished.

        Returns:
            True if any field changed
        """
        if status in (FixtureStatus.LIVE, FixtureStatus.FINISHED):
            home_score = home_score if home_score is not None else 0
            away_score = away_score if away_score is not None else 0
        elif status == FixtureStatus.SCHEDULED:
            home_score = None
            away_score = None

        if status != FixtureStatus.LIVE:
            minute = None

        changed = (
            self.status != status
            or self.home_score != home_score
            or self.away_score != away_score
            or self.minute != minute
            or (status_long is not None and self.status_long != status_long)
        )

        if changed:
            self.status = status
            self.home_score = home_score
            self.away_score = away_score
            self.minute = minute
            if status_long is not None:
                self.status_long = status_long

        return changed

    @staticmethod
    def get_polling_candidates(now, lookback_minutes=150, lookahead_minutes=30):
        """Fixtures that may need their state fetched around ``now``"""
        naive_now = now.astimezone(timezone.utc).replace(tzinfo=None)
        window_start = naive_now - timedelta(minutes=lookback_minutes)
        window_end = naive_now + timedelta(minutes=lookahead_minutes)

        return (
            Fixture.query.filter(
                Fixture.api_id.isnot(None),
                db.or_(
                    Fixture.status == FixtureStatus.LIVE,
                    db.and_(
                        Fixture.kickoff_time.isnot(None),
                        Fixture.kickoff_time >= window_start,
                        Fixture.kickoff_time <= window_end,
                    ),
                ),
            )
            .order_by(Fixture.kickoff_time)
            .all()
        )

    @staticmethod
    def get_in_range(start, end, statuses=None):
        """Fixtures kicking off between two aware datetimes"""
        query = Fixture.query.filter(
            Fixture.kickoff_time >= start.astimezone(timezone.utc).replace(tzinfo=None),
            Fixture.kickoff_time <= end.astimezone(timezone.utc).replace(tzinfo=None),
        )
        if statuses:
            query = query.filter(Fixture.status.in_(statuses))
        return query.order_by(Fixture.kickoff_time).all()

    @staticmethod
    def get_scheduling_fixtures(now, season=None):
        """
        Fixtures relevant for the should-we-poll decision: everything live,
        plus anything kicking off from a day ago to a day ahead.
        """
        naive_now = now.astimezone(timezone.utc).replace(tzinfo=None)
        query = Fixture.query.filter(
            db.or_(
                Fixture.status == FixtureStatus.LIVE,
                db.and_(
                    Fixture.kickoff_time >= naive_now - timedelta(hours=24),
                    Fixture.kickoff_time <= naive_now + timedelta(hours=24),
                ),
            )
        )
        if season:
            query = query.filter(Fixture.season == season)
        return query.order_by(Fixture.kickoff_time).all()

    def to_dict(self):
        """Convert fixture to dictionary for API responses"""
        kickoff = self.kickoff_utc
        return {
            "id": self.id,
            "api_id": self.api_id,
            "gameweek": self.gameweek,
            "season": self.season,
            "home_team": self.home_team.to_dict() if self.home_team else None,
            "away_team": self.away_team.to_dict() if self.away_team else None,
            "kickoff": kickoff.isoformat() if kickoff else None,
            "status": self.status,
            "status_long": self.status_long,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "minute": self.minute,
            "venue": self.venue,
            "referee": self.referee,
        }
