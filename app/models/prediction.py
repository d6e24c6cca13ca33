import logging
from datetime import datetime, timezone

from app import db

logger = logging.getLogger(__name__)


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    fixture_id = db.Column(db.Integer, db.ForeignKey("fixtures.id"), nullable=False)

    # Predicted scoreline
    home_score = db.Column(db.Integer, nullable=False)
    away_score = db.Column(db.Integer, nullable=False)
    is_submitted = db.Column(db.Boolean, default=False, nullable=False)
    submitted_at = db.Column(db.DateTime)

    # Results (calculated after the fixture finishes)
    points = db.Column(db.Integer)
    is_correct = db.Column(db.Boolean)
    category = db.Column(db.String(20))
    scored_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "fixture_id", name="unique_user_fixture_prediction"),
        db.Index("idx_prediction_fixture", "fixture_id"),
        db.Index("idx_prediction_user", "user_id"),
    )

    def __repr__(self):
        return (
            f"<Prediction user_id={self.user_id} fixture_id={self.fixture_id} "
            f"{self.home_score}-{self.away_score}>"
        )

    @property
    def is_scored(self):
        return self.points is not None

    def update_result(self):
        """
        Score this prediction against its fixture's final result.

        Returns:
            The points engine result, or None if the fixture is not scoreable
        """
        from app.utils.points import calculate_points

        if not self.fixture or not self.fixture.has_final_score:
            return None

        result = calculate_points(
            self.home_score,
            self.away_score,
            self.fixture.home_score,
            self.fixture.away_score,
        )
        self.points = result["points"]
        self.is_correct = result["is_correct"]
        self.category = result["category"]
        self.scored_at = datetime.now(timezone.utc)
        return result

    def clear_result(self):
        """Reset scoring fields so the prediction can be scored again"""
        self.points = None
        self.is_correct = None
        self.category = None
        self.scored_at = None

    @staticmethod
    def recalculate_for_fixture(fixture_id, commit=True):
        """
        Score every submitted prediction for a finished fixture.

        Recomputing yields the same values for the same final score, so this
        is safe to call again for an already-scored fixture.

        Returns:
            (number of predictions scored, set of affected user ids)
        """
        from .fixture import Fixture

        fixture = db.session.get(Fixture, fixture_id)
        if not fixture or not fixture.has_final_score:
            logger.warning(f"Fixture {fixture_id} is not finished or has no scores")
            return 0, set()

        predictions = Prediction.query.filter_by(
            fixture_id=fixture_id, is_submitted=True
        ).all()

        user_ids = set()
        for prediction in predictions:
            prediction.update_result()
            user_ids.add(prediction.user_id)

        if commit:
            db.session.commit()

        logger.info(
            f"Scored {len(predictions)} predictions for fixture {fixture_id} "
            f"(final {fixture.home_score}-{fixture.away_score})"
        )
        return len(predictions), user_ids

    @staticmethod
    def get_pending_fixture_ids():
        """Finished fixtures that still have submitted, unscored predictions"""
        from .fixture import Fixture, FixtureStatus

        rows = (
            db.session.query(Prediction.fixture_id)
            .join(Fixture, Prediction.fixture_id == Fixture.id)
            .filter(
                Fixture.status == FixtureStatus.FINISHED,
                Fixture.home_score.isnot(None),
                Fixture.away_score.isnot(None),
                Prediction.is_submitted.is_(True),
                Prediction.points.is_(None),
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def calculate_all_pending():
        """
        Score all finished fixtures with unscored predictions and refresh the
        affected users' aggregates.

        Returns:
            dict with processed fixture and prediction counts
        """
        from .user import User

        fixture_ids = Prediction.get_pending_fixture_ids()
        total_scored = 0
        affected_users = set()

        for fixture_id in fixture_ids:
            count, user_ids = Prediction.recalculate_for_fixture(fixture_id, commit=False)
            total_scored += count
            affected_users |= user_ids

        db.session.flush()
        User.recalculate_stats_for(affected_users)
        db.session.commit()

        return {
            "processed_fixtures": len(fixture_ids),
            "total_scores": total_scored,
            "users_updated": len(affected_users),
        }

    @staticmethod
    def get_scoring_stats():
        """
        Counts used by the admin scoring statistics endpoint.

        ``recalculated_points`` and ``breakdown`` rescore every scored
        prediction against its fixture's current result, so a corrected final
        score shows up as ``needs_rescoring`` until scores are recalculated.
        """
        from app.utils.points import calculate_total_points

        from .fixture import Fixture, FixtureStatus

        submitted = Prediction.query.filter_by(is_submitted=True)
        scored = submitted.filter(Prediction.points.isnot(None))

        scorelines = (
            db.session.query(
                Prediction.home_score,
                Prediction.away_score,
                Fixture.home_score,
                Fixture.away_score,
            )
            .join(Fixture, Prediction.fixture_id == Fixture.id)
            .filter(
                Prediction.is_submitted.is_(True),
                Prediction.points.isnot(None),
                Fixture.home_score.isnot(None),
                Fixture.away_score.isnot(None),
            )
            .all()
        )
        totals = calculate_total_points(scorelines)

        awarded = db.session.query(
            db.func.coalesce(db.func.sum(Prediction.points), 0)
        ).scalar()

        return {
            "finished_fixtures": Fixture.query.filter_by(
                status=FixtureStatus.FINISHED
            ).count(),
            "submitted_predictions": submitted.count(),
            "scored_predictions": scored.count(),
            "pending_predictions": submitted.count() - scored.count(),
            "pending_fixtures": len(Prediction.get_pending_fixture_ids()),
            "total_points_awarded": awarded,
            "recalculated_points": totals["total_points"],
            "needs_rescoring": awarded != totals["total_points"],
            "breakdown": totals["breakdown"],
        }

    @staticmethod
    def reset_all():
        """Clear scoring fields on every prediction; returns rows touched"""
        return Prediction.query.update(
            {
                Prediction.points: None,
                Prediction.is_correct: None,
                Prediction.category: None,
                Prediction.scored_at: None,
            },
            synchronize_session=False,
        )

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "fixture_id": self.fixture_id,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "is_submitted": self.is_submitted,
            "points": self.points,
            "is_correct": self.is_correct,
            "category": self.category,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
        }
