from datetime import datetime, timezone

from app import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100))

    # Aggregates, always recomputed from scored predictions
    total_points = db.Column(db.Integer, default=0, nullable=False)
    total_predictions = db.Column(db.Integer, default=0, nullable=False)
    correct_predictions = db.Column(db.Integer, default=0, nullable=False)
    accuracy_rate = db.Column(db.Float, default=0.0, nullable=False)
    current_streak = db.Column(db.Integer, default=0, nullable=False)
    best_streak = db.Column(db.Integer, default=0, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (db.Index("idx_user_total_points", "total_points"),)

    def __repr__(self):
        return f"<User {self.username}>"

    @property
    def full_name(self):
        """Return display name or username"""
        return self.display_name or self.username

    def get_scored_predictions(self):
        """Scored predictions in fixture kickoff order"""
        from .fixture import Fixture
        from .prediction import Prediction

        return (
            Prediction.query.join(Fixture, Prediction.fixture_id == Fixture.id)
            .filter(
                Prediction.user_id == self.id,
                Prediction.is_submitted.is_(True),
                Prediction.points.isnot(None),
            )
            .order_by(Fixture.kickoff_time, Fixture.id)
            .all()
        )

    def recalculate_stats(self):
        """Recompute every aggregate from this user's scored predictions"""
        predictions = self.get_scored_predictions()

        total_points = 0
        correct = 0
        current_streak = 0
        best_streak = 0

        for prediction in predictions:
            total_points += prediction.points
            if prediction.is_correct:
                correct += 1
                current_streak += 1
                best_streak = max(best_streak, current_streak)
            else:
                current_streak = 0

        self.total_points = total_points
        self.total_predictions = len(predictions)
        self.correct_predictions = correct
        self.accuracy_rate = (
            round(correct / len(predictions) * 100, 2) if predictions else 0.0
        )
        self.current_streak = current_streak
        self.best_streak = best_streak

    def reset_stats(self):
        self.total_points = 0
        self.total_predictions = 0
        self.correct_predictions = 0
        self.accuracy_rate = 0.0
        self.current_streak = 0
        self.best_streak = 0

    @staticmethod
    def recalculate_stats_for(user_ids):
        """Recompute aggregates for a set of user ids (no commit)"""
        if not user_ids:
            return 0
        users = User.query.filter(User.id.in_(list(user_ids))).all()
        for user in users:
            user.recalculate_stats()
        return len(users)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.full_name,
            "total_points": self.total_points,
            "total_predictions": self.total_predictions,
            "correct_predictions": self.correct_predictions,
            "accuracy_rate": self.accuracy_rate,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
        }
