from datetime import datetime, timezone

from flask import current_app

from app import db


class ApiUsage(db.Model):
    """Daily external API call ledger, one row per sync type"""

    __tablename__ = "api_usage"

    id = db.Column(db.Integer, primary_key=True)
    sync_type = db.Column(db.String(50), unique=True, nullable=False)
    api_calls = db.Column(db.Integer, default=0, nullable=False)
    last_sync = db.Column(db.DateTime)

    def __repr__(self):
        return f"<ApiUsage {self.sync_type} calls={self.api_calls}>"

    def _reset_if_new_day(self, now):
        if self.last_sync is None:
            return
        last_sync = self.last_sync
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=timezone.utc)
        if last_sync.date() != now.date():
            self.api_calls = 0

    @staticmethod
    def get_or_create(sync_type, now=None):
        now = now or datetime.now(timezone.utc)
        usage = ApiUsage.query.filter_by(sync_type=sync_type).first()
        if not usage:
            usage = ApiUsage(sync_type=sync_type, api_calls=0)
            db.session.add(usage)
        usage._reset_if_new_day(now)
        return usage

    @staticmethod
    def calls_today(now=None):
        """Calls made today across all sync types"""
        now = now or datetime.now(timezone.utc)
        total = 0
        for usage in ApiUsage.query.all():
            usage._reset_if_new_day(now)
            total += usage.api_calls
        return total

    @staticmethod
    def remaining_today(now=None):
        limit = current_app.config.get("DAILY_API_CALL_LIMIT", 100)
        return max(0, limit - ApiUsage.calls_today(now))

    @staticmethod
    def record(sync_type, calls=1, now=None):
        """Add calls to today's count for a sync type (no commit)"""
        now = now or datetime.now(timezone.utc)
        usage = ApiUsage.get_or_create(sync_type, now)
        usage.api_calls += calls
        usage.last_sync = now
        return usage

    def to_dict(self):
        return {
            "sync_type": self.sync_type,
            "api_calls": self.api_calls,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
        }
