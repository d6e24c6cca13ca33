from datetime import datetime, timezone

from app import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # External ID for API integration
    api_id = db.Column(db.String(50), unique=True, index=True)

    name = db.Column(db.String(100), nullable=False)
    short_name = db.Column(db.String(50))
    code = db.Column(db.String(5))
    logo_url = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Team {self.code or self.name}>"

    @staticmethod
    def upsert_from_api(team_info):
        """Create or update a team from an API-Football ``team`` object"""
        api_id = str(team_info.get("id", ""))
        team = Team.query.filter_by(api_id=api_id).first()
        if not team:
            team = Team(api_id=api_id)
            db.session.add(team)

        team.name = team_info.get("name", "")
        team.short_name = team_info.get("name", "")
        team.code = team_info.get("code")
        team.logo_url = team_info.get("logo")
        return team

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "code": self.code,
            "logo_url": self.logo_url,
        }
