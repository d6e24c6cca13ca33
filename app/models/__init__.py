from app import db  # noqa: F401 - imported for model imports

from .api_usage import ApiUsage
from .fixture import Fixture, FixtureStatus
from .prediction import Prediction
from .team import Team
from .user import User

__all__ = [
    "User",
    "Team",
    "Fixture",
    "FixtureStatus",
    "Prediction",
    "ApiUsage",
]
