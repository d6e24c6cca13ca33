import os
import secrets
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


class Config:
    # Generate a secure key if not provided (with warning)
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "🔐 SECRET_KEY not set! Using auto-generated key. "
            "Run 'python3 generate_secrets.py' to generate secure keys.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "predictor_db"
            db_user = os.environ.get("DB_USER") or "predictor"
            db_password = os.environ.get("DB_PASSWORD") or "predictor_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "app.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External football data API (API-Football via RapidAPI)
    FOOTBALL_API_KEY = os.environ.get("FOOTBALL_API_KEY") or os.environ.get(
        "RAPIDAPI_KEY"
    )
    FOOTBALL_API_BASE_URL = (
        os.environ.get("FOOTBALL_API_BASE_URL")
        or "https://api-football-v1.p.rapidapi.com/v3"
    )
    FOOTBALL_API_HOST = (
        os.environ.get("FOOTBALL_API_HOST") or "api-football-v1.p.rapidapi.com"
    )
    FOOTBALL_API_TIMEOUT = float(os.environ.get("FOOTBALL_API_TIMEOUT") or 10)
    FOOTBALL_LEAGUE_ID = int(os.environ.get("FOOTBALL_LEAGUE_ID") or 39)
    FOOTBALL_SEASON = int(os.environ.get("FOOTBALL_SEASON") or 2025)
    SEASON_LABEL = os.environ.get("SEASON_LABEL", "2025-26")
    DAILY_API_CALL_LIMIT = int(os.environ.get("DAILY_API_CALL_LIMIT") or 100)

    # Live polling
    POLL_INTERVAL_MINUTES = int(os.environ.get("POLL_INTERVAL_MINUTES") or 15)
    SMART_START_CHECK_MINUTES = int(os.environ.get("SMART_START_CHECK_MINUTES") or 60)
    SSE_KEEPALIVE_SECONDS = int(os.environ.get("SSE_KEEPALIVE_SECONDS") or 30)
    RESTART_DELAY_SECONDS = float(os.environ.get("RESTART_DELAY_SECONDS") or 1)

    # Cron / external trigger authorization
    CRON_SECRET = os.environ.get("CRON_SECRET")
    CRON_MARKER_HEADERS = [
        header.strip()
        for header in os.environ.get("CRON_MARKER_HEADERS", "X-Vercel-Cron").split(",")
        if header.strip()
    ]

    TIMEZONE = os.environ.get("TIMEZONE", "Europe/London")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", 300))
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "predictor:"
    LIVE_SNAPSHOT_CACHE_TIMEOUT = int(os.environ.get("LIVE_SNAPSHOT_CACHE_TIMEOUT", 60))

    # Rate limiting
    RATELIMIT_ENABLED = os.environ.get("RATELIMIT_ENABLED", "True").lower() == "true"

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    LIVE_POLLING_AUTOSTART = (
        os.environ.get("LIVE_POLLING_AUTOSTART", "True").lower() == "true"
    )

    # Real-time transport
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "eventlet")

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        try:
            redis.Redis.from_url(self.CACHE_REDIS_URL).ping()
        except redis.exceptions.RedisError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "🔶 Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False
    FLASK_ENV = "production"

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "🚨 PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )
        if not self.CRON_SECRET:
            warnings.warn(
                "🚨 PRODUCTION WARNING: CRON_SECRET not set! "
                "Only platform cron requests will be able to trigger polling.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    FLASK_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CACHE_TYPE = "SimpleCache"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    LIVE_POLLING_AUTOSTART = False
    SOCKETIO_ASYNC_MODE = "threading"
    RESTART_DELAY_SECONDS = 0
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    FOOTBALL_API_KEY = None
    CRON_SECRET = "test-cron-secret"

    def __init__(self):
        # In-memory database is fixed for tests
        pass


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
