import logging
import os

import redis
from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
socketio = SocketIO()
cache = Cache()
migrate = Migrate()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    # We want the leftmost (original client) IP
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


def redis_reachable(url, purpose):
    """True if a Redis server answers at ``url``; logs the outcome for ``purpose``"""
    if not url:
        return False
    try:
        redis.Redis.from_url(url).ping()
    except redis.exceptions.RedisError as e:
        print(f"⚠ Redis not available for {purpose}: {e}")
        return False
    print(f"✓ {purpose} using Redis at {url}")
    return True


# Shared rate limit storage across workers when Redis is reachable
_limiter_redis_url = os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")

limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
    storage_uri=(
        _limiter_redis_url
        if redis_reachable(_limiter_redis_url, "rate limiter")
        else "memory://"
    ),
)


def create_app(config_name=None, api_client=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)

    # Configure WebSocket CORS based on environment
    allowed_origins = app.config.get("SOCKETIO_CORS_ORIGINS", "*")
    if allowed_origins == "*" and not app.config.get("DEBUG") and not app.config.get(
        "TESTING"
    ):
        allowed_origins = os.environ.get(
            "ALLOWED_ORIGINS", "https://yourdomain.com,https://www.yourdomain.com"
        ).split(",")

    # Redis message queue lets several workers share Socket.IO rooms
    redis_url = None if app.config.get("TESTING") else os.environ.get("REDIS_URL")
    message_queue = redis_url if redis_reachable(redis_url, "Socket.IO message queue") else None

    # Handlers must be registered before init_app so every new server gets them
    from app import socketio_handlers  # noqa: F401 - imported for side effects

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "eventlet"),
        ping_timeout=60,
        ping_interval=25,
        message_queue=message_queue,
    )
    cache.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Import and register blueprints
    from app.routes.live import bp as live_bp

    app.register_blueprint(live_bp, url_prefix="/api/live-scores")

    from app.routes.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    from app.routes.football import bp as football_bp

    app.register_blueprint(football_bp, url_prefix="/api/football")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from app.utils.logging_config import setup_logging

    setup_logging(app)

    show_config_warnings(app)

    # Create database tables
    with app.app_context():
        db.create_all()

    # The live scores service is owned by this app instance
    from app.services.live_scores_service import LiveScoresService

    LiveScoresService(app, api_client=api_client)

    return app


def show_config_warnings(app):
    """Log configuration warnings and status"""
    if app.config.get("TESTING"):
        return

    config_name = os.environ.get("FLASK_CONFIG", "default")
    logger.info(f"Premier Predictor starting with '{config_name}' configuration")

    if app.config.get("FLASK_ENV") == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("FOOTBALL_API_KEY"):
        logger.warning(
            "FOOTBALL_API_KEY not set: team/fixture endpoints will serve fallback "
            "data and live polling cycles will report a configuration error"
        )

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    logger.info(
        f"Using database: {db_url.split('://')[0] if '://' in db_url else 'Unknown'}"
    )


def register_error_handlers(app):
    """Register global JSON error handlers"""

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if app.config.get("FLASK_ENV") == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({"error": "Unauthorized"}), 401

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from app import models  # noqa: F401, E402 - imported for model registration
