"""
Authorization for externally triggered endpoints (cron ticks, poll control)
"""

import functools
import hmac
import logging

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


def is_trigger_authorized(req=None):
    """
    Outside production every caller is allowed. In production the request
    must carry a platform cron marker header or the bearer cron secret.
    """
    req = req or request
    config = current_app.config

    if config.get("FLASK_ENV") != "production":
        return True

    for header in config.get("CRON_MARKER_HEADERS", []):
        if req.headers.get(header):
            return True

    secret = config.get("CRON_SECRET")
    auth_header = req.headers.get("Authorization", "")
    if secret and auth_header.startswith("Bearer "):
        return hmac.compare_digest(auth_header[len("Bearer ") :], secret)

    return False


def trigger_auth_required(f):
    """Reject unauthorized trigger requests with 401 before the view runs"""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not is_trigger_authorized():
            logger.warning(
                f"Unauthorized trigger request: {request.method} {request.path}"
            )
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated
