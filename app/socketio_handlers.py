"""
SocketIO Event Handlers for Real-time Updates

Clients on the /live namespace receive the same events as Server-Sent Event
subscribers: a connection acknowledgement, the current live snapshot, then
every broadcast update.
"""

import logging

from flask import request
from flask_socketio import emit

from app import socketio
from app.services.broadcaster import SocketIOChannel, make_event

logger = logging.getLogger(__name__)

NAMESPACE = "/live"


def _subscriber_id(sid):
    return f"socketio-{sid}"


@socketio.on("connect", namespace=NAMESPACE)
def on_connect():
    """Handle client connection to live namespace"""
    from app.services.live_scores_service import (
        get_live_scores_service,
        get_live_snapshot,
    )

    try:
        client_id = request.sid
        service = get_live_scores_service()
        service.ensure_initialized()

        logger.info(f"Client connected to {NAMESPACE}: {client_id}")

        emit(
            "connection",
            make_event(
                "connection",
                {"clientId": client_id, "pollingStatus": service.status()},
            ),
        )
        emit("initial-data", make_event("initial-data", get_live_snapshot()))

        service.broadcaster.add_subscriber(
            _subscriber_id(client_id), SocketIOChannel(client_id)
        )

    except Exception as e:
        logger.error(f"Error in live connect: {e}", exc_info=True)
        emit("error", make_event("error", {"message": "Failed to load live data"}))


@socketio.on("disconnect", namespace=NAMESPACE)
def on_disconnect(*args):
    """Handle client disconnection from live namespace"""
    from app.services.live_scores_service import get_live_scores_service

    try:
        client_id = request.sid
        get_live_scores_service().broadcaster.remove_subscriber(
            _subscriber_id(client_id)
        )
        logger.info(f"Client disconnected from {NAMESPACE}: {client_id}")
    except Exception as e:
        logger.error(f"Error in live disconnect: {e}")


@socketio.on("get_status", namespace=NAMESPACE)
def on_get_status():
    """Reply with the current polling status"""
    from app.services.live_scores_service import get_live_scores_service

    emit("status", make_event("status", get_live_scores_service().status()))
