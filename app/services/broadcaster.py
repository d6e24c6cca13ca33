"""
Fan-out of live score events to connected clients.

Two subscriber types share one registry: Server-Sent Event streams, which
drain a bounded queue from their streaming response, and Socket.IO sessions
on the ``/live`` namespace.
"""

import json
import logging
import queue
import threading
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SSE_QUEUE_SIZE = 100


class ChannelClosedError(Exception):
    """The subscriber can no longer receive messages"""


def make_event(event_type, data=None):
    return {
        "type": event_type,
        "data": data if data is not None else {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def format_sse(message):
    """Encode one message as an SSE ``data:`` frame"""
    return f"data: {json.dumps(message, default=str)}\n\n"


class SSEChannel:
    """Bounded queue consumed by a single streaming response"""

    _WAKE = object()

    def __init__(self, maxsize=SSE_QUEUE_SIZE):
        self._queue = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.last_activity = time.monotonic()

    def send(self, message):
        if self.closed:
            raise ChannelClosedError("channel closed")
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            raise ChannelClosedError("subscriber is not draining its queue")

    def next_message(self, timeout):
        """Next queued message, or None after ``timeout`` seconds or on close"""
        try:
            message = self._queue.get(timeout=timeout)
        except queue.Empty:
            message = None
        self.last_activity = time.monotonic()
        if message is self._WAKE:
            return None
        return message

    def is_stale(self, max_idle_seconds):
        return time.monotonic() - self.last_activity > max_idle_seconds

    def close(self):
        if self.closed:
            return
        self.closed = True
        # Wake a reader blocked in next_message
        try:
            self._queue.put_nowait(self._WAKE)
        except queue.Full:
            logger.debug("SSE queue full on close, reader will see closed flag")


class SocketIOChannel:
    """Delivers events to one Socket.IO session on the /live namespace"""

    namespace = "/live"

    def __init__(self, sid):
        self.sid = sid

    def send(self, message):
        from app import socketio

        try:
            socketio.emit(message["type"], message, to=self.sid, namespace=self.namespace)
        except Exception as e:
            raise ChannelClosedError(str(e)) from e

    def is_stale(self, max_idle_seconds):
        # Socket.IO tracks liveness itself via ping/pong
        return False

    def close(self):
        pass


class EventBroadcaster:
    def __init__(self):
        self._subscribers = {}
        self._lock = threading.Lock()

    def add_subscriber(self, subscriber_id, channel):
        with self._lock:
            self._subscribers[subscriber_id] = channel
            total = len(self._subscribers)
        logger.info(f"Subscriber connected: {subscriber_id}. Total subscribers: {total}")

    def remove_subscriber(self, subscriber_id):
        with self._lock:
            channel = self._subscribers.pop(subscriber_id, None)
            total = len(self._subscribers)
        if channel is None:
            return False
        channel.close()
        logger.info(f"Subscriber disconnected: {subscriber_id}. Total subscribers: {total}")
        return True

    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, message):
        """
        Deliver a message to every subscriber.

        Subscribers whose delivery fails are removed; the rest still receive
        the message.

        Returns:
            Number of subscribers the message was delivered to
        """
        with self._lock:
            subscribers = list(self._subscribers.items())

        if not subscribers:
            logger.debug(f"No subscribers connected, skipping '{message.get('type')}' broadcast")
            return 0

        delivered = 0
        for subscriber_id, channel in subscribers:
            try:
                channel.send(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to send to subscriber {subscriber_id}: {e}")
                self.remove_subscriber(subscriber_id)

        logger.info(
            f"Broadcast '{message.get('type')}' to {delivered}/{len(subscribers)} subscribers"
        )
        return delivered

    def prune_stale(self, max_idle_seconds):
        """Remove subscribers that have stopped draining their channel"""
        with self._lock:
            stale = [
                subscriber_id
                for subscriber_id, channel in self._subscribers.items()
                if channel.is_stale(max_idle_seconds)
            ]
        for subscriber_id in stale:
            self.remove_subscriber(subscriber_id)
        if stale:
            logger.info(f"Pruned {len(stale)} stale subscribers")
        return len(stale)


def event_stream(broadcaster, client_id, channel, initial_events, keepalive_seconds):
    """
    Generator backing a ``text/event-stream`` response.

    Sends the initial events, registers the channel, then relays broadcast
    messages with a ``ping`` whenever the channel is idle for
    ``keepalive_seconds``. The subscriber is removed when the client goes
    away or the channel is closed.
    """
    try:
        for message in initial_events:
            yield format_sse(message)

        broadcaster.add_subscriber(client_id, channel)

        while not channel.closed:
            message = channel.next_message(keepalive_seconds)
            if message is None:
                if channel.closed:
                    break
                yield format_sse(make_event("ping"))
            else:
                yield format_sse(message)
    except Exception as e:
        logger.error(f"SSE stream error for {client_id}: {e}", exc_info=True)
        yield format_sse(make_event("error", {"message": str(e)}))
    finally:
        broadcaster.remove_subscriber(client_id)
        channel.close()
