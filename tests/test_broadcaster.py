import json

import pytest

from app.services.broadcaster import (
    ChannelClosedError,
    EventBroadcaster,
    SSEChannel,
    event_stream,
    format_sse,
    make_event,
)


class RecordingChannel:
    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail
        self.closed = False

    def send(self, message):
        if self.fail:
            raise ChannelClosedError("gone")
        self.messages.append(message)

    def is_stale(self, max_idle_seconds):
        return False

    def close(self):
        self.closed = True


def parse_frame(frame):
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: ") :])


class TestEventBroadcaster:
    def test_remove_unknown_subscriber_is_noop(self):
        broadcaster = EventBroadcaster()
        assert broadcaster.remove_subscriber("never-added") is False
        assert broadcaster.subscriber_count() == 0

    def test_broadcast_without_subscribers(self):
        assert EventBroadcaster().broadcast(make_event("update")) == 0

    def test_broadcast_reaches_every_subscriber(self):
        broadcaster = EventBroadcaster()
        first, second = RecordingChannel(), RecordingChannel()
        broadcaster.add_subscriber("a", first)
        broadcaster.add_subscriber("b", second)

        event = make_event("update", {"fixtures": []})
        assert broadcaster.broadcast(event) == 2
        assert first.messages == [event]
        assert second.messages == [event]

    def test_failing_subscriber_is_removed(self):
        broadcaster = EventBroadcaster()
        healthy, broken = RecordingChannel(), RecordingChannel(fail=True)
        broadcaster.add_subscriber("healthy", healthy)
        broadcaster.add_subscriber("broken", broken)

        assert broadcaster.broadcast(make_event("update")) == 1
        assert broadcaster.subscriber_count() == 1
        assert broken.closed is True
        assert len(healthy.messages) == 1

    def test_remove_is_idempotent(self):
        broadcaster = EventBroadcaster()
        channel = RecordingChannel()
        broadcaster.add_subscriber("a", channel)

        assert broadcaster.remove_subscriber("a") is True
        assert broadcaster.remove_subscriber("a") is False
        assert channel.closed is True

    def test_prune_stale(self):
        broadcaster = EventBroadcaster()
        idle = SSEChannel()
        active = RecordingChannel()
        broadcaster.add_subscriber("idle", idle)
        broadcaster.add_subscriber("active", active)

        idle.last_activity -= 120
        assert broadcaster.prune_stale(60) == 1
        assert broadcaster.subscriber_count() == 1
        assert idle.closed is True


class TestSSEChannel:
    def test_send_and_receive(self):
        channel = SSEChannel()
        channel.send({"type": "update"})
        assert channel.next_message(0.01) == {"type": "update"}

    def test_timeout_returns_none(self):
        assert SSEChannel().next_message(0.01) is None

    def test_full_queue_rejects(self):
        channel = SSEChannel(maxsize=1)
        channel.send({"type": "one"})
        with pytest.raises(ChannelClosedError):
            channel.send({"type": "two"})

    def test_closed_channel_rejects(self):
        channel = SSEChannel()
        channel.close()
        with pytest.raises(ChannelClosedError):
            channel.send({"type": "update"})
        assert channel.next_message(0.01) is None


class TestEventStream:
    def test_initial_events_then_keepalive(self):
        broadcaster = EventBroadcaster()
        channel = SSEChannel()
        stream = event_stream(
            broadcaster, "sse-1", channel, [make_event("connection", {"clientId": "sse-1"})], 0.01
        )

        first = parse_frame(next(stream))
        assert first["type"] == "connection"
        assert first["data"] == {"clientId": "sse-1"}

        assert parse_frame(next(stream))["type"] == "ping"
        assert broadcaster.subscriber_count() == 1

        stream.close()
        assert broadcaster.subscriber_count() == 0
        assert channel.closed is True

    def test_relays_broadcast_messages(self):
        broadcaster = EventBroadcaster()
        channel = SSEChannel()
        stream = event_stream(broadcaster, "sse-2", channel, [], 0.01)

        # Registration happens on the first pull
        assert parse_frame(next(stream))["type"] == "ping"
        broadcaster.broadcast(make_event("update", {"currentlyLive": 1}))

        message = parse_frame(next(stream))
        assert message["type"] == "update"
        assert message["data"] == {"currentlyLive": 1}
        stream.close()

    def test_stream_ends_when_subscriber_removed(self):
        broadcaster = EventBroadcaster()
        channel = SSEChannel()
        stream = event_stream(broadcaster, "sse-3", channel, [], 0.01)
        next(stream)

        broadcaster.remove_subscriber("sse-3")
        assert list(stream) == []

    def test_format_sse(self):
        assert format_sse({"type": "ping"}) == 'data: {"type": "ping"}\n\n'
