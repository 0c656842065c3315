"""Tests for the background receive loop."""

import time

from network import ClosedError, MessageLoop, ReceiveError


class TestMessageLoop:
    """Tests for MessageLoop draining a channel into a sink."""

    def test_forwards_incoming_message(self, channel, peer_channel, collector):
        loop = MessageLoop(peer_channel, collector)
        loop.start()
        try:
            channel.send(b"hello", peer_channel.local_endpoint)
            messages = collector.wait_for("chat_message")
        finally:
            loop.stop()
            loop.join(timeout=2.0)

        assert len(messages) == 1
        event = messages[0]
        assert event["direction"] == "incoming"
        assert event["message"] == "hello"
        assert event["peer"] == channel.local_endpoint
        assert event["truncated"] is False

    def test_updates_current_peer_from_source(self, channel, peer_channel, collector):
        loop = MessageLoop(peer_channel, collector)
        loop.start()
        try:
            channel.send(b"one", peer_channel.local_endpoint)
            channel.send(b"two", peer_channel.local_endpoint)
            collector.wait_for("chat_message", count=2)
        finally:
            loop.stop()
            loop.join(timeout=2.0)

        assert peer_channel.current_peer == channel.local_endpoint
        # Peer only announced once, it did not change on the second message
        assert collector.of_type("peer_changed") == [
            {"type": "peer_changed", "peer": channel.local_endpoint}
        ]

    def test_stop_exits_blocked_loop(self, peer_channel, collector):
        loop = MessageLoop(peer_channel, collector)
        loop.start()
        time.sleep(0.1)

        loop.stop()
        loop.join(timeout=2.0)

        assert not loop.is_alive()
        assert loop.stopped()
        assert not peer_channel.is_open

    def test_receive_error_is_reported_and_loop_continues(self, collector):
        class FlakyChannel:
            encoding = "utf-8"

            def __init__(self):
                self.calls = 0

            def receive(self):
                self.calls += 1
                if self.calls == 1:
                    raise ReceiveError("connection reset")
                raise ClosedError("closed")

            def close(self):
                pass

        flaky = FlakyChannel()
        loop = MessageLoop(flaky, collector)
        loop.start()
        loop.join(timeout=2.0)

        assert not loop.is_alive()
        assert flaky.calls == 2
        assert collector.of_type("status") == [
            {"type": "status", "level": "error", "message": "Error: connection reset"}
        ]

    def test_sink_failure_does_not_kill_loop(self, channel, peer_channel, collector):
        calls = []

        def sink(event):
            calls.append(event)
            if len(calls) == 1:
                raise RuntimeError("display went away")
            collector(event)

        loop = MessageLoop(peer_channel, sink)
        loop.start()
        try:
            channel.send(b"first", peer_channel.local_endpoint)
            channel.send(b"second", peer_channel.local_endpoint)
            messages = collector.wait_for("chat_message", count=2)
        finally:
            loop.stop()
            loop.join(timeout=2.0)

        assert [m["message"] for m in messages] == ["first", "second"]
