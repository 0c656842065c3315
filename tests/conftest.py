"""Shared fixtures for the chat tests."""

import threading

import pytest

from network import TransportChannel


@pytest.fixture
def channel():
    """An open channel on an ephemeral loopback port."""
    ch = TransportChannel(port=0, host="127.0.0.1").open()
    yield ch
    ch.close()


@pytest.fixture
def peer_channel():
    """A second open loopback channel, playing the remote peer."""
    ch = TransportChannel(port=0, host="127.0.0.1").open()
    yield ch
    ch.close()


class EventCollector:
    """Thread-safe sink that records events and lets tests wait for them."""

    def __init__(self):
        self.events = []
        self._cond = threading.Condition()

    def __call__(self, event: dict) -> None:
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def of_type(self, etype: str):
        with self._cond:
            return [e for e in self.events if e.get("type") == etype]

    def wait_for(self, etype: str, count: int = 1, timeout: float = 2.0):
        with self._cond:
            self._cond.wait_for(
                lambda: len([e for e in self.events if e.get("type") == etype]) >= count,
                timeout=timeout,
            )
        return self.of_type(etype)


@pytest.fixture
def collector():
    return EventCollector()


@pytest.fixture
def make_collector():
    return EventCollector
