"""Shared fixtures for session and daemon tests."""

import pytest

from pysyncd import codec
from pysyncd.transport.memory import MemoryHub, MemoryTransport


class Peer:
    """Other end of the channel, recording decoded messages."""

    def __init__(self, hub: MemoryHub, channel: str):
        self.channel = channel
        self.transport = MemoryTransport(hub)
        self.transport.connect("memory")
        self.transport.subscribe(channel)
        self.received = []
        self.transport.set_message_handler(
            lambda channel, raw: self.received.append(codec.decode(raw))
        )

    def send(self, message) -> None:
        self.transport.send(self.channel, codec.encode(message))

    def drain(self) -> list:
        self.transport.poll()
        received, self.received = self.received, []
        return received


@pytest.fixture
def hub():
    return MemoryHub()


@pytest.fixture
def make_peer(hub):
    """Factory joining a recording peer to the hub."""
    return lambda channel: Peer(hub, channel)
