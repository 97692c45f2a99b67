"""Tests for the in-memory transport and backend registry."""

from unittest.mock import Mock

import pytest

from pysyncd.exceptions import (
    SyncdConfigError,
    SyncdConnectionError,
    SyncdTransportError,
)
from pysyncd.transport import (
    MemoryHub,
    MemoryTransport,
    StemTransport,
    create_transport,
)


@pytest.fixture
def hub():
    return MemoryHub()


def _connected(hub, channel="ch"):
    transport = MemoryTransport(hub)
    transport.connect("memory")
    transport.subscribe(channel)
    handler = Mock()
    transport.set_message_handler(handler)
    return transport, handler


class TestMemoryTransport:
    """Tests for MemoryTransport."""

    def test_delivers_to_other_subscribers(self, hub):
        sender, sender_handler = _connected(hub)
        receiver, receiver_handler = _connected(hub)

        sender.send("ch", b"payload")

        assert receiver.poll() == 1
        receiver_handler.assert_called_once_with("ch", b"payload")
        assert sender.poll() == 0
        sender_handler.assert_not_called()

    def test_no_delivery_before_poll(self, hub):
        sender, _ = _connected(hub)
        _, handler = _connected(hub)

        sender.send("ch", b"payload")

        handler.assert_not_called()

    def test_other_channel_not_delivered(self, hub):
        sender, _ = _connected(hub, channel="one")
        receiver, handler = _connected(hub, channel="two")

        sender.send("one", b"x")

        assert receiver.poll() == 0

    def test_unsubscribe(self, hub):
        sender, _ = _connected(hub)
        receiver, _ = _connected(hub)
        receiver.unsubscribe("ch")

        sender.send("ch", b"x")

        assert receiver.poll() == 0

    def test_replies_wait_for_next_poll(self, hub):
        a, _ = _connected(hub)
        b, _ = _connected(hub)
        a.set_message_handler(lambda channel, payload: a.send(channel, b"reply"))
        b.set_message_handler(lambda channel, payload: b.send(channel, b"reply"))

        a.send("ch", b"start")

        assert b.poll() == 1
        assert b.poll() == 0
        assert a.poll() == 1

    def test_disconnect_detaches(self, hub):
        sender, _ = _connected(hub)
        receiver, _ = _connected(hub)
        receiver.disconnect()
        receiver.disconnect()

        sender.send("ch", b"x")

        assert not receiver.connected
        assert receiver.poll() == 0

    def test_send_when_disconnected(self, hub):
        with pytest.raises(SyncdTransportError):
            MemoryTransport(hub).send("ch", b"x")

    def test_connect_twice(self, hub):
        transport = MemoryTransport(hub)
        transport.connect("memory")
        with pytest.raises(SyncdConnectionError):
            transport.connect("memory")

    def test_shared_hub_by_address(self):
        a = MemoryTransport()
        b = MemoryTransport()
        a.connect("test-shared-hub")
        b.connect("test-shared-hub")
        try:
            assert a.hub is b.hub
        finally:
            a.disconnect()
            b.disconnect()


class TestCreateTransport:
    """Tests for create_transport."""

    def test_stem_backend(self):
        transport = create_transport("stem", {"timeout": 3.0})
        assert isinstance(transport, StemTransport)
        assert transport.timeout == 3.0

    def test_memory_backend(self):
        assert isinstance(create_transport("memory"), MemoryTransport)

    def test_unknown_backend(self):
        with pytest.raises(SyncdConfigError, match="Unknown backend 'carrier'"):
            create_transport("carrier", {})

    def test_invalid_options(self):
        with pytest.raises(SyncdConfigError):
            create_transport("stem", {"colour": "blue"})
