"""In-process transport for running peers inside one process."""

import logging
import time
from collections import deque
from typing import Optional

from ..exceptions import SyncdConnectionError, SyncdTransportError
from .base import Transport

logger = logging.getLogger(__name__)


class MemoryHub:
    """Publish/subscribe broker shared by MemoryTransport instances.

    A payload published on a channel is queued for every other transport
    subscribed to it; the sender does not receive its own payloads.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list["MemoryTransport"]] = {}

    def subscribe(self, transport: "MemoryTransport", channel: str) -> None:
        members = self._subscribers.setdefault(channel, [])
        if transport not in members:
            members.append(transport)

    def unsubscribe(self, transport: "MemoryTransport", channel: str) -> None:
        members = self._subscribers.get(channel, [])
        if transport in members:
            members.remove(transport)

    def publish(self, sender: "MemoryTransport", channel: str, payload: bytes) -> int:
        """Queue a payload for all other subscribers of channel.

        Returns:
            Number of transports the payload was queued for
        """
        receivers = [t for t in self._subscribers.get(channel, []) if t is not sender]
        for transport in receivers:
            transport._inbox.append((channel, payload))
        return len(receivers)

    def detach(self, transport: "MemoryTransport") -> None:
        for members in self._subscribers.values():
            if transport in members:
                members.remove(transport)


# Hubs shared by transports created from configuration, keyed by address
_HUBS: dict[str, MemoryHub] = {}


class MemoryTransport(Transport):
    """Transport backend exchanging payloads through a MemoryHub."""

    def __init__(self, hub: Optional[MemoryHub] = None):
        """Initialize memory transport.

        Args:
            hub: Hub to join on connect. Without one, connect() joins the
                hub registered for the given address (created on demand).
        """
        super().__init__()
        self.hub = hub
        self._inbox: deque[tuple[str, bytes]] = deque()
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self, address: str) -> None:
        if self._connected:
            raise SyncdConnectionError("Already connected")
        if self.hub is None:
            self.hub = _HUBS.setdefault(address, MemoryHub())
        self._connected = True
        logger.debug(f"Joined in-memory hub {address!r}")

    def subscribe(self, channel: str) -> None:
        self._require_hub().subscribe(self, channel)

    def unsubscribe(self, channel: str) -> None:
        self._require_hub().unsubscribe(self, channel)

    def send(self, channel: str, payload: bytes) -> None:
        self._require_hub().publish(self, channel, payload)

    def poll(self, timeout: float = 0.0) -> int:
        if not self._inbox and timeout > 0:
            time.sleep(timeout)
        delivered = 0
        # Only payloads queued before this call; replies go to the next poll
        for _ in range(len(self._inbox)):
            channel, payload = self._inbox.popleft()
            self._deliver(channel, payload)
            delivered += 1
        return delivered

    def disconnect(self) -> None:
        if not self._connected:
            return
        if self.hub is not None:
            self.hub.detach(self)
        self._connected = False

    def _require_hub(self) -> MemoryHub:
        if not self._connected or self.hub is None:
            raise SyncdTransportError("Not connected")
        return self.hub
