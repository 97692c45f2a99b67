"""Transport interface consumed by the sync session."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

MessageHandler = Callable[[str, bytes], object]


class Transport(ABC):
    """Publish/subscribe transport delivering opaque payloads on channels.

    Implementations deliver inbound payloads only from :meth:`poll`, by
    calling the registered handler as ``handler(channel, payload)``. This
    keeps message handling on the caller's loop, one message at a time.
    """

    def __init__(self) -> None:
        self._handler: Optional[MessageHandler] = None

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        """Register the inbound callback, or clear it with None."""
        self._handler = handler

    def _deliver(self, channel: str, payload: bytes) -> None:
        if self._handler is not None:
            self._handler(channel, payload)

    def max_payload_size(self, channel: str) -> Optional[int]:
        """Largest payload :meth:`send` accepts on channel, None if unbounded."""
        return None

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the transport currently holds a connection."""

    @abstractmethod
    def connect(self, address: str) -> None:
        """Connect to the server at address.

        Raises:
            SyncdConnectionError: If the connection cannot be established
        """

    @abstractmethod
    def subscribe(self, channel: str) -> None:
        """Start receiving payloads published on channel."""

    @abstractmethod
    def unsubscribe(self, channel: str) -> None:
        """Stop receiving payloads published on channel."""

    @abstractmethod
    def send(self, channel: str, payload: bytes) -> None:
        """Publish a payload on channel.

        Raises:
            SyncdTransportError: If the payload cannot be sent
        """

    @abstractmethod
    def poll(self, timeout: float = 0.0) -> int:
        """Deliver pending inbound payloads to the handler.

        Args:
            timeout: Maximum time to wait for data, in seconds

        Returns:
            Number of payloads delivered
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection. Calling it again is a no-op."""
