"""Routing of inbound payloads to message handlers."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

from . import codec
from .exceptions import SyncdDecodeError, SyncdUnknownMessageError
from .messages import Message, message_type

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass
class DispatchResult:
    """Outcome of dispatching one inbound payload."""

    message_type: Optional[str]
    """Wire type of the message (None if it could not be decoded)"""

    handled: bool
    """Whether a handler ran"""

    error: Optional[Exception] = None
    """Error raised while decoding or handling, if any"""

    @property
    def ok(self) -> bool:
        """True if the message was handled without error."""
        return self.handled and self.error is None


class MessageDispatcher:
    """Decodes inbound payloads and invokes the handler for their type.

    Handlers are looked up in a fixed mapping from message class to callable.
    Every handler invocation is isolated: an exception is logged together
    with the message type and reported in the DispatchResult, but never
    propagated, so one bad message cannot stop the session.
    """

    def __init__(
        self,
        channel: str,
        handlers: Mapping[type, Handler],
        is_active: Callable[[], bool] = lambda: True,
    ):
        """Initialize message dispatcher.

        Args:
            channel: Session channel; payloads on other channels are ignored
            handlers: Mapping of message class to handler function(message)
            is_active: Callable telling whether the session still accepts
                messages (payloads queued before disconnect are dropped)
        """
        self.channel = channel
        self.handlers = dict(handlers)
        self.is_active = is_active

    def on_inbound(self, channel: str, raw: bytes) -> Optional[DispatchResult]:
        """Handle one payload delivered by the transport.

        Args:
            channel: Channel the payload arrived on
            raw: Encoded message

        Returns:
            DispatchResult, or None if the payload was not for this session
        """
        if channel != self.channel:
            return None
        if not self.is_active():
            logger.debug("Dropping message received after disconnect")
            return None

        try:
            message = codec.decode(raw)
        except SyncdUnknownMessageError as e:
            logger.warning(f"Received unknown message type {e.message_type!r}")
            return DispatchResult(message_type=None, handled=False, error=e)
        except SyncdDecodeError as e:
            logger.error(f"Failed decoding message: {e}")
            return DispatchResult(message_type=None, handled=False, error=e)

        return self.dispatch(message)

    def dispatch(self, message: Message) -> DispatchResult:
        """Invoke the handler registered for a decoded message.

        Args:
            message: Decoded message

        Returns:
            DispatchResult describing the outcome
        """
        name = message_type(message)
        handler = self.handlers.get(type(message))
        if handler is None:
            logger.warning(f"Received unknown message type {name}")
            return DispatchResult(message_type=name, handled=False)

        logger.debug(f"Received {name} message: {message!r:.200}")
        try:
            handler(message)
        except Exception as e:
            logger.error(f"Failed processing {name} message: {e}")
            logger.debug("Handler traceback", exc_info=True)
            return DispatchResult(message_type=name, handled=True, error=e)
        return DispatchResult(message_type=name, handled=True)
