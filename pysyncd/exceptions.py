"""Exception hierarchy for pysyncd."""


class SyncdError(Exception):
    """Base exception for all pysyncd errors."""


class SyncdConfigError(SyncdError):
    """Configuration is missing, malformed or names an unknown backend."""


class SyncdConnectionError(SyncdError):
    """The transport could not connect or subscribe to the session channel."""


class SyncdTransportError(SyncdError):
    """A transport operation failed after the connection was established."""


class SyncdDecodeError(SyncdError):
    """An inbound payload could not be decoded into a protocol message."""


class SyncdUnknownMessageError(SyncdDecodeError):
    """An inbound payload carries a message type this peer does not know."""

    def __init__(self, message_type: object):
        self.message_type = message_type
        super().__init__(f"Unknown message type: {message_type!r}")


class SyncdPathEscapeError(SyncdError):
    """A protocol path would resolve outside the synchronized root."""

    def __init__(self, path: str, resolved: str, root: str):
        self.path = path
        self.resolved = resolved
        self.root = root
        super().__init__(
            f"Path {path!r} has a canonical form of {resolved} "
            f"and would escape directory {root}"
        )
