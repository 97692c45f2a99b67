"""pysyncd - two-way directory synchronization over a pub/sub channel."""

from .config import SyncdConfig, load_config
from .daemon import SyncDaemon
from .exceptions import (
    SyncdConfigError,
    SyncdConnectionError,
    SyncdDecodeError,
    SyncdError,
    SyncdPathEscapeError,
    SyncdTransportError,
    SyncdUnknownMessageError,
)
from .session import SessionState, SyncSession
from .transport import create_transport
from .utils import hash_bytes, hash_file

__all__ = [
    "SyncSession",
    "SessionState",
    "SyncDaemon",
    "SyncdConfig",
    "load_config",
    "create_transport",
    "SyncdError",
    "SyncdConfigError",
    "SyncdConnectionError",
    "SyncdDecodeError",
    "SyncdPathEscapeError",
    "SyncdTransportError",
    "SyncdUnknownMessageError",
    "hash_bytes",
    "hash_file",
]
