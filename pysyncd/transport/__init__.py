"""Transport backends for pysyncd."""

from typing import Any, Optional

from ..exceptions import SyncdConfigError
from .base import MessageHandler, Transport
from .memory import MemoryHub, MemoryTransport
from .stem import StemTransport

BACKENDS: dict[str, type[Transport]] = {
    "stem": StemTransport,
    "memory": MemoryTransport,
}


def create_transport(
    backend: str, options: Optional[dict[str, Any]] = None
) -> Transport:
    """Instantiate the transport backend named in the configuration.

    Args:
        backend: Backend selector (a key of BACKENDS)
        options: Backend-specific keyword arguments

    Returns:
        Unconnected transport

    Raises:
        SyncdConfigError: If the backend is unknown or rejects the options
    """
    cls = BACKENDS.get(backend)
    if cls is None:
        known = ", ".join(sorted(BACKENDS))
        raise SyncdConfigError(f"Unknown backend '{backend}' (known: {known})")
    try:
        return cls(**(options or {}))
    except TypeError as e:
        raise SyncdConfigError(f"Invalid options for backend '{backend}': {e}") from e


__all__ = [
    "BACKENDS",
    "MemoryHub",
    "MemoryTransport",
    "MessageHandler",
    "StemTransport",
    "Transport",
    "create_transport",
]
