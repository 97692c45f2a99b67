"""Utility functions for pysyncd."""

from pathlib import Path
from typing import Union

import xxhash

# =============================================================================
# Constants
# =============================================================================

# Default Stem pub/sub server
DEFAULT_ADDRESS: str = "stem.fomalhaut.me:5733"

# Interval between handshake pings until the peer answers (seconds)
DEFAULT_PING_INTERVAL: float = 2.0

# Protocol path of the synchronized root
ROOT_PATH: str = "."

# Read size used when fingerprinting files (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024


# =============================================================================
# Fingerprint utilities
# =============================================================================


def hash_bytes(data: bytes) -> int:
    """Calculate the content fingerprint of a byte string.

    The fingerprint is the unsigned 64-bit XXH64 digest (seed 0). It is only
    meant for equality checks between peers, never for security.

    Args:
        data: Bytes to fingerprint

    Returns:
        Fingerprint as an unsigned 64-bit integer

    Examples:
        >>> hash_bytes(b"")
        17241709254077376921
    """
    return xxhash.xxh64(data).intdigest()


def hash_file(path: Union[str, Path]) -> int:
    """Calculate the content fingerprint of a file.

    The file is read fresh on every call; results are not cached.

    Args:
        path: Path to the file

    Returns:
        Fingerprint as an unsigned 64-bit integer

    Raises:
        OSError: If the file cannot be read
    """
    hasher = xxhash.xxh64()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.intdigest()


def format_hash(value: int) -> str:
    """Format a fingerprint as 16 hex digits."""
    return f"{value:016x}"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


def parse_address(address: str, default_port: int = 5733) -> tuple[str, int]:
    """Split a ``host:port`` transport address.

    Args:
        address: Address string, e.g. "stem.fomalhaut.me:5733"
        default_port: Port used when the address has none

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the port is not a number

    Examples:
        >>> parse_address("localhost:5733")
        ('localhost', 5733)
        >>> parse_address("localhost")
        ('localhost', 5733)
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port
    if not port.isdigit():
        raise ValueError(f"Invalid port in address: {address}")
    return host, int(port)
