"""TCP client for the Stem publish/subscribe server.

Every frame starts with a big-endian u16 length of the rest of the frame,
followed by a package type byte:

====  ===========  ============================================
Type  Package      Body after the type byte
====  ===========  ============================================
0     Message      u8 channel length, channel, payload
1     Subscribe    u8 channel length, channel
2     Unsubscribe  u8 channel length, channel
3     Ping         payload
4     Pong         payload
====  ===========  ============================================
"""

import logging
import selectors
import socket
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from ..exceptions import SyncdConnectionError, SyncdTransportError
from ..utils import parse_address
from .base import Transport

logger = logging.getLogger(__name__)

MAX_FRAME_SIZE = 0xFFFF
MAX_CHANNEL_SIZE = 0xFF
RECV_SIZE = 64 * 1024

_LENGTH = struct.Struct(">H")


class PackageType(IntEnum):
    """Stem package types."""

    MESSAGE = 0
    SUBSCRIBE = 1
    UNSUBSCRIBE = 2
    PING = 3
    PONG = 4


@dataclass(frozen=True)
class StemPackage:
    """One decoded Stem frame."""

    type: PackageType
    channel: bytes = b""
    payload: bytes = b""


def encode_package(package: StemPackage) -> bytes:
    """Encode a package into a length-prefixed frame.

    Args:
        package: Package to encode

    Returns:
        Frame bytes

    Raises:
        SyncdTransportError: If the channel or frame is too large
    """
    if package.type in (PackageType.PING, PackageType.PONG):
        body = bytes([package.type]) + package.payload
    else:
        if len(package.channel) > MAX_CHANNEL_SIZE:
            raise SyncdTransportError(
                f"Channel name is {len(package.channel)} bytes, "
                f"at most {MAX_CHANNEL_SIZE} are allowed"
            )
        body = bytes([package.type, len(package.channel)]) + package.channel
        if package.type == PackageType.MESSAGE:
            body += package.payload

    if len(body) > MAX_FRAME_SIZE:
        raise SyncdTransportError(
            f"Frame of {len(body)} bytes exceeds the {MAX_FRAME_SIZE} byte limit"
        )
    return _LENGTH.pack(len(body)) + body


class StemFrameDecoder:
    """Incremental decoder turning a byte stream into packages."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[StemPackage]:
        """Add received bytes and return every complete package.

        Malformed frames are logged and skipped.

        Args:
            data: Bytes read from the socket

        Returns:
            List of decoded packages (possibly empty)
        """
        self._buffer.extend(data)
        packages: list[StemPackage] = []

        while len(self._buffer) >= _LENGTH.size:
            (size,) = _LENGTH.unpack_from(self._buffer)
            if len(self._buffer) < _LENGTH.size + size:
                break
            body = bytes(self._buffer[_LENGTH.size : _LENGTH.size + size])
            del self._buffer[: _LENGTH.size + size]

            package = self._parse_body(body)
            if package is not None:
                packages.append(package)

        return packages

    @staticmethod
    def _parse_body(body: bytes) -> Optional[StemPackage]:
        if not body:
            logger.debug("Skipping empty Stem frame")
            return None

        try:
            package_type = PackageType(body[0])
        except ValueError:
            logger.warning(f"Skipping Stem frame with unknown type {body[0]}")
            return None

        if package_type in (PackageType.PING, PackageType.PONG):
            return StemPackage(type=package_type, payload=body[1:])

        if len(body) < 2 or len(body) < 2 + body[1]:
            logger.warning(f"Skipping truncated Stem {package_type.name} frame")
            return None
        channel_end = 2 + body[1]
        return StemPackage(
            type=package_type,
            channel=body[2:channel_end],
            payload=body[channel_end:],
        )


class StemTransport(Transport):
    """Transport backend talking to a Stem server over TCP.

    Server pings are answered transparently with a pong carrying the same
    payload. Inbound messages are delivered from :meth:`poll` only.
    """

    def __init__(self, timeout: float = 10.0):
        """Initialize Stem transport.

        Args:
            timeout: Connect and send timeout in seconds
        """
        super().__init__()
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._decoder = StemFrameDecoder()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self, address: str) -> None:
        try:
            host, port = parse_address(address)
        except ValueError as e:
            raise SyncdConnectionError(str(e)) from e

        logger.debug(f"Connecting to Stem server {host}:{port}")
        try:
            sock = socket.create_connection((host, port), timeout=self.timeout)
        except OSError as e:
            raise SyncdConnectionError(f"Failed to connect to {address}: {e}") from e

        self._sock = sock
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ)
        self._decoder = StemFrameDecoder()
        logger.info(f"Connected to {address}")

    def subscribe(self, channel: str) -> None:
        self._write(
            StemPackage(type=PackageType.SUBSCRIBE, channel=channel.encode("utf-8"))
        )

    def unsubscribe(self, channel: str) -> None:
        self._write(
            StemPackage(type=PackageType.UNSUBSCRIBE, channel=channel.encode("utf-8"))
        )

    def max_payload_size(self, channel: str) -> Optional[int]:
        # Type byte and channel length byte precede the channel
        return MAX_FRAME_SIZE - 2 - len(channel.encode("utf-8"))

    def send(self, channel: str, payload: bytes) -> None:
        self._write(
            StemPackage(
                type=PackageType.MESSAGE,
                channel=channel.encode("utf-8"),
                payload=payload,
            )
        )

    def poll(self, timeout: float = 0.0) -> int:
        if self._sock is None or self._selector is None:
            return 0

        if not self._selector.select(timeout):
            return 0

        try:
            data = self._sock.recv(RECV_SIZE)
        except OSError as e:
            self._close()
            raise SyncdTransportError(f"Connection lost: {e}") from e
        if not data:
            self._close()
            raise SyncdTransportError("Connection closed by server")

        delivered = 0
        for package in self._decoder.feed(data):
            if package.type == PackageType.PING:
                self._write(StemPackage(type=PackageType.PONG, payload=package.payload))
            elif package.type == PackageType.MESSAGE:
                self._deliver(package.channel.decode("utf-8", "replace"), package.payload)
                delivered += 1
            else:
                logger.debug(f"Ignoring Stem {package.type.name} package")
        return delivered

    def disconnect(self) -> None:
        if self._sock is not None:
            logger.debug("Disconnecting from Stem server")
            self._close()

    def _write(self, package: StemPackage) -> None:
        if self._sock is None:
            raise SyncdTransportError("Not connected")
        frame = encode_package(package)
        try:
            self._sock.sendall(frame)
        except OSError as e:
            raise SyncdTransportError(f"Failed sending {package.type.name}: {e}") from e

    def _close(self) -> None:
        if self._selector is not None:
            self._selector.close()
            self._selector = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
