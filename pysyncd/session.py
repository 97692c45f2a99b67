"""Sync session: connection state, handshake and protocol handlers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from . import codec
from .dispatcher import DispatchResult, MessageDispatcher
from .exceptions import (
    SyncdConfigError,
    SyncdConnectionError,
    SyncdError,
    SyncdTransportError,
)
from .messages import (
    EntityType,
    Entry,
    FsEventCreate,
    FsEventDelete,
    FsEventModify,
    FsEventRename,
    FsEventUnknown,
    Get,
    GetResp,
    List,
    ListResp,
    Message,
    Ping,
    Pong,
    message_type,
)
from .sync.events import EventApplier
from .sync.operations import SyncOperations
from .sync.paths import PathGuard
from .sync.reconciler import ReconcileAction, ReconcileDecision, Reconciler
from .sync.scanner import DirectoryScanner
from .transport.base import Transport
from .utils import ROOT_PATH, format_hash, format_size, hash_bytes

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Connection state of a sync session."""

    DISCONNECTED = "disconnected"
    """No transport connection"""

    CONNECTING = "connecting"
    """Connecting and subscribing to the channel"""

    CONNECTED = "connected"
    """Subscribed, peer not yet heard from"""

    VERIFIED = "verified"
    """Peer answered a Ping or sent one"""


class SyncSession:
    """One synchronization session between the local root and a peer.

    The session owns the transport for its lifetime. Inbound payloads are
    routed by its MessageDispatcher to the handlers below; outbound
    messages are sent with the helper method named after each message.

    Examples:
        >>> transport = StemTransport()
        >>> session = SyncSession("stem.fomalhaut.me:5733", Path("~/sync"),
        ...                       "my_channel", transport)
        >>> session.connect()
        >>> while session.handshake_step():
        ...     transport.poll(2.0)
    """

    def __init__(
        self,
        address: str,
        synced_dir: Union[str, Path],
        channel: str,
        transport: Transport,
        operations: Optional[SyncOperations] = None,
    ):
        """Initialize sync session.

        Args:
            address: Transport server address
            synced_dir: Synchronized root directory (must exist)
            channel: Channel identifier shared with the peer
            transport: Unconnected transport backend
            operations: Filesystem operations (defaults to SyncOperations())

        Raises:
            SyncdConfigError: If synced_dir is not an existing directory
        """
        root = Path(synced_dir).expanduser()
        if not root.exists():
            raise SyncdConfigError(f"Synchronized directory does not exist: {root}")
        if not root.is_dir():
            raise SyncdConfigError(f"Synchronized path is not a directory: {root}")

        self.address = address
        self.channel = channel
        self.transport = transport
        self.guard = PathGuard(root)
        self.operations = operations or SyncOperations()
        self.scanner = DirectoryScanner(self.guard)
        self.reconciler = Reconciler(self.guard)
        self.events = EventApplier(self.guard, self.operations, self.get)
        self.state = SessionState.DISCONNECTED
        self._root_listed = False

        self.dispatcher = MessageDispatcher(
            channel,
            {
                Ping: self._on_ping,
                Pong: self._on_pong,
                List: self._on_list,
                ListResp: self._on_list_resp,
                Get: self._on_get,
                GetResp: self._on_get_resp,
                FsEventCreate: self.events.apply_create,
                FsEventModify: self.events.apply_modify,
                FsEventRename: self.events.apply_rename,
                FsEventDelete: self.events.apply_delete,
                FsEventUnknown: self.events.apply_unknown,
            },
            is_active=lambda: self.connected,
        )

    @property
    def root(self) -> Path:
        """Canonical synchronized root."""
        return self.guard.root

    @property
    def connected(self) -> bool:
        """Whether the session is subscribed to its channel."""
        return self.state in (SessionState.CONNECTED, SessionState.VERIFIED)

    @property
    def comms_established(self) -> bool:
        """Whether the peer has been heard from."""
        return self.state == SessionState.VERIFIED

    # =========================
    # Lifecycle
    # =========================

    def connect(self) -> None:
        """Connect the transport and subscribe to the session channel.

        Raises:
            SyncdConnectionError: If connecting or subscribing fails
        """
        if self.connected:
            logger.debug("Session already connected")
            return

        self.state = SessionState.CONNECTING
        self.transport.set_message_handler(self.dispatcher.on_inbound)
        try:
            self.transport.connect(self.address)
            self.transport.subscribe(self.channel)
        except SyncdError as e:
            self.transport.set_message_handler(None)
            self.transport.disconnect()
            self.state = SessionState.DISCONNECTED
            if isinstance(e, SyncdConnectionError):
                raise
            raise SyncdConnectionError(
                f"Failed to join channel '{self.channel}': {e}"
            ) from e

        self.state = SessionState.CONNECTED
        self._root_listed = False
        logger.info(f"Joined channel '{self.channel}' syncing {self.root}")

    def disconnect(self) -> None:
        """Leave the channel and release the transport. Idempotent."""
        if self.state == SessionState.DISCONNECTED:
            return

        self.transport.set_message_handler(None)
        if self.transport.connected:
            try:
                self.transport.unsubscribe(self.channel)
            except SyncdTransportError as e:
                logger.debug(f"Failed to unsubscribe from '{self.channel}': {e}")
        self.transport.disconnect()
        self.state = SessionState.DISCONNECTED
        logger.info(f"Left channel '{self.channel}'")

    def handshake_step(self) -> bool:
        """Advance the handshake; meant to be called from a periodic timer.

        Sends a Ping while the peer has not been heard from. Once it has,
        requests the listing of the root exactly once.

        Returns:
            True if the timer should fire again, False once the root
            listing has been requested
        """
        if not self.comms_established:
            self.ping()
            return True
        if not self._root_listed:
            self._root_listed = True
            self.list(ROOT_PATH)
        return False

    def handle_payload(self, channel: str, payload: bytes) -> Optional[DispatchResult]:
        """Dispatch a payload directly, bypassing the transport."""
        return self.dispatcher.on_inbound(channel, payload)

    # =========================
    # Outbound messages
    # =========================

    def send(self, message: Message) -> None:
        """Encode and publish a message on the session channel.

        Raises:
            SyncdTransportError: If the session is not connected or the
                transport fails
        """
        if not self.connected:
            raise SyncdTransportError(
                f"Cannot send {message_type(message)}: session is not connected"
            )
        logger.debug(f"Sending {message_type(message)} message")
        self.transport.send(self.channel, codec.encode(message))

    def ping(self) -> None:
        logger.debug("Sending ping")
        self.send(Ping())

    def pong(self) -> None:
        self.send(Pong())

    def list(self, path: str) -> None:
        self.send(List(path=path))

    def list_resp(self, entries: Iterable[Entry]) -> None:
        self.send(ListResp(entries=tuple(entries)))

    def get(self, path: str) -> None:
        self.send(Get(path=path))

    def get_resp(self, path: str, contents: bytes) -> None:
        self.send(GetResp(path=path, contents=contents))

    def fs_event_create(self, path: str, entity: EntityType) -> None:
        self.send(FsEventCreate(path=path, entity=entity))

    def fs_event_modify(self, path: str, hash: int) -> None:
        self.send(FsEventModify(path=path, hash=hash))

    def fs_event_rename(self, path_from: str, path_to: str) -> None:
        self.send(FsEventRename(path_from=path_from, path_to=path_to))

    def fs_event_delete(self, path: str) -> None:
        self.send(FsEventDelete(path=path))

    def fs_event_unknown(
        self, path: str, entity: EntityType, hash: Optional[int] = None
    ) -> None:
        self.send(FsEventUnknown(path=path, entity=entity, hash=hash))

    # =========================
    # Inbound handlers
    # =========================

    def _on_ping(self, message: Ping) -> None:
        self._mark_verified()
        self.pong()

    def _on_pong(self, message: Pong) -> None:
        self._mark_verified()

    def _mark_verified(self) -> None:
        if self.state != SessionState.VERIFIED:
            logger.info("Communication with peer established")
        self.state = SessionState.VERIFIED

    def _on_list(self, message: List) -> None:
        path = self.guard.resolve(message.path)
        if not path.is_dir():
            logger.warning(f"Not listing {path}: not a directory")
            return
        entries = self.scanner.list_entries(path)
        logger.debug(f"Returning {len(entries)} entries for {path}")
        self.list_resp(entries)

    def _on_list_resp(self, message: ListResp) -> None:
        decisions = self.reconciler.reconcile(message.entries)
        self._execute_decisions(decisions)

    def _execute_decisions(self, decisions: list[ReconcileDecision]) -> None:
        """Carry out reconciliation decisions.

        Each decision is independent; a failing directory creation is logged
        and does not stop the remaining ones.
        """
        fetches = lists = 0
        for decision in decisions:
            if decision.action == ReconcileAction.FETCH:
                logger.debug(f"{decision.reason}: requesting {decision.relative_path}")
                self.get(decision.relative_path)
                fetches += 1
            elif decision.action == ReconcileAction.LIST:
                self.list(decision.relative_path)
                lists += 1
            elif (
                decision.action == ReconcileAction.CREATE_DIRECTORY
                and decision.local_path is not None
            ):
                try:
                    self.operations.ensure_directory(decision.local_path)
                    logger.info(f"Created directory {decision.local_path}")
                except OSError as e:
                    logger.error(
                        f"Failed creating directory {decision.local_path}: {e}"
                    )
        logger.debug(
            f"Reconciled {len(decisions)} decision(s): "
            f"{fetches} fetch(es), {lists} listing(s)"
        )

    def _on_get(self, message: Get) -> None:
        path = self.guard.resolve(message.path)
        if path.is_dir():
            logger.debug(f"Ignoring Get for directory {path}")
            return
        if not path.exists():
            logger.warning(f"Not sending {path}: no such file")
            return
        if not path.is_file():
            # FIFOs and devices block on open
            logger.warning(f"Not sending {path}: not a regular file")
            return

        contents = self.operations.read_file(path)
        limit = self.transport.max_payload_size(self.channel)
        size = len(codec.encode(GetResp(path=message.path, contents=contents)))
        if limit is not None and size > limit:
            logger.warning(
                f"File {path} is too large for a transport frame: "
                f"{format_size(size)} encoded, at most {format_size(limit)}"
            )
            return
        self.get_resp(message.path, contents)

    def _on_get_resp(self, message: GetResp) -> None:
        path = self.guard.resolve(message.path, allow_root=False)
        self.operations.write_file(path, message.contents)
        logger.info(
            f"Updated file {path} ({format_size(len(message.contents))}, "
            f"hash {format_hash(hash_bytes(message.contents))})"
        )
