"""Cooperative event loop driving a sync session."""

import logging
import time
from typing import Callable, Optional

from .session import SyncSession
from .sync.watcher import ChangeWatcher
from .utils import DEFAULT_PING_INTERVAL

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """Calls a function at a fixed interval until it returns False."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], bool],
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize periodic timer.

        Args:
            interval: Seconds between calls
            callback: Function returning True to be called again, False to stop
            clock: Monotonic clock (replaceable in tests)
        """
        self.interval = interval
        self.callback = callback
        self._clock = clock
        # First call is due immediately
        self._next_due = clock()
        self.active = True

    def run_if_due(self) -> bool:
        """Call the callback if the timer is due.

        Returns:
            True if the callback ran
        """
        if not self.active:
            return False
        now = self._clock()
        if now < self._next_due:
            return False
        if self.callback():
            self._next_due = now + self.interval
        else:
            self.active = False
        return True

    def cancel(self) -> None:
        """Stop the timer."""
        self.active = False


class SyncDaemon:
    """Runs a session, its handshake timer and the local change watcher.

    Everything happens on one thread: each loop iteration polls the
    transport (delivering inbound messages), runs due timers and then
    processes one batch of local changes.

    Examples:
        >>> daemon = SyncDaemon(session, watch=True)
        >>> daemon.run()  # until stop() is called or the connection drops
    """

    def __init__(
        self,
        session: SyncSession,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        watch: bool = True,
        poll_timeout: float = 0.1,
    ):
        """Initialize sync daemon.

        Args:
            session: Unconnected sync session
            ping_interval: Seconds between handshake pings
            watch: Whether to send local changes to the peer
            poll_timeout: Maximum time to wait for inbound data per iteration
        """
        self.session = session
        self.ping_interval = ping_interval
        self.poll_timeout = poll_timeout
        self.timers: list[PeriodicTimer] = []
        self.watcher: Optional[ChangeWatcher] = None
        if watch:
            self.watcher = ChangeWatcher(session)
            session.operations.on_change = self.watcher.note_applied
        self._running = False

    def start(self) -> None:
        """Connect the session and schedule the handshake.

        Raises:
            SyncdConnectionError: If the session cannot connect
        """
        self.session.connect()
        self.timers = [PeriodicTimer(self.ping_interval, self.session.handshake_step)]
        if self.watcher is not None:
            self.watcher.start()
        self._running = True

    def run_once(self) -> None:
        """Run one loop iteration."""
        self.session.transport.poll(self.poll_timeout)

        for timer in self.timers:
            timer.run_if_due()
        self.timers = [timer for timer in self.timers if timer.active]

        if self.watcher is not None:
            self.watcher.poll()

    def run(self) -> None:
        """Start and loop until stop() is called.

        Transport errors end the loop and propagate. The session is always
        disconnected on exit.
        """
        self.start()
        try:
            while self._running:
                self.run_once()
        finally:
            self.shutdown()

    def stop(self) -> None:
        """Ask the loop to exit after the current iteration."""
        self._running = False

    def shutdown(self) -> None:
        """Stop watching and disconnect the session."""
        self._running = False
        for timer in self.timers:
            timer.cancel()
        self.timers = []
        if self.watcher is not None:
            self.watcher.stop()
        self.session.disconnect()
