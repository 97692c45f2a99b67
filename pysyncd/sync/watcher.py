"""Local change detection turning filesystem changes into FsEvent messages."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from watchfiles import Change, watch

from ..messages import EntityType
from ..utils import hash_file
from .operations import TEMP_SUFFIX

if TYPE_CHECKING:
    from ..session import SyncSession

logger = logging.getLogger(__name__)

# Snapshot of a path: None when absent, otherwise (kind, fingerprint)
PathState = Optional[tuple[str, Optional[int]]]

# (st_dev, st_ino) of a directory entry, kept across a rename
Identity = tuple[int, int]


def snapshot(path: Path) -> PathState:
    """Capture the current state of a path for change comparison.

    Args:
        path: Absolute path

    Returns:
        None if nothing exists at path, otherwise a (kind, hash) tuple where
        hash is only set for readable files
    """
    if path.is_symlink():
        return ("symlink", None)
    if path.is_dir():
        return ("directory", None)
    if path.is_file():
        try:
            return ("file", hash_file(path))
        except OSError:
            return ("file", None)
    if path.exists():
        return ("other", None)
    return None


def identity(path: Path) -> Optional[Identity]:
    """Return the device and inode of a directory entry, None if missing."""
    try:
        st = path.lstat()
    except OSError:
        return None
    return (st.st_dev, st.st_ino)


def _is_below(path: str, parent: str) -> bool:
    return path.startswith(parent + "/")


class ChangeWatcher:
    """Watches the synchronized root and sends FsEvent messages to the peer.

    Changes are read from a ``watchfiles`` generator one batch at a time by
    :meth:`poll`, so the watcher runs on the same loop as the transport.

    A removed path and an added path of the same inode within one batch are
    sent as a single FsEventRename. The inode of every entry is recorded when
    watching starts and kept current from the batches.

    Changes made by the session itself (files fetched from the peer, events
    applied on its behalf) are reported through :meth:`note_applied`. A later
    change of such a path is not sent back when the path is still in the
    recorded state.
    """

    def __init__(
        self,
        session: SyncSession,
        debounce_ms: int = 500,
        timeout_ms: int = 50,
        suppress_seconds: float = 10.0,
    ):
        """Initialize change watcher.

        Args:
            session: Session used to send events
            debounce_ms: Time to group changes into one batch
            timeout_ms: Maximum time a poll waits for changes
            suppress_seconds: How long a recorded applied change is kept
        """
        self.session = session
        self.guard = session.guard
        self.debounce_ms = debounce_ms
        self.timeout_ms = timeout_ms
        self.suppress_seconds = suppress_seconds
        self._applied: dict[str, tuple[PathState, float]] = {}
        self._identities: dict[str, Identity] = {}
        self._changes: Optional[Iterator[set[tuple[Change, str]]]] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        """Start watching the synchronized root."""
        self._stop_event.clear()
        self.index_tree()
        self._changes = watch(
            self.guard.root,
            watch_filter=self.filter_changes,
            debounce=self.debounce_ms,
            rust_timeout=self.timeout_ms,
            yield_on_timeout=True,
            stop_event=self._stop_event,
            recursive=True,
        )
        logger.info(f"Watching {self.guard.root} for changes")

    def stop(self) -> None:
        """Stop watching."""
        self._stop_event.set()
        if self._changes is not None:
            self._changes.close()
            self._changes = None

    def index_tree(self) -> int:
        """Record the inode of every entry below the root.

        Returns:
            Number of entries recorded
        """
        self._identities.clear()
        for dirpath, dirnames, filenames in os.walk(self.guard.root):
            for name in dirnames + filenames:
                if name.endswith(TEMP_SUFFIX):
                    continue
                path = Path(dirpath) / name
                ident = identity(path)
                if ident is not None:
                    self._identities[self.guard.relative(path)] = ident
        logger.debug(f"Indexed {len(self._identities)} entries")
        return len(self._identities)

    def filter_changes(self, change: Change, path: str) -> bool:
        """Filter out temporary files written while fetching."""
        return not path.endswith(TEMP_SUFFIX)

    def poll(self) -> int:
        """Wait for the next batch of changes and send events for it.

        Returns:
            Number of messages sent
        """
        if self._changes is None:
            return 0
        changes = next(self._changes, None)
        if not changes:
            return 0
        return self.handle_changes(changes)

    def note_applied(self, path: Path) -> None:
        """Record the state of a path changed on behalf of the peer."""
        try:
            relative_path = self.guard.relative(path)
        except ValueError:
            return
        self._applied[relative_path] = (snapshot(path), time.monotonic())
        self._record_identity(relative_path, path)

    def _is_echo(self, relative_path: str, state: PathState) -> bool:
        recorded = self._applied.pop(relative_path, None)
        if recorded is None:
            return False
        recorded_state, recorded_at = recorded
        if time.monotonic() - recorded_at > self.suppress_seconds:
            return False
        return recorded_state == state

    def handle_changes(self, changes: Iterable[tuple[Change, str]]) -> int:
        """Send events for a batch of changes.

        Every changed path is reported once, based on its current state:
        renames first, then removed paths (deepest first), then existing ones
        (parents first).

        Args:
            changes: Set of (Change, absolute path) tuples from watchfiles

        Returns:
            Number of messages sent
        """
        kinds: dict[str, set[Change]] = {}
        paths: dict[str, Path] = {}
        for change, raw_path in changes:
            path = Path(raw_path)
            try:
                relative_path = self.guard.relative(path)
            except ValueError:
                logger.debug(f"Ignoring change outside root: {raw_path}")
                continue
            if relative_path == ".":
                continue
            kinds.setdefault(relative_path, set()).add(change)
            paths[relative_path] = path

        states = {rel: snapshot(path) for rel, path in paths.items()}
        removed = sorted((rel for rel, s in states.items() if s is None), reverse=True)
        present = sorted(rel for rel, s in states.items() if s is not None)

        renames, moved = self._pair_renames(removed, present, kinds, paths)
        removed = [rel for rel in removed if rel not in renames and rel not in moved]
        targets = set(renames.values())
        present = [rel for rel in present if rel not in targets and rel not in moved]

        sent = 0
        for path_from, path_to in sorted(renames.items()):
            sent += self._send_rename(path_from, path_to, states[path_to])
        for relative_path in removed + present:
            state = states[relative_path]
            if self._is_echo(relative_path, state):
                logger.debug(f"Not sending back applied change of {relative_path}")
                continue
            sent += self._send_events(relative_path, kinds[relative_path], state)

        for relative_path in removed:
            self._forget_identity(relative_path)
        for relative_path in present:
            self._record_identity(relative_path, paths[relative_path])
        self._expire_applied()
        return sent

    def _pair_renames(
        self,
        removed: list[str],
        present: list[str],
        kinds: dict[str, set[Change]],
        paths: dict[str, Path],
    ) -> tuple[dict[str, str], set[str]]:
        """Match removed paths with added paths of the same inode.

        Returns:
            Mapping of old to new path, and the set of old and new paths of
            entries that moved along with a renamed directory
        """
        added: dict[Identity, str] = {}
        for relative_path in present:
            if Change.added in kinds[relative_path]:
                ident = identity(paths[relative_path])
                if ident is not None:
                    added[ident] = relative_path

        renames: dict[str, str] = {}
        for relative_path in removed:
            ident = self._identities.get(relative_path)
            if ident is not None and ident in added:
                renames[relative_path] = added.pop(ident)

        moved: set[str] = set()
        for path_from, path_to in renames.items():
            for parent_from, parent_to in renames.items():
                if _is_below(path_from, parent_from) and (
                    path_to == parent_to + path_from[len(parent_from) :]
                ):
                    moved.update((path_from, path_to))
                    break
        for path_from in [rel for rel in renames if rel in moved]:
            del renames[path_from]
        return renames, moved

    def _send_rename(self, path_from: str, path_to: str, state: PathState) -> int:
        from_echo = self._is_echo(path_from, None)
        to_echo = self._is_echo(path_to, state)
        self._move_identities(path_from, path_to)
        if from_echo and to_echo:
            logger.debug(f"Not sending back applied rename of {path_from}")
            return 0

        self.session.fs_event_rename(path_from, path_to)
        kind, file_hash = state
        if kind == "file" and file_hash is not None:
            # Contents may have changed after the rename
            self.session.fs_event_modify(path_to, file_hash)
            return 2
        return 1

    def _send_events(
        self, relative_path: str, kinds: set[Change], state: PathState
    ) -> int:
        session = self.session

        if state is None:
            session.fs_event_delete(relative_path)
            return 1

        kind, file_hash = state
        added = Change.added in kinds

        if kind == "file":
            if file_hash is None:
                logger.warning(f"Cannot read changed file {relative_path}")
                return 0
            if added:
                session.fs_event_create(relative_path, EntityType.FILE)
                session.fs_event_modify(relative_path, file_hash)
                return 2
            session.fs_event_modify(relative_path, file_hash)
            return 1
        if kind == "directory":
            if added:
                session.fs_event_create(relative_path, EntityType.DIRECTORY)
                return 1
            return 0
        if kind == "symlink":
            if added:
                session.fs_event_create(relative_path, EntityType.SYMLINK)
                return 1
            return 0

        session.fs_event_unknown(relative_path, EntityType.FILE)
        return 1

    def _record_identity(self, relative_path: str, path: Path) -> None:
        ident = identity(path)
        if ident is None:
            self._forget_identity(relative_path)
        else:
            self._identities[relative_path] = ident

    def _forget_identity(self, relative_path: str) -> None:
        self._identities.pop(relative_path, None)
        for rel in [r for r in self._identities if _is_below(r, relative_path)]:
            del self._identities[rel]

    def _move_identities(self, path_from: str, path_to: str) -> None:
        for rel in [
            r for r in self._identities if r == path_from or _is_below(r, path_from)
        ]:
            new_rel = path_to + rel[len(path_from) :]
            self._identities[new_rel] = self._identities.pop(rel)

    def _expire_applied(self) -> None:
        cutoff = time.monotonic() - self.suppress_seconds
        for relative_path in [
            rel for rel, (_, at) in self._applied.items() if at < cutoff
        ]:
            del self._applied[relative_path]
