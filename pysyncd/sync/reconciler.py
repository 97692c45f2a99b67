"""Reconciliation of a remote directory listing against local state."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..exceptions import SyncdPathEscapeError
from ..messages import EntityType, Entry
from ..utils import format_hash, hash_file
from .paths import PathGuard

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    """Actions that can be taken for a listing entry."""

    FETCH = "fetch"
    """Request the file contents with Get"""

    LIST = "list"
    """Request the directory contents with List"""

    CREATE_DIRECTORY = "create_directory"
    """Create the directory locally"""

    SKIP = "skip"
    """Skip entry (no action needed)"""

    REJECT = "reject"
    """Entry escapes the synchronized root or cannot be inspected"""


@dataclass
class ReconcileDecision:
    """Represents a decision about how to converge one entry."""

    action: ReconcileAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    relative_path: str
    """Path of the entry as sent by the peer"""

    local_path: Optional[Path] = None
    """Resolved local path (None for rejected entries)"""


class Reconciler:
    """Compares remote listing entries with the local tree.

    The comparison is a pull on divergence: a remote file whose fingerprint
    differs from the local copy (or has no local copy) is fetched, and every
    remote directory is listed in turn. Entries are independent, so the
    result does not depend on their order, and running it again once the
    local tree matches yields no further fetches.
    """

    def __init__(self, guard: PathGuard):
        """Initialize reconciler.

        Args:
            guard: Path guard of the synchronized root
        """
        self.guard = guard

    def reconcile(self, entries: Iterable[Entry]) -> list[ReconcileDecision]:
        """Determine the actions needed to converge on a remote listing.

        Args:
            entries: Entries of a ListResp

        Returns:
            List of ReconcileDecision objects, in entry order
        """
        decisions: list[ReconcileDecision] = []
        for entry in entries:
            decisions.extend(self._reconcile_entry(entry))
        return decisions

    def _reconcile_entry(self, entry: Entry) -> list[ReconcileDecision]:
        try:
            local_path = self.guard.resolve(entry.path, allow_root=False)
        except SyncdPathEscapeError as e:
            logger.error(f"Rejecting listing entry: {e}")
            return [self._reject(entry, str(e))]
        except (OSError, ValueError) as e:
            logger.error(f"Cannot resolve listing entry {entry.path!r}: {e}")
            return [self._reject(entry, str(e))]

        try:
            if entry.entity == EntityType.FILE:
                return [self._compare_file(entry, local_path)]
            if entry.entity == EntityType.DIRECTORY:
                return self._compare_directory(entry, local_path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed comparing {local_path} with listing entry: {e}")
            return [self._reject(entry, str(e))]

        logger.warning(f"Unimplemented reconciliation for entity {entry.entity.value}")
        return [
            ReconcileDecision(
                action=ReconcileAction.SKIP,
                reason=f"{entry.entity.value} entries are not supported",
                relative_path=entry.path,
                local_path=local_path,
            )
        ]

    @staticmethod
    def _reject(entry: Entry, reason: str) -> ReconcileDecision:
        return ReconcileDecision(
            action=ReconcileAction.REJECT,
            reason=reason,
            relative_path=entry.path,
        )

    def _compare_file(self, entry: Entry, local_path: Path) -> ReconcileDecision:
        """Compare a remote file entry with the local path."""
        if not local_path.exists():
            # File does not exist locally, download
            logger.debug(f"Path {local_path} does not exist locally")
            return ReconcileDecision(
                action=ReconcileAction.FETCH,
                reason="New remote file",
                relative_path=entry.path,
                local_path=local_path,
            )

        if local_path.is_dir():
            # Directory gets replaced by the GetResp handler
            logger.debug(f"Remote path is a file but {local_path} is a directory")
            return ReconcileDecision(
                action=ReconcileAction.FETCH,
                reason="Remote file replaces local directory",
                relative_path=entry.path,
                local_path=local_path,
            )

        if not local_path.is_file():
            # FIFOs and devices block on open
            logger.warning(f"Not syncing {local_path}: not a regular file")
            return ReconcileDecision(
                action=ReconcileAction.SKIP,
                reason="Local path is not a regular file",
                relative_path=entry.path,
                local_path=local_path,
            )

        local_hash = hash_file(local_path)
        if entry.hash is None or local_hash != entry.hash:
            remote_hash = "none" if entry.hash is None else format_hash(entry.hash)
            logger.debug(
                f"Local and remote hash of {local_path} differ: "
                f"local {format_hash(local_hash)}, remote {remote_hash}"
            )
            return ReconcileDecision(
                action=ReconcileAction.FETCH,
                reason="Contents differ",
                relative_path=entry.path,
                local_path=local_path,
            )

        logger.debug(f"Local and remote hash of {local_path} are identical")
        return ReconcileDecision(
            action=ReconcileAction.SKIP,
            reason="Files are identical",
            relative_path=entry.path,
            local_path=local_path,
        )

    def _compare_directory(
        self, entry: Entry, local_path: Path
    ) -> list[ReconcileDecision]:
        """Compare a remote directory entry with the local path."""
        decisions: list[ReconcileDecision] = []

        if not local_path.is_dir():
            reason = (
                "Remote directory replaces local file"
                if local_path.exists()
                else "New remote directory"
            )
            decisions.append(
                ReconcileDecision(
                    action=ReconcileAction.CREATE_DIRECTORY,
                    reason=reason,
                    relative_path=entry.path,
                    local_path=local_path,
                )
            )

        decisions.append(
            ReconcileDecision(
                action=ReconcileAction.LIST,
                reason="Remote directory",
                relative_path=entry.path,
                local_path=local_path,
            )
        )
        return decisions
