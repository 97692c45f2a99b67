"""Application of filesystem events received from the peer."""

import logging
from typing import Callable

from ..messages import (
    EntityType,
    FsEventCreate,
    FsEventDelete,
    FsEventModify,
    FsEventRename,
    FsEventUnknown,
)
from ..utils import format_hash, hash_file
from .operations import SyncOperations
from .paths import PathGuard

logger = logging.getLogger(__name__)


class EventApplier:
    """Applies FsEvent* messages to the local tree.

    Each handler resolves its path(s) through the path guard before touching
    the filesystem, so a path escaping the root aborts the event without any
    mutation. Errors propagate to the caller (the message dispatcher), which
    logs them.
    """

    def __init__(
        self,
        guard: PathGuard,
        operations: SyncOperations,
        request_fetch: Callable[[str], None],
    ):
        """Initialize event applier.

        Args:
            guard: Path guard of the synchronized root
            operations: Filesystem operations
            request_fetch: Callback function(path) sending a Get request
        """
        self.guard = guard
        self.operations = operations
        self.request_fetch = request_fetch

    def apply_create(self, event: FsEventCreate) -> None:
        """Create the file or directory named by the event."""
        path = self.guard.resolve(event.path, allow_root=False)

        if event.entity == EntityType.FILE:
            self.operations.create_file(path)
            logger.info(f"Created file {path}")
        elif event.entity == EntityType.DIRECTORY:
            self.operations.create_directory(path)
            logger.info(f"Created directory {path}")
        else:
            logger.warning(
                f"Unimplemented FsEventCreate for entity {event.entity.value}"
            )

    def apply_modify(self, event: FsEventModify) -> None:
        """Fetch the modified file unless the local copy already matches."""
        path = self.guard.resolve(event.path, allow_root=False)

        if path.is_file():
            local_hash = hash_file(path)
            if local_hash == event.hash:
                logger.debug(
                    f"Local copy of {path} already matches {format_hash(event.hash)}"
                )
                return

        logger.debug(f"Requesting update for file {path}")
        self.request_fetch(event.path)

    def apply_rename(self, event: FsEventRename) -> None:
        """Rename an entry from path_from to path_to."""
        path_from = self.guard.resolve_entry(event.path_from)
        path_to = self.guard.resolve_entry(event.path_to)

        if path_from == path_to:
            logger.debug(f"Ignoring rename of {path_from} onto itself")
            return

        self.operations.rename(path_from, path_to)
        logger.info(f"Renamed {path_from} to {path_to}")

    def apply_delete(self, event: FsEventDelete) -> None:
        """Remove the file or directory named by the event."""
        path = self.guard.resolve_entry(event.path)
        self.operations.delete(path)
        logger.info(f"Removed {path}")

    def apply_unknown(self, event: FsEventUnknown) -> None:
        """Log and ignore an unclassified change."""
        logger.warning(
            f"Unimplemented FsEventUnknown for {event.path} "
            f"(entity {event.entity.value})"
        )
