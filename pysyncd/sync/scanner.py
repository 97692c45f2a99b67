"""Directory listing for answering List requests."""

import logging
from pathlib import Path

from ..messages import EntityType, Entry
from ..utils import hash_file
from .paths import PathGuard

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """Builds the entries of a ListResp for one local directory.

    Only direct children are listed; the peer recurses by sending further
    List requests for every Directory entry.

    Examples:
        >>> scanner = DirectoryScanner(PathGuard(Path("/srv/sync")))
        >>> for entry in scanner.list_entries(Path("/srv/sync/docs")):
        ...     print(entry.path, entry.entity.value)
    """

    def __init__(self, guard: PathGuard):
        """Initialize directory scanner.

        Args:
            guard: Path guard of the synchronized root
        """
        self.guard = guard

    def list_entries(self, directory: Path) -> list[Entry]:
        """List the direct children of a directory.

        Files carry their current fingerprint. Symlinks are reported as
        such and not followed. Files that cannot be read are skipped.

        Args:
            directory: Absolute, already resolved directory path

        Returns:
            List of entries sorted by name
        """
        entries: list[Entry] = []

        for item in sorted(directory.iterdir(), key=lambda p: p.name):
            relative_path = self.guard.relative(item)

            if item.is_symlink():
                entries.append(Entry(path=relative_path, entity=EntityType.SYMLINK))
            elif item.is_dir():
                entries.append(Entry(path=relative_path, entity=EntityType.DIRECTORY))
            elif item.is_file():
                try:
                    file_hash = hash_file(item)
                except OSError as e:
                    # Skip files we can't read
                    logger.warning(f"Skipping unreadable file {item}: {e}")
                    continue
                entries.append(
                    Entry(path=relative_path, entity=EntityType.FILE, hash=file_hash)
                )
            else:
                logger.debug(f"Skipping special file {item}")

        return entries
