"""Local filesystem operations applied on behalf of the peer."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Path], None]

# Suffix of temporary files written next to their target by write_file
TEMP_SUFFIX = ".syncd-tmp"


class SyncOperations:
    """Filesystem mutations used by the reconciler and event applier.

    All paths passed here must already have been checked by the
    :class:`~pysyncd.sync.paths.PathGuard`. After every successful mutation
    the optional change listener is called with the affected path, which lets
    the local watcher recognise changes it should not send back to the peer.
    """

    def __init__(self, on_change: Optional[ChangeListener] = None):
        """Initialize sync operations.

        Args:
            on_change: Optional callback function(path) invoked after each
                mutation
        """
        self.on_change = on_change

    def _notify(self, path: Path) -> None:
        if self.on_change is not None:
            self.on_change(path)

    def read_file(self, path: Path) -> bytes:
        """Read the full contents of a file.

        Args:
            path: File to read

        Returns:
            File contents
        """
        return path.read_bytes()

    def write_file(self, path: Path, contents: bytes) -> None:
        """Replace a file's contents.

        The data is written to a temporary file in the target directory which
        then replaces the target. A directory occupying the target path is
        removed first. If writing fails the previous state is left untouched.

        Args:
            path: Target file
            contents: New file contents
        """
        # Ensure parent directory exists
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=TEMP_SUFFIX, dir=path.parent
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(contents)
            if path.is_dir() and not path.is_symlink():
                logger.debug(f"Removing directory {path} to replace it with a file")
                shutil.rmtree(path)
            os.replace(temp_path, path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        self._notify(path)

    def create_file(self, path: Path) -> None:
        """Create an empty file, truncating an existing one.

        Missing intermediate directories are created first.

        Args:
            path: File to create
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb"):
            pass
        self._notify(path)

    def create_directory(self, path: Path) -> None:
        """Create a directory and any missing intermediate directories.

        Args:
            path: Directory to create
        """
        path.mkdir(parents=True, exist_ok=True)
        self._notify(path)

    def ensure_directory(self, path: Path) -> bool:
        """Make sure a directory exists at path.

        A file or symlink occupying the path is removed first.

        Args:
            path: Directory path

        Returns:
            True if anything was changed, False if the directory already existed
        """
        if path.is_dir() and not path.is_symlink():
            return False
        if path.is_symlink() or path.exists():
            logger.debug(f"Removing {path} to replace it with a directory")
            path.unlink()
        self.create_directory(path)
        return True

    def rename(self, source: Path, destination: Path) -> None:
        """Rename an entry, creating missing destination directories.

        Args:
            source: Existing entry
            destination: New location
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        source.rename(destination)
        self._notify(source)
        self._notify(destination)

    def delete(self, path: Path) -> None:
        """Delete a file, symlink or directory (recursively).

        Args:
            path: Entry to delete

        Raises:
            FileNotFoundError: If nothing exists at path
        """
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            # Raises FileNotFoundError for missing paths
            path.unlink()
        self._notify(path)
