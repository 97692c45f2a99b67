"""Containment checks for protocol paths."""

import logging
from pathlib import Path, PurePosixPath
from typing import Union

from ..exceptions import SyncdPathEscapeError

logger = logging.getLogger(__name__)


class PathGuard:
    """Resolves protocol paths against the synchronized root.

    Every path carried by a message is relative to the root. Before any read
    or mutation the path is canonicalized (``.``, ``..`` and symlinks are
    resolved) and checked to still lie inside the root.

    Examples:
        >>> guard = PathGuard(Path("/srv/sync"))
        >>> guard.resolve("a/b/../c")
        PosixPath('/srv/sync/a/c')
        >>> guard.resolve("../../etc/passwd")
        Traceback (most recent call last):
        ...
        pysyncd.exceptions.SyncdPathEscapeError: ...
    """

    def __init__(self, root: Union[str, Path]):
        """Initialize the guard.

        Args:
            root: Synchronized root directory (canonicalized here)
        """
        self.root = Path(root).expanduser().resolve()

    def resolve(self, relative_path: str, allow_root: bool = True) -> Path:
        """Resolve a protocol path to an absolute path inside the root.

        Args:
            relative_path: Path relative to the root, as carried by a message
            allow_root: Whether the root itself is an acceptable result.
                Mutating callers pass False so that no message can replace
                or remove the root directory.

        Returns:
            Canonical absolute path

        Raises:
            SyncdPathEscapeError: If the path resolves outside the root
        """
        resolved = (self.root / relative_path).resolve()
        if resolved == self.root:
            if not allow_root:
                raise SyncdPathEscapeError(
                    relative_path, str(resolved), str(self.root)
                )
            return resolved
        if self.root not in resolved.parents:
            logger.debug(f"Rejected path {relative_path!r}: resolves to {resolved}")
            raise SyncdPathEscapeError(relative_path, str(resolved), str(self.root))
        return resolved

    def resolve_entry(self, relative_path: str) -> Path:
        """Resolve a protocol path without following a final symlink.

        The parent directory is canonicalized and checked like in
        :meth:`resolve`; the last component is appended unchanged. Used for
        operations on the directory entry itself (delete, rename), so that a
        symlink is acted upon instead of its target.

        Args:
            relative_path: Path relative to the root

        Returns:
            Absolute path of the entry

        Raises:
            SyncdPathEscapeError: If the path resolves outside the root or
                names the root itself
        """
        name = PurePosixPath(relative_path).name
        if name in ("", ".", ".."):
            return self.resolve(relative_path, allow_root=False)
        parent = self.resolve(str(PurePosixPath(relative_path).parent))
        return parent / name

    def relative(self, path: Path) -> str:
        """Convert an absolute path under the root to its protocol form.

        Args:
            path: Absolute path inside the root (not resolved again, so a
                symlink keeps its own name)

        Returns:
            Relative path with forward slashes ("." for the root itself)
        """
        relative = path.relative_to(self.root)
        return PurePosixPath(*relative.parts).as_posix() if relative.parts else "."
