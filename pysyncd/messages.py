"""Protocol message types exchanged between peers.

Every message is an immutable dataclass. The class name doubles as the
``type`` discriminant on the wire (see :mod:`pysyncd.codec`). Paths are
always relative to the synchronized root and use forward slashes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class EntityType(str, Enum):
    """Kind of filesystem entity a message refers to."""

    FILE = "File"
    """Regular file"""

    DIRECTORY = "Directory"
    """Directory"""

    SYMLINK = "Symlink"
    """Symbolic link (not followed)"""


@dataclass(frozen=True)
class Entry:
    """One entry of a directory listing."""

    path: str
    """Path relative to the synchronized root"""

    entity: EntityType
    """Entity kind"""

    hash: Optional[int] = None
    """Content fingerprint, only present for files"""

    def __post_init__(self) -> None:
        object.__setattr__(self, "entity", EntityType(self.entity))


@dataclass(frozen=True)
class Ping:
    """Liveness probe."""


@dataclass(frozen=True)
class Pong:
    """Liveness answer."""


@dataclass(frozen=True)
class List:
    """Request for the contents of a directory."""

    path: str


@dataclass(frozen=True)
class ListResp:
    """Directory listing sent in response to :class:`List`."""

    entries: tuple[Entry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple(self.entries))


@dataclass(frozen=True)
class Get:
    """Request for the full contents of a single file."""

    path: str


@dataclass(frozen=True)
class GetResp:
    """Full contents of a file sent in response to :class:`Get`."""

    path: str
    contents: bytes


@dataclass(frozen=True)
class FsEventCreate:
    """A file, directory or symlink was created on the peer."""

    path: str
    entity: EntityType

    def __post_init__(self) -> None:
        object.__setattr__(self, "entity", EntityType(self.entity))


@dataclass(frozen=True)
class FsEventModify:
    """File contents changed on the peer."""

    path: str
    hash: int


@dataclass(frozen=True)
class FsEventRename:
    """An entry was renamed on the peer."""

    path_from: str
    path_to: str


@dataclass(frozen=True)
class FsEventDelete:
    """An entry was removed on the peer."""

    path: str


@dataclass(frozen=True)
class FsEventUnknown:
    """Unclassified change on the peer.

    Senders emit :class:`FsEventDelete` instead when the path no longer exists.
    """

    path: str
    entity: EntityType
    hash: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "entity", EntityType(self.entity))


Message = Union[
    Ping,
    Pong,
    List,
    ListResp,
    Get,
    GetResp,
    FsEventCreate,
    FsEventModify,
    FsEventRename,
    FsEventDelete,
    FsEventUnknown,
]

MESSAGE_TYPES: tuple[type, ...] = (
    Ping,
    Pong,
    List,
    ListResp,
    Get,
    GetResp,
    FsEventCreate,
    FsEventModify,
    FsEventRename,
    FsEventDelete,
    FsEventUnknown,
)


def message_type(message: Message) -> str:
    """Return the wire discriminant of a message."""
    return type(message).__name__
