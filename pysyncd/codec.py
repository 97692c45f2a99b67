"""CBOR codec for protocol messages.

Each message is encoded as a CBOR map carrying a ``type`` key with the
message name and one key per message field::

    {"type": "Get", "path": "docs/a.txt"}
    {"type": "ListResp", "entries": [{"path": "a.txt", "entity": "File", "hash": 42}]}

Every peer expects ``hash`` on listing entries and on ``FsEventUnknown``, so
an unset hash is written as 0. On decode, directory and symlink entries drop
their hash and a nil ``FsEventUnknown`` hash counts as unset. File contents
use the CBOR byte string type, everything else is a text string or an
unsigned integer.
"""

import logging
from dataclasses import MISSING, fields
from typing import Any

import cbor2

from .exceptions import SyncdDecodeError, SyncdUnknownMessageError
from .messages import (
    MESSAGE_TYPES,
    EntityType,
    Entry,
    FsEventUnknown,
    Message,
    message_type,
)

logger = logging.getLogger(__name__)

MAX_HASH = 2**64 - 1

# Written in place of an unset hash
UNSET_HASH = 0

_TYPES_BY_NAME: dict[str, type] = {cls.__name__: cls for cls in MESSAGE_TYPES}


def encode(message: Message) -> bytes:
    """Serialize a message to its wire representation.

    Args:
        message: Message to encode

    Returns:
        CBOR encoded bytes

    Raises:
        TypeError: If the object is not a protocol message
    """
    if type(message) not in MESSAGE_TYPES:
        raise TypeError(f"Not a protocol message: {message!r}")

    data: dict[str, Any] = {"type": message_type(message)}
    for f in fields(message):
        value = getattr(message, f.name)
        if value is None:
            if isinstance(message, FsEventUnknown) and f.name == "hash":
                data[f.name] = UNSET_HASH
            continue
        data[f.name] = _encode_value(f.name, value)
    return cbor2.dumps(data)


def _encode_value(name: str, value: Any) -> Any:
    if name == "entries":
        return [_encode_entry(entry) for entry in value]
    if isinstance(value, EntityType):
        return value.value
    return value


def _encode_entry(entry: Entry) -> dict[str, Any]:
    return {
        "path": entry.path,
        "entity": entry.entity.value,
        "hash": UNSET_HASH if entry.hash is None else entry.hash,
    }


def decode(raw: bytes) -> Message:
    """Deserialize a message from its wire representation.

    Args:
        raw: CBOR encoded bytes

    Returns:
        Decoded message

    Raises:
        SyncdUnknownMessageError: If the ``type`` discriminant is not known
        SyncdDecodeError: If the payload is malformed
    """
    try:
        data = cbor2.loads(raw)
    except (cbor2.CBORDecodeError, EOFError, ValueError, TypeError) as e:
        raise SyncdDecodeError(f"Malformed message payload: {e}") from e

    if not isinstance(data, dict):
        raise SyncdDecodeError(
            f"Expected a map, got {type(data).__name__} instead"
        )

    name = data.get("type")
    if name is None:
        raise SyncdDecodeError("Message has no 'type' field")
    cls = _TYPES_BY_NAME.get(name) if isinstance(name, str) else None
    if cls is None:
        raise SyncdUnknownMessageError(name)

    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        value = data.get(f.name)
        has_default = f.default is not MISSING or f.default_factory is not MISSING
        if f.name not in data or (value is None and has_default):
            if not has_default:
                raise SyncdDecodeError(f"{name} message is missing field '{f.name}'")
            continue
        kwargs[f.name] = _decode_field(name, f.name, value)
    return cls(**kwargs)


def _decode_field(message_name: str, name: str, value: Any) -> Any:
    if name in ("path", "path_from", "path_to"):
        return _require_str(message_name, name, value)
    if name == "hash":
        return _require_hash(message_name, name, value)
    if name == "entity":
        return _require_entity(message_name, value)
    if name == "contents":
        if not isinstance(value, (bytes, bytearray)):
            raise SyncdDecodeError(f"{message_name}.contents must be bytes")
        return bytes(value)
    if name == "entries":
        if not isinstance(value, (list, tuple)):
            raise SyncdDecodeError(f"{message_name}.entries must be a sequence")
        return tuple(_decode_entry(item) for item in value)
    return value


def _decode_entry(item: Any) -> Entry:
    if not isinstance(item, dict):
        raise SyncdDecodeError("ListResp entry must be a map")
    if "path" not in item or "entity" not in item:
        raise SyncdDecodeError("ListResp entry requires 'path' and 'entity'")
    entity = _require_entity("ListResp", item["entity"])
    hash_value = item.get("hash")
    if hash_value is not None:
        hash_value = _require_hash("ListResp", "hash", hash_value)
    # Directories and symlinks carry a placeholder hash
    if entity is not EntityType.FILE:
        hash_value = None
    return Entry(
        path=_require_str("ListResp", "path", item["path"]),
        entity=entity,
        hash=hash_value,
    )


def _require_str(message_name: str, name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise SyncdDecodeError(f"{message_name}.{name} must be a string")
    return value


def _require_hash(message_name: str, name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SyncdDecodeError(f"{message_name}.{name} must be an integer")
    if not 0 <= value <= MAX_HASH:
        raise SyncdDecodeError(f"{message_name}.{name} is not a 64-bit unsigned value")
    return value


def _require_entity(message_name: str, value: Any) -> EntityType:
    try:
        return EntityType(value)
    except ValueError as e:
        raise SyncdDecodeError(
            f"{message_name} has unknown entity type {value!r}"
        ) from e
