"""Configuration management for pysyncd.

The configuration is a JSON file, by default ``~/.config/pysyncd/config.json``
(override with the ``PYSYNCD_CONFIG`` environment variable)::

    {
      "channel": "default_channel",
      "syncedDir": "~/sync",
      "backend": "stem",
      "backendOptions": {},
      "address": "stem.fomalhaut.me:5733",
      "pingInterval": 2.0,
      "watch": true
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import SyncdConfigError
from .transport import BACKENDS
from .utils import DEFAULT_ADDRESS, DEFAULT_PING_INTERVAL

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PYSYNCD_CONFIG"

REQUIRED_KEYS = ("channel", "syncedDir", "backend", "backendOptions", "address")

DEFAULT_CONFIG: dict[str, Any] = {
    "channel": "default_channel",
    "syncedDir": "~/sync",
    "backend": "stem",
    "backendOptions": {},
    "address": DEFAULT_ADDRESS,
    "pingInterval": DEFAULT_PING_INTERVAL,
    "watch": True,
}


def default_config_path() -> Path:
    """Get the configuration file path.

    Returns:
        Path from PYSYNCD_CONFIG if set, else ~/.config/pysyncd/config.json
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".config" / "pysyncd" / "config.json"


@dataclass
class SyncdConfig:
    """Resolved daemon configuration."""

    channel: str
    """Channel identifier shared with the peer"""

    synced_dir: Path
    """Synchronized root directory"""

    backend: str = "stem"
    """Transport backend selector"""

    backend_options: dict[str, Any] = field(default_factory=dict)
    """Keyword arguments for the transport backend"""

    address: str = DEFAULT_ADDRESS
    """Transport server address"""

    ping_interval: float = DEFAULT_PING_INTERVAL
    """Seconds between handshake pings"""

    watch: bool = True
    """Whether local changes are sent to the peer"""

    def __post_init__(self) -> None:
        if isinstance(self.synced_dir, str):
            self.synced_dir = Path(self.synced_dir)
        self.synced_dir = self.synced_dir.expanduser()

    def validate(self) -> None:
        """Check the configuration values.

        Raises:
            SyncdConfigError: If a value is invalid or the backend is unknown
        """
        if not self.channel:
            raise SyncdConfigError("Channel must not be empty")
        if len(self.channel.encode("utf-8")) > 255:
            raise SyncdConfigError("Channel must be at most 255 bytes long")
        if self.backend not in BACKENDS:
            raise SyncdConfigError(f"Unknown backend '{self.backend}'")
        if not isinstance(self.backend_options, dict):
            raise SyncdConfigError("backendOptions must be an object")
        if self.ping_interval <= 0:
            raise SyncdConfigError("pingInterval must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncdConfig":
        """Create a configuration from its JSON representation.

        Args:
            data: Dictionary with camelCase keys

        Returns:
            Validated SyncdConfig

        Raises:
            SyncdConfigError: If a required key is missing or a value is invalid
        """
        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            raise SyncdConfigError(f"Missing field(s) in config: {', '.join(missing)}")

        try:
            config = cls(
                channel=str(data["channel"]),
                synced_dir=Path(str(data["syncedDir"])),
                backend=str(data["backend"]),
                backend_options=data["backendOptions"],
                address=str(data["address"]),
                ping_interval=float(data.get("pingInterval", DEFAULT_PING_INTERVAL)),
                watch=bool(data.get("watch", True)),
            )
        except (TypeError, ValueError) as e:
            raise SyncdConfigError(f"Invalid config value: {e}") from e

        config.validate()
        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to its JSON representation."""
        return {
            "channel": self.channel,
            "syncedDir": str(self.synced_dir),
            "backend": self.backend,
            "backendOptions": self.backend_options,
            "address": self.address,
            "pingInterval": self.ping_interval,
            "watch": self.watch,
        }


def save_config(
    data: dict[str, Any], config_path: Optional[Union[str, Path]] = None
) -> Path:
    """Write a configuration file.

    Args:
        data: JSON representation of the configuration
        config_path: Target file (defaults to default_config_path())

    Returns:
        Path the configuration was written to

    Raises:
        SyncdConfigError: If the file cannot be written
    """
    path = Path(config_path) if config_path else default_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
    except OSError as e:
        raise SyncdConfigError(f"Failed writing config file {path}: {e}") from e
    logger.debug(f"Saved config to {path}")
    return path


def load_config(
    config_path: Optional[Union[str, Path]] = None, create: bool = True
) -> SyncdConfig:
    """Load the configuration file.

    Args:
        config_path: File to load (defaults to default_config_path())
        create: Write the default configuration if the file does not exist

    Returns:
        Validated SyncdConfig

    Raises:
        SyncdConfigError: If the file is missing, unreadable or invalid
    """
    path = Path(config_path) if config_path else default_config_path()

    if not path.exists():
        if not create:
            raise SyncdConfigError(f"Config file {path} does not exist")
        logger.info(f"Creating default config file {path}")
        save_config(DEFAULT_CONFIG, path)

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SyncdConfigError(f"Failed reading config file {path}: {e}") from e
    except OSError as e:
        raise SyncdConfigError(f"Failed to open config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise SyncdConfigError(f"Config file {path} must contain a JSON object")

    return SyncdConfig.from_dict(data)
