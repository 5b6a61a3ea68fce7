"""HAS client configuration loading."""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from hiveauth.lib import oj

logger = logging.getLogger(__name__)

DEFAULT_HOST = "wss://hive-auth.arcange.eu/"

# Config file locations
CONFIG_FILENAME = "config.json"
GLOBAL_CONFIG = Path.home() / ".hiveauth" / CONFIG_FILENAME
LOCAL_CONFIG_DIR = ".hiveauth"


@dataclass
class HASConfig:
    """Client settings. The service-mode secret is deliberately not one of them."""

    host: str = DEFAULT_HOST
    """Relay WebSocket URL."""

    request_timeout: float = 60.0
    """Request timeout in seconds until the relay announces its own."""

    poll_interval: float = 0.25
    """Longest wait between two checks of a pending request, in seconds."""

    connect_timeout: float = 10.0
    """Connection establishment timeout in seconds."""

    protocol: float = 0.7
    """Highest HAS protocol version this client understands."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not isinstance(self.host, str) or not self.host.startswith(("ws://", "wss://")):
            raise ValueError("invalid host URL")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")

    @property
    def request_timeout_ms(self) -> float:
        return self.request_timeout * 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HASConfig":
        """Create from config dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = oj.loads(path.read_text())
    except (OSError, oj.JSONDecodeError) as e:
        logger.warning(f"Skipping unreadable config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Skipping config {path}: not a JSON object")
        return {}
    return data


def load_config(working_dir: Path | None = None) -> HASConfig:
    """Load client config from global and local config files.

    Global config (~/.hiveauth/config.json) is loaded first.
    Local config ({working_dir}/.hiveauth/config.json) overrides global.

    Returns:
        The merged configuration.
    """
    merged: dict[str, Any] = {}

    # Load global config
    if GLOBAL_CONFIG.exists():
        merged.update(_read_config_file(GLOBAL_CONFIG))

    # Load local config (overrides global)
    if working_dir:
        local_config = working_dir / LOCAL_CONFIG_DIR / CONFIG_FILENAME
        if local_config.exists():
            merged.update(_read_config_file(local_config))

    return HASConfig.from_dict(merged)
