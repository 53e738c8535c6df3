"""Configuration constants, socket locations, and timeout settings."""

from __future__ import annotations

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


# Engine HTTP timeouts (seconds). Streams only use the connect timeout.
CONNECT_TIMEOUT_S: float = 2.0
REQUEST_TIMEOUT_S: float = 10.0

# Log streaming
LOG_TAIL_DEFAULT: int = max(0, _env_int("DOCKSCAN_LOG_TAIL", 500))
RECONNECT_BACKOFF_S: float = 0.6
LOG_BATCH_WINDOW_S: float = 0.15
LOG_QUEUE_SIZE: int = 256
MAX_FRAME_SIZE: int = 8 * 1024 * 1024

AUTO_REFRESH_INTERVAL: float = max(1.0, _env_float("DOCKSCAN_REFRESH_INTERVAL", 5.0))

# Socket locations
HOME_DIR: Path = Path(os.environ.get("HOME") or Path.home())
COLIMA_DIR_NAME: str = ".colima"
DOCKER_USER_SOCKET: str = ".docker/run/docker.sock"
DOCKER_SYSTEM_SOCKET: str = "/var/run/docker.sock"
SOCKET_FILE_NAME: str = "docker.sock"
DOCKER_HOST_ENV: str = "DOCKER_HOST"

# Settings persistence
SETTINGS_DIR: Path = Path(os.environ.get("DOCKSCAN_CONFIG_DIR") or HOME_DIR / ".config" / "dockscan")
SETTINGS_DB_PATH: Path = SETTINGS_DIR / "settings.db"

COLIMA_STATUS_TIMEOUT_S: float = 5.0


def docker_host_socket_path(raw: str | None) -> str | None:
    """Extract a socket path from a DOCKER_HOST value.

    Only the unix scheme is recognised (``unix:///path`` or ``unix:/path``);
    tcp:// and ssh:// hosts are not reachable through this client.
    """
    if not raw:
        return None
    if raw.startswith("unix://"):
        path = raw[len("unix://"):]
    elif raw.startswith("unix:"):
        path = raw[len("unix:"):]
    else:
        return None
    return path or None
