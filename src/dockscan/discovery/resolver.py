"""Locates a reachable Engine socket and classifies the active backend."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Mapping

from dockscan.discovery.types import (
    UNAVAILABLE,
    Backend,
    BackendPreference,
    ResolvedEndpoint,
    SocketCandidate,
)
from dockscan.infrastructure.config import (
    COLIMA_DIR_NAME,
    DOCKER_HOST_ENV,
    DOCKER_SYSTEM_SOCKET,
    DOCKER_USER_SOCKET,
    HOME_DIR,
    SOCKET_FILE_NAME,
    docker_host_socket_path,
)
from dockscan.infrastructure.logger import logger
from dockscan.infrastructure.settings import SettingsStore


def validate_socket(path: str) -> str | None:
    """Return the real path of ``path`` if it ends at a unix socket, else None."""
    try:
        candidate = Path(path)
        if not candidate.exists():
            return None
        resolved = candidate.resolve(strict=True)
        if stat.S_ISSOCK(resolved.stat().st_mode):
            return str(resolved)
    except (OSError, RuntimeError):
        return None
    return None


def _file_type(path: Path) -> str:
    try:
        mode = path.stat().st_mode
    except OSError:
        return "unknown"
    if stat.S_ISDIR(mode):
        return "directory"
    if stat.S_ISREG(mode):
        return "regular file"
    return "unknown"


def describe_candidate(candidate: SocketCandidate, resolved: str | None) -> str:
    """One detection-log line for a probed candidate."""
    label = candidate.backend.display_name
    if resolved:
        return f"✓ [{label}] {candidate.path} -> {resolved}"
    path = Path(candidate.path)
    if path.exists():
        return f"• [{label}] {candidate.path} (type: {_file_type(path.resolve())})"
    return f"✗ [{label}] {candidate.path}"


def colima_profile_sockets(home: Path) -> list[str]:
    """One socket path per profile directory under ~/.colima, sorted by name."""
    root = home / COLIMA_DIR_NAME
    try:
        profiles = sorted(entry for entry in root.iterdir() if entry.is_dir())
    except OSError:
        return []
    return [str(profile / SOCKET_FILE_NAME) for profile in profiles]


def socket_candidates(
    preference: BackendPreference,
    home: Path,
    system_socket: str = DOCKER_SYSTEM_SOCKET,
) -> list[SocketCandidate]:
    """Automatic candidates in priority order, restricted by ``preference``."""
    colima_root = home / COLIMA_DIR_NAME
    colima_paths = [
        str(colima_root / SOCKET_FILE_NAME),
        str(colima_root / "default" / SOCKET_FILE_NAME),
        *colima_profile_sockets(home),
    ]
    docker_paths = [str(home / DOCKER_USER_SOCKET), system_socket]

    groups: list[tuple[Backend, list[str]]] = [
        (Backend.COLIMA, colima_paths),
        (Backend.DOCKER, docker_paths),
    ]
    restricted = preference.restricted_backend

    candidates: list[SocketCandidate] = []
    seen: set[str] = set()
    for backend, paths in groups:
        if restricted is not None and backend is not restricted:
            continue
        for path in paths:
            if path in seen:
                continue
            seen.add(path)
            candidates.append(SocketCandidate(backend=backend, path=path))
    return candidates


def resolve_endpoint(
    preference: BackendPreference,
    custom_path: str | None,
    docker_host: str | None,
    home: Path | None = None,
    system_socket: str = DOCKER_SYSTEM_SOCKET,
) -> ResolvedEndpoint:
    """Pick the first valid socket in priority order.

    Order: custom path, DOCKER_HOST (unix scheme only), then the automatic
    candidates for ``preference``. Never raises; no match yields UNAVAILABLE.
    """
    home = home or HOME_DIR
    env_path = docker_host_socket_path(docker_host)

    log_lines = [f"HOME: {home}"]
    if env_path:
        log_lines.append(f"DOCKER_HOST: {env_path}")
    if custom_path:
        log_lines.append(f"Custom: {custom_path}")

    overrides = [
        ("Custom", custom_path and os.path.expanduser(custom_path)),
        ("DOCKER_HOST", env_path),
    ]
    for source, path in overrides:
        if not path:
            continue
        socket_path = validate_socket(path)
        if socket_path:
            log_lines.append(f"Selected: {source} -> {socket_path}")
            return ResolvedEndpoint(
                backend=Backend.CUSTOM,
                socket_path=socket_path,
                detection_log="\n".join(log_lines),
            )

    for candidate in socket_candidates(preference, home, system_socket):
        socket_path = validate_socket(candidate.path)
        log_lines.append(describe_candidate(candidate, socket_path))
        if socket_path:
            log_lines.append(f"Selected: {candidate.backend.display_name} -> {socket_path}")
            return ResolvedEndpoint(
                backend=candidate.backend,
                socket_path=socket_path,
                detection_log="\n".join(log_lines),
            )

    log_lines.append("Selected: None")
    return ResolvedEndpoint(detection_log="\n".join(log_lines))


class SocketResolver:
    """Owns the current ResolvedEndpoint; ``resolve()`` is its only writer."""

    def __init__(
        self,
        settings: SettingsStore,
        environ: Mapping[str, str] | None = None,
        home: Path | None = None,
        system_socket: str = DOCKER_SYSTEM_SOCKET,
    ) -> None:
        self._settings = settings
        self._environ = environ if environ is not None else os.environ
        self._home = home or HOME_DIR
        self._system_socket = system_socket
        self._current: ResolvedEndpoint = UNAVAILABLE

    @property
    def current(self) -> ResolvedEndpoint:
        return self._current

    def resolve(self) -> ResolvedEndpoint:
        """Re-run resolution from the persisted settings and the environment."""
        previous = self._current
        endpoint = resolve_endpoint(
            preference=self._settings.backend_preference,
            custom_path=self._settings.custom_socket_path,
            docker_host=self._environ.get(DOCKER_HOST_ENV),
            home=self._home,
            system_socket=self._system_socket,
        )
        self._current = endpoint

        if endpoint.socket_path != previous.socket_path or endpoint.backend != previous.backend:
            if endpoint.is_available:
                logger.info("Engine socket selected", backend=endpoint.backend.value, socket=endpoint.socket_path)
            else:
                logger.warning("No Docker/Colima socket available")
        return endpoint
