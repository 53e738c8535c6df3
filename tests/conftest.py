import shutil
import socket
import tempfile
from pathlib import Path
from typing import Callable

import httpx
import pytest

from dockscan.discovery.types import Backend, ResolvedEndpoint
from dockscan.engine.client import EngineClient
from dockscan.infrastructure.settings import SettingsStore

FAKE_SOCKET = "/tmp/dockscan-test.sock"


class FixedResolver:
    """Stands in for SocketResolver with a preset endpoint."""

    def __init__(self, endpoint: ResolvedEndpoint) -> None:
        self.current = endpoint
        self.resolve_calls = 0

    def resolve(self) -> ResolvedEndpoint:
        self.resolve_calls += 1
        return self.current


def available_endpoint(backend: Backend = Backend.DOCKER) -> ResolvedEndpoint:
    return ResolvedEndpoint(backend=backend, socket_path=FAKE_SOCKET, detection_log="test")


@pytest.fixture
def settings() -> SettingsStore:
    """In-memory settings store."""
    store = SettingsStore.in_memory()
    yield store
    store.close()


@pytest.fixture
def short_tmp() -> Path:
    """A temp dir with a short path; AF_UNIX paths are limited to ~104 bytes."""
    base = "/tmp" if Path("/tmp").is_dir() else None
    path = Path(tempfile.mkdtemp(prefix="ds", dir=base))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def make_socket() -> Callable[[Path], Path]:
    """Bind a real unix socket at the given path."""
    sockets: list[socket.socket] = []

    def _make(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.bind(str(path))
        sockets.append(sock)
        return path

    yield _make
    for sock in sockets:
        sock.close()


@pytest.fixture
def make_client() -> Callable[..., EngineClient]:
    """EngineClient whose HTTP exchanges are served by ``handler``."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        endpoint: ResolvedEndpoint | None = None,
        resolver: FixedResolver | None = None,
    ) -> EngineClient:
        resolver = resolver or FixedResolver(endpoint or available_endpoint())
        return EngineClient(resolver, transport_factory=lambda _path: httpx.MockTransport(handler))  # type: ignore[arg-type]

    return _make


@pytest.fixture
def fixed_resolver() -> Callable[..., FixedResolver]:
    """Factory for resolvers pinned to an endpoint (available by default)."""

    def _make(endpoint: ResolvedEndpoint | None = None, backend: Backend = Backend.DOCKER) -> FixedResolver:
        return FixedResolver(endpoint or available_endpoint(backend))

    return _make
