"""Engine domain entities published to the presentation layer."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict

PORT_SUMMARY_LIMIT = 2

_EXIT_CODE_PATTERN = re.compile(r"Exited \((-?\d+)\)")


class Port(BaseModel):
    model_config = ConfigDict(frozen=True)

    ip: str | None = None
    private_port: int
    public_port: int | None = None
    type: str = ""

    @property
    def display(self) -> str:
        """``public:private`` for published ports, empty otherwise."""
        if self.public_port is None:
            return ""
        return f"{self.public_port}:{self.private_port}"


def summarize_ports(ports: list[Port], limit: int = PORT_SUMMARY_LIMIT) -> list[str]:
    """Unique published mappings ordered by (public, private, type), capped at ``limit``."""
    published = sorted(
        (p for p in ports if p.public_port is not None),
        key=lambda p: (p.public_port, p.private_port, p.type),
    )
    unique: list[str] = []
    for port in published:
        mapped = port.display
        if mapped and mapped not in unique:
            unique.append(mapped)
    return unique[:limit]


def exit_code_from_status(status: str) -> int | None:
    """Exit code embedded in status text such as ``Exited (137) 2 hours ago``."""
    match = _EXIT_CODE_PATTERN.search(status)
    return int(match.group(1)) if match else None


class Container(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image: str
    state: str = ""
    status: str = ""
    created_at: datetime | None = None
    ports: list[Port] = []
    labels: dict[str, str] = {}

    @property
    def is_running(self) -> bool:
        return self.state == "running"

    @property
    def is_error(self) -> bool:
        if self.state == "dead":
            return True
        code = exit_code_from_status(self.status)
        return code is not None and code != 0

    @property
    def port_summary(self) -> str:
        return "  ".join(summarize_ports(self.ports))


class EnvVar(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: str = ""


class NetworkAttachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    ip_address: str = ""
    mac_address: str = ""
    gateway: str = ""


class Mount(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = ""
    name: str = ""
    source: str = ""
    destination: str = ""
    read_only: bool = False


class ContainerDetails(BaseModel):
    """Inspect view of one container; fetched on demand, never cached."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image: str = ""
    created_at: str = ""
    state: str = ""
    status: str = ""
    working_dir: str = ""
    command: str = ""
    env: list[EnvVar] = []
    networks: list[NetworkAttachment] = []
    mounts: list[Mount] = []

    @property
    def volume_mounts(self) -> list[Mount]:
        return [m for m in self.mounts if m.type == "volume" and m.name]


class Volume(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    driver: str = ""
    mountpoint: str = ""
    created_at: str = ""
    ref_count: int | None = None
    size_bytes: int | None = None

    @property
    def is_in_use(self) -> bool:
        return (self.ref_count or 0) > 0


class Image(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tags: list[str] = []
    size_bytes: int = 0
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.tags[0] if self.tags else self.id


class Network(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    driver: str = ""
    scope: str = ""
    created_at: datetime | None = None
    container_count: int | None = None

    @property
    def is_in_use(self) -> bool:
        return (self.container_count or 0) > 0


class EngineInfo(BaseModel):
    """Summary of the VM/engine behind the active socket."""

    model_config = ConfigDict(frozen=True)

    vm_engine: str
    memory_max_bytes: int | None = None
    memory_allocated_bytes: int | None = None
    arch: str | None = None
    runtime: str | None = None
    mount_type: str | None = None
    operating_system: str | None = None
    server_version: str | None = None
