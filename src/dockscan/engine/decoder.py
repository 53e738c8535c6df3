"""Maps Engine wire JSON into domain entities.

Wire models mirror the Engine's field names through aliases; anything that
does not fit them raises DecodeError for that call only.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from dockscan.discovery.colima import ColimaStatus
from dockscan.discovery.types import Backend
from dockscan.engine.errors import DecodeError
from dockscan.engine.types import (
    Container,
    ContainerDetails,
    EngineInfo,
    EnvVar,
    Image,
    Mount,
    Network,
    NetworkAttachment,
    Port,
    Volume,
)

T = TypeVar("T")

UNTAGGED_IMAGE = "<none>:<none>"
_GIB = 1024 * 1024 * 1024

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}")
_FRACTION = re.compile(r"\.(\d+)")


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ContainerPortWire(_Wire):
    ip: str | None = Field(default=None, alias="IP")
    private_port: int | None = Field(default=None, alias="PrivatePort")
    public_port: int | None = Field(default=None, alias="PublicPort")
    type: str | None = Field(default=None, alias="Type")


class ContainerSummaryWire(_Wire):
    id: str = Field(alias="Id")
    names: list[str] | None = Field(default=None, alias="Names")
    image: str = Field(default="", alias="Image")
    state: str | None = Field(default=None, alias="State")
    status: str | None = Field(default=None, alias="Status")
    created: int | None = Field(default=None, alias="Created")
    ports: list[ContainerPortWire] | None = Field(default=None, alias="Ports")
    labels: dict[str, str] | None = Field(default=None, alias="Labels")


class ImageWire(_Wire):
    id: str = Field(alias="Id")
    repo_tags: list[str] | None = Field(default=None, alias="RepoTags")
    size: int | None = Field(default=None, alias="Size")
    created: int | None = Field(default=None, alias="Created")


class VolumeUsageWire(_Wire):
    ref_count: int | None = Field(default=None, alias="RefCount")
    size: int | None = Field(default=None, alias="Size")


class VolumeWire(_Wire):
    name: str = Field(alias="Name")
    driver: str = Field(default="", alias="Driver")
    mountpoint: str = Field(default="", alias="Mountpoint")
    created_at: str | None = Field(default=None, alias="CreatedAt")
    usage_data: VolumeUsageWire | None = Field(default=None, alias="UsageData")


class VolumesResponseWire(_Wire):
    volumes: list[VolumeWire] | None = Field(default=None, alias="Volumes")


class NetworkWire(_Wire):
    id: str = Field(alias="Id")
    name: str = Field(alias="Name")
    driver: str = Field(default="", alias="Driver")
    scope: str | None = Field(default=None, alias="Scope")
    created: str | None = Field(default=None, alias="Created")
    containers: dict[str, Any] | None = Field(default=None, alias="Containers")


class InspectConfigWire(_Wire):
    image: str | None = Field(default=None, alias="Image")
    env: list[str] | None = Field(default=None, alias="Env")
    working_dir: str | None = Field(default=None, alias="WorkingDir")


class InspectStateWire(_Wire):
    status: str | None = Field(default=None, alias="Status")


class InspectNetworkWire(_Wire):
    ip_address: str | None = Field(default=None, alias="IPAddress")
    mac_address: str | None = Field(default=None, alias="MacAddress")
    gateway: str | None = Field(default=None, alias="Gateway")


class InspectNetworkSettingsWire(_Wire):
    networks: dict[str, InspectNetworkWire] | None = Field(default=None, alias="Networks")


class InspectMountWire(_Wire):
    type: str | None = Field(default=None, alias="Type")
    name: str | None = Field(default=None, alias="Name")
    source: str | None = Field(default=None, alias="Source")
    destination: str | None = Field(default=None, alias="Destination")
    rw: bool | None = Field(default=None, alias="RW")


class ContainerInspectWire(_Wire):
    id: str = Field(alias="Id")
    name: str | None = Field(default=None, alias="Name")
    created: str | None = Field(default=None, alias="Created")
    path: str | None = Field(default=None, alias="Path")
    args: list[str] | None = Field(default=None, alias="Args")
    config: InspectConfigWire | None = Field(default=None, alias="Config")
    state: InspectStateWire | None = Field(default=None, alias="State")
    network_settings: InspectNetworkSettingsWire | None = Field(default=None, alias="NetworkSettings")
    mounts: list[InspectMountWire] | None = Field(default=None, alias="Mounts")


class InfoWire(_Wire):
    mem_total: int | None = Field(default=None, alias="MemTotal")
    operating_system: str | None = Field(default=None, alias="OperatingSystem")
    kernel_version: str | None = Field(default=None, alias="KernelVersion")
    architecture: str | None = Field(default=None, alias="Architecture")


class VersionWire(_Wire):
    version: str | None = Field(default=None, alias="Version")


_CONTAINERS = TypeAdapter(list[ContainerSummaryWire])
_IMAGES = TypeAdapter(list[ImageWire])
_NETWORKS = TypeAdapter(list[NetworkWire])


def _validate(adapter: TypeAdapter[T], body: bytes, what: str) -> T:
    try:
        return adapter.validate_json(body)
    except ValidationError as err:
        raise DecodeError(f"Unexpected {what} response from Docker ({err.error_count()} errors)") from err


def _casefold_key(value: str) -> str:
    return value.casefold()


# Field helpers


def strip_container_name(raw: str | None) -> str:
    """Engine names carry one leading slash (``/web``); drop it."""
    if not raw:
        return ""
    return raw[1:] if raw.startswith("/") else raw


def parse_timestamp(raw: str | None) -> datetime | None:
    """ISO-8601 with or without fractional seconds; anything else is None."""
    if not raw:
        return None
    text = raw.strip()
    if not _ISO_PREFIX.match(text):
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    # fromisoformat wants exactly 3 or 6 fraction digits; the Engine sends up to 9.
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _epoch(seconds: int | None) -> datetime | None:
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_env_entry(entry: str) -> EnvVar:
    key, sep, value = entry.partition("=")
    if not sep:
        return EnvVar(key=entry, value="")
    return EnvVar(key=key, value=value)


def parse_env(entries: list[str] | None) -> list[EnvVar]:
    """KEY=VALUE entries split on the first ``=``, sorted by key."""
    env = [parse_env_entry(entry) for entry in entries or []]
    return sorted(env, key=lambda e: _casefold_key(e.key))


# Collections


def decode_containers(body: bytes) -> list[Container]:
    containers: list[Container] = []
    for api in _validate(_CONTAINERS, body, "container list"):
        raw_name = api.names[0] if api.names else api.id
        ports = [
            Port(ip=p.ip, private_port=p.private_port, public_port=p.public_port, type=p.type or "")
            for p in api.ports or []
            if p.private_port is not None
        ]
        containers.append(
            Container(
                id=api.id,
                name=strip_container_name(raw_name),
                image=api.image,
                state=api.state or "",
                status=api.status or "",
                created_at=_epoch(api.created),
                ports=ports,
                labels=api.labels or {},
            )
        )
    return sorted(containers, key=lambda c: _casefold_key(c.name))


def decode_images(body: bytes) -> list[Image]:
    images = [
        Image(
            id=api.id,
            tags=[tag for tag in api.repo_tags or [] if tag != UNTAGGED_IMAGE],
            size_bytes=api.size or 0,
            created_at=_epoch(api.created),
        )
        for api in _validate(_IMAGES, body, "image list")
    ]
    return sorted(images, key=lambda i: _casefold_key(i.display_name))


def decode_volumes(body: bytes) -> list[Volume]:
    response = _validate(TypeAdapter(VolumesResponseWire), body, "volume list")
    return [
        Volume(
            id=item.name,
            name=item.name,
            driver=item.driver,
            mountpoint=item.mountpoint,
            created_at=item.created_at or "",
            ref_count=item.usage_data.ref_count if item.usage_data else None,
            size_bytes=item.usage_data.size if item.usage_data else None,
        )
        for item in response.volumes or []
    ]


def decode_networks(body: bytes) -> list[Network]:
    networks = [
        Network(
            id=api.id,
            name=api.name,
            driver=api.driver,
            scope=api.scope or "",
            created_at=parse_timestamp(api.created),
            container_count=len(api.containers) if api.containers is not None else None,
        )
        for api in _validate(_NETWORKS, body, "network list")
    ]
    return sorted(networks, key=lambda n: _casefold_key(n.name))


def decode_container_details(body: bytes) -> ContainerDetails:
    api = _validate(TypeAdapter(ContainerInspectWire), body, "container inspect")
    config = api.config or InspectConfigWire()
    name = strip_container_name(api.name)
    state = api.state.status if api.state and api.state.status else ""
    command = " ".join(part for part in [api.path or "", *(api.args or [])] if part)

    attached = (api.network_settings.networks if api.network_settings else None) or {}
    networks = sorted(
        (
            NetworkAttachment(
                name=net_name,
                ip_address=net.ip_address or "",
                mac_address=net.mac_address or "",
                gateway=net.gateway or "",
            )
            for net_name, net in attached.items()
        ),
        key=lambda n: _casefold_key(n.name),
    )
    mounts = sorted(
        (
            Mount(
                type=m.type or "",
                name=m.name or "",
                source=m.source or "",
                destination=m.destination or "",
                read_only=not (m.rw if m.rw is not None else True),
            )
            for m in api.mounts or []
        ),
        key=lambda m: _casefold_key(m.destination),
    )

    return ContainerDetails(
        id=api.id,
        name=name or api.id,
        image=config.image or "",
        created_at=api.created or "",
        state=state,
        status=state,
        working_dir=config.working_dir or "",
        command=command,
        env=parse_env(config.env),
        networks=networks,
        mounts=mounts,
    )


# Engine info


def decode_info(payload: Any) -> InfoWire | None:
    try:
        return InfoWire.model_validate(payload)
    except ValidationError:
        return None


def decode_version(payload: Any) -> VersionWire | None:
    try:
        return VersionWire.model_validate(payload)
    except ValidationError:
        return None


def default_vm_engine_label(backend: Backend, operating_system: str | None) -> str:
    is_desktop = "docker desktop" in (operating_system or "").casefold()
    if backend is Backend.COLIMA:
        return "Colima"
    if backend is Backend.DOCKER:
        return "Docker Desktop" if is_desktop else "Docker Engine"
    if backend is Backend.CUSTOM:
        return "Docker Desktop" if is_desktop else "Custom socket"
    return "-"


def build_engine_info(
    backend: Backend,
    info: InfoWire | None,
    version: VersionWire | None,
    colima: ColimaStatus | None = None,
) -> EngineInfo:
    """Combine /info, /version and optional colima status into one summary."""
    operating_system = info.operating_system if info else None
    vm_engine = default_vm_engine_label(backend, operating_system)
    memory_allocated = info.mem_total if info else None
    memory_max: int | None = None
    arch = info.architecture if info else None
    runtime: str | None = None
    mount_type: str | None = None

    if backend is Backend.COLIMA and colima is not None:
        vm_engine = f"Colima ({colima.vm_type})" if colima.vm_type else "Colima"
        if colima.memory_gib:
            memory_max = colima.memory_gib * _GIB
        arch = colima.arch or arch
        runtime = colima.runtime or None
        mount_type = colima.mount_type or None

    if runtime is None and backend is not Backend.UNAVAILABLE:
        runtime = "docker"

    return EngineInfo(
        vm_engine=vm_engine,
        memory_max_bytes=memory_max if memory_max is not None else memory_allocated,
        memory_allocated_bytes=memory_allocated,
        arch=arch,
        runtime=runtime,
        mount_type=mount_type,
        operating_system=operating_system,
        server_version=version.version if version else None,
    )
