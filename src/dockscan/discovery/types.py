"""Backend discovery domain types."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Backend(str, Enum):
    """The runtime whose socket is currently serving requests."""

    DOCKER = "docker"
    COLIMA = "colima"
    CUSTOM = "custom"
    UNAVAILABLE = "unavailable"

    @property
    def display_name(self) -> str:
        return _BACKEND_LABELS[self]


_BACKEND_LABELS: dict[Backend, str] = {
    Backend.DOCKER: "Docker",
    Backend.COLIMA: "Colima",
    Backend.CUSTOM: "Custom",
    Backend.UNAVAILABLE: "None",
}


class BackendPreference(str, Enum):
    """Persisted user choice restricting which candidate groups are probed."""

    AUTOMATIC = "automatic"
    DOCKER = "docker"
    COLIMA = "colima"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def restricted_backend(self) -> Backend | None:
        if self is BackendPreference.DOCKER:
            return Backend.DOCKER
        if self is BackendPreference.COLIMA:
            return Backend.COLIMA
        return None


class SocketCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: Backend
    path: str


class ResolvedEndpoint(BaseModel):
    """Outcome of one resolution pass.

    ``socket_path`` is None exactly when ``backend`` is UNAVAILABLE.
    """

    model_config = ConfigDict(frozen=True)

    backend: Backend = Backend.UNAVAILABLE
    socket_path: str | None = None
    detection_log: str = ""

    @property
    def is_available(self) -> bool:
        return self.socket_path is not None


UNAVAILABLE = ResolvedEndpoint()
