"""Immutable engine state snapshots published to subscribers."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable

from dockscan.discovery.types import UNAVAILABLE, Backend, ResolvedEndpoint
from dockscan.engine.types import Container, EngineInfo, Image, Network, Volume
from dockscan.infrastructure.logger import logger

Subscriber = Callable[["EngineState"], None]


@dataclass(frozen=True)
class EngineState:
    endpoint: ResolvedEndpoint = UNAVAILABLE
    containers: tuple[Container, ...] = ()
    images: tuple[Image, ...] = ()
    volumes: tuple[Volume, ...] = ()
    networks: tuple[Network, ...] = ()
    engine_info: EngineInfo | None = None
    error_message: str | None = None
    last_ping: str | None = None

    @property
    def backend(self) -> Backend:
        return self.endpoint.backend

    @property
    def socket_path(self) -> str | None:
        return self.endpoint.socket_path

    @property
    def running_containers(self) -> tuple[Container, ...]:
        return tuple(c for c in self.containers if c.is_running)


class StateStore:
    """Single-writer holder of the current EngineState.

    Each ``update`` swaps in a new snapshot and then notifies subscribers
    synchronously, in subscription order. Concurrent refreshes of the same
    collection resolve as last write wins.
    """

    def __init__(self, initial: EngineState | None = None) -> None:
        self._state = initial or EngineState()
        self._subscribers: list[Subscriber] = []

    @property
    def state(self) -> EngineState:
        return self._state

    def update(self, **changes: Any) -> EngineState:
        self._state = dataclasses.replace(self._state, **changes)
        self._notify()
        return self._state

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Register ``fn``; the returned callable unsubscribes it."""
        self._subscribers.append(fn)

        def unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self._state
        for fn in list(self._subscribers):
            try:
                fn(snapshot)
            except Exception:
                logger.exception("State subscriber failed")
