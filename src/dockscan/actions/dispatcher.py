"""Container/image/volume/network mutations with read-after-write refresh."""

from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Iterable, Mapping

from dockscan.engine.client import EngineClient
from dockscan.engine.endpoints import EngineEndpoints
from dockscan.engine.errors import EngineError
from dockscan.infrastructure.logger import logger


class Collection(str, Enum):
    CONTAINERS = "containers"
    IMAGES = "images"
    VOLUMES = "volumes"
    NETWORKS = "networks"


class ContainerAction(str, Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    KILL = "kill"


Refresher = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[str], None]
Guard = Callable[[], Awaitable[bool]]


class ActionDispatcher:
    """Issues one POST/DELETE per action, then re-fetches the affected collection.

    A failed action reports its message once through ``on_error`` and skips
    the refresh. Every method returns True on success.
    """

    def __init__(
        self,
        client: EngineClient,
        refreshers: Mapping[Collection, Refresher],
        on_error: ErrorCallback | None = None,
        guard: Guard | None = None,
    ) -> None:
        self._client = client
        self._refreshers = dict(refreshers)
        self._on_error = on_error
        self._guard = guard

    async def _perform(self, name: str, method: str, path: str, collection: Collection, **context: str) -> bool:
        if self._guard is not None and not await self._guard():
            return False
        try:
            await self._client.expect_ok(method, path)
        except EngineError as err:
            self._fail(name, err, **context)
            return False
        logger.info("Docker action completed", action=name, **context)
        await self._refresh(collection)
        return True

    def _fail(self, name: str, err: EngineError, **context: str) -> None:
        logger.warning("Docker action failed", action=name, error=err.message, **context)
        if self._on_error is not None:
            self._on_error(err.message)

    async def _refresh(self, collection: Collection) -> None:
        refresher = self._refreshers.get(collection)
        if refresher is not None:
            await refresher()

    # Containers

    async def container_action(self, container_id: str, action: ContainerAction) -> bool:
        return await self._perform(
            action.value,
            "POST",
            EngineEndpoints.container_action(container_id, action.value),
            Collection.CONTAINERS,
            container_id=container_id,
        )

    async def start_container(self, container_id: str) -> bool:
        return await self.container_action(container_id, ContainerAction.START)

    async def stop_container(self, container_id: str) -> bool:
        return await self.container_action(container_id, ContainerAction.STOP)

    async def restart_container(self, container_id: str) -> bool:
        return await self.container_action(container_id, ContainerAction.RESTART)

    async def kill_container(self, container_id: str) -> bool:
        return await self.container_action(container_id, ContainerAction.KILL)

    async def remove_container(self, container_id: str, force: bool = True) -> bool:
        return await self._perform(
            "remove",
            "DELETE",
            EngineEndpoints.container_remove(container_id, force),
            Collection.CONTAINERS,
            container_id=container_id,
        )

    async def kill_all(self, container_ids: Iterable[str]) -> bool:
        """Kill each container in turn; the first failure stops the sweep."""
        ids = list(container_ids)
        if not ids:
            return True
        if self._guard is not None and not await self._guard():
            return False
        for container_id in ids:
            try:
                await self._client.expect_ok("POST", EngineEndpoints.container_action(container_id, ContainerAction.KILL.value))
            except EngineError as err:
                self._fail("kill_all", err, container_id=container_id)
                return False
        logger.info("Killed running containers", count=len(ids))
        await self._refresh(Collection.CONTAINERS)
        return True

    # Images, volumes, networks

    async def remove_image(self, image_id: str, force: bool = False) -> bool:
        return await self._perform(
            "remove_image",
            "DELETE",
            EngineEndpoints.image_remove(image_id, force),
            Collection.IMAGES,
            image_id=image_id,
        )

    async def remove_volume(self, name: str) -> bool:
        return await self._perform(
            "remove_volume", "DELETE", EngineEndpoints.volume_remove(name), Collection.VOLUMES, volume=name
        )

    async def prune_volumes(self) -> bool:
        return await self._perform("prune_volumes", "POST", EngineEndpoints.VOLUMES_PRUNE, Collection.VOLUMES)

    async def remove_network(self, network_id: str) -> bool:
        return await self._perform(
            "remove_network",
            "DELETE",
            EngineEndpoints.network_remove(network_id),
            Collection.NETWORKS,
            network_id=network_id,
        )
