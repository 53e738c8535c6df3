"""DockscanService: composes discovery, the Engine client, actions and state."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from dockscan.actions.dispatcher import ActionDispatcher, Collection
from dockscan.discovery.colima import ColimaStatus, fetch_colima_status
from dockscan.discovery.resolver import SocketResolver
from dockscan.discovery.types import Backend, BackendPreference, ResolvedEndpoint
from dockscan.engine.client import EngineClient
from dockscan.engine.decoder import (
    build_engine_info,
    decode_container_details,
    decode_containers,
    decode_images,
    decode_info,
    decode_networks,
    decode_version,
    decode_volumes,
)
from dockscan.engine.endpoints import EngineEndpoints
from dockscan.engine.errors import EngineError, SocketUnavailable
from dockscan.engine.types import ContainerDetails, EngineInfo
from dockscan.infrastructure.config import AUTO_REFRESH_INTERVAL, LOG_TAIL_DEFAULT
from dockscan.infrastructure.logger import logger
from dockscan.infrastructure.poll_loop import PollLoop
from dockscan.infrastructure.settings import SettingsStore
from dockscan.logs.stream_decoder import decode_log_payload
from dockscan.logs.subscription import ContainerView, LogSubscription, OnError
from dockscan.state.store import EngineState, StateStore

T = TypeVar("T")

ColimaProbe = Callable[[], Awaitable[ColimaStatus | None]]


class DockscanService:
    """Entry point for presentation code.

    Collaborators read ``state`` (or subscribe to ``store``) and call the
    methods below; sockets, HTTP and frames stay behind this class.
    """

    def __init__(
        self,
        settings: SettingsStore | None = None,
        resolver: SocketResolver | None = None,
        client: EngineClient | None = None,
        store: StateStore | None = None,
        colima_probe: ColimaProbe | None = None,
        refresh_interval: float = AUTO_REFRESH_INTERVAL,
    ) -> None:
        self._owns_settings = settings is None
        self.settings = settings or SettingsStore()
        self.resolver = resolver or SocketResolver(self.settings)
        self.client = client or EngineClient(self.resolver)
        self.store = store or StateStore()
        self._colima_probe = colima_probe or fetch_colima_status
        self.actions = ActionDispatcher(
            self.client,
            refreshers={
                Collection.CONTAINERS: self.refresh_containers,
                Collection.IMAGES: self.refresh_images,
                Collection.VOLUMES: self.refresh_volumes,
                Collection.NETWORKS: self.refresh_networks,
            },
            on_error=self._set_error,
            guard=self.ensure_backend,
        )
        self._auto_refresh = PollLoop("auto-refresh", refresh_interval, self.refresh_all)
        self._subscriptions: list[LogSubscription] = []
        self._views: list[ContainerView] = []

    @property
    def state(self) -> EngineState:
        return self.store.state

    # Backend discovery

    def resolve(self) -> ResolvedEndpoint:
        endpoint = self.resolver.resolve()
        if endpoint != self.store.state.endpoint:
            self.store.update(endpoint=endpoint)
        return endpoint

    async def ensure_backend(self) -> bool:
        """Re-resolve; with no backend, clear every collection and record why."""
        if self.resolve().is_available:
            return True
        self.store.update(
            error_message=SocketUnavailable.default_message,
            containers=(),
            images=(),
            volumes=(),
            networks=(),
        )
        return False

    def set_backend_preference(self, preference: BackendPreference) -> ResolvedEndpoint:
        self.settings.backend_preference = preference
        logger.info("Backend preference changed", preference=preference.value)
        return self.resolve()

    def set_custom_socket_path(self, path: str | None) -> ResolvedEndpoint:
        self.settings.custom_socket_path = path
        return self.resolve()

    async def ping(self) -> str:
        """Probe ``/_ping`` and publish the outcome as ``last_ping``."""
        if not self.resolve().is_available:
            result = "Socket unavailable"
        else:
            try:
                body, status = await self.client.ping()
                text = body.decode(errors="replace").strip()
                result = f"HTTP {status} {text or '-'}"
            except EngineError as err:
                result = err.message
        self.store.update(last_ping=result)
        return result

    # Collections

    async def _refresh(self, field: str, path: str, decode: Callable[[bytes], Sequence[object]], reset_error: bool) -> None:
        if not await self.ensure_backend():
            return
        if reset_error and self.store.state.error_message is not None:
            self.store.update(error_message=None)
        try:
            items = decode(await self.client.expect_ok("GET", path))
        except EngineError as err:
            logger.warning("Refresh failed", collection=field, error=err.message)
            self.store.update(**{field: (), "error_message": err.message})
            return
        self.store.update(**{field: tuple(items)})

    async def refresh_containers(self, reset_error: bool = True) -> None:
        await self._refresh("containers", EngineEndpoints.CONTAINERS_LIST, decode_containers, reset_error)

    async def refresh_images(self, reset_error: bool = True) -> None:
        await self._refresh("images", EngineEndpoints.IMAGES_LIST, decode_images, reset_error)

    async def refresh_volumes(self, reset_error: bool = True) -> None:
        await self._refresh("volumes", EngineEndpoints.VOLUMES_LIST, decode_volumes, reset_error)

    async def refresh_networks(self, reset_error: bool = True) -> None:
        await self._refresh("networks", EngineEndpoints.NETWORKS_LIST, decode_networks, reset_error)

    async def refresh_all(self) -> None:
        """Refresh every collection; a failure in one does not stop the others."""
        if not await self.ensure_backend():
            return
        self.clear_error()
        await self.refresh_containers(reset_error=False)
        await self.refresh_images(reset_error=False)
        await self.refresh_volumes(reset_error=False)
        await self.refresh_networks(reset_error=False)

    def start_auto_refresh(self) -> None:
        self._auto_refresh.start()

    def stop_auto_refresh(self) -> None:
        self._auto_refresh.stop()

    # Engine info

    async def _optional_get(self, path: str) -> Any:
        try:
            return await self.client.get_json(path)
        except EngineError as err:
            logger.debug("Engine info request failed", path=path, error=err.message)
            return None

    async def fetch_engine_info(self) -> EngineInfo | None:
        endpoint = self.resolve()
        if not endpoint.is_available:
            self.store.update(engine_info=None)
            return None

        info_payload, version_payload = await asyncio.gather(
            self._optional_get(EngineEndpoints.INFO),
            self._optional_get(EngineEndpoints.VERSION),
        )
        colima = await self._colima_probe() if endpoint.backend is Backend.COLIMA else None

        engine_info = build_engine_info(
            endpoint.backend,
            decode_info(info_payload) if info_payload is not None else None,
            decode_version(version_payload) if version_payload is not None else None,
            colima,
        )
        self.store.update(engine_info=engine_info)
        return engine_info

    # Single container

    async def _fetch(self, what: str, fetch: Callable[[], Awaitable[T]], **context: str) -> T | None:
        if not await self.ensure_backend():
            return None
        try:
            return await fetch()
        except EngineError as err:
            logger.warning(f"Could not fetch {what}", error=err.message, **context)
            self._set_error(err.message)
            return None

    async def fetch_container_details(self, container_id: str) -> ContainerDetails | None:
        async def fetch() -> ContainerDetails:
            body = await self.client.expect_ok("GET", EngineEndpoints.container_inspect(container_id))
            return decode_container_details(body)

        return await self._fetch("container details", fetch, container_id=container_id)

    async def fetch_container_logs(
        self, container_id: str, tail: int = LOG_TAIL_DEFAULT, timestamps: bool = False
    ) -> str | None:
        async def fetch() -> str:
            path = EngineEndpoints.container_logs(container_id, follow=False, tail=tail, timestamps=timestamps)
            return decode_log_payload(await self.client.expect_ok("GET", path))

        return await self._fetch("container logs", fetch, container_id=container_id)

    # Log streaming

    async def _before_stream_attempt(self) -> None:
        self.resolve()

    def follow_logs(
        self,
        container_id: str,
        tail: int = LOG_TAIL_DEFAULT,
        timestamps: bool = False,
        on_error: OnError | None = None,
    ) -> LogSubscription:
        """Start a follow-log subscription owned by this service."""
        self._subscriptions = [s for s in self._subscriptions if not s.is_cancelled]
        subscription = LogSubscription(
            self.client,
            container_id,
            tail=tail,
            timestamps=timestamps,
            on_error=on_error,
            before_attempt=self._before_stream_attempt,
        )
        self._subscriptions.append(subscription)
        subscription.start()
        return subscription

    def open_container_view(self, container_id: str, on_error: OnError | None = None) -> ContainerView:
        self._views = [v for v in self._views if not v.closed]
        view = ContainerView(
            self.client,
            container_id,
            on_error=on_error,
            before_attempt=self._before_stream_attempt,
        )
        self._views.append(view)
        return view

    # Actions

    async def start_container(self, container_id: str) -> bool:
        return await self.actions.start_container(container_id)

    async def stop_container(self, container_id: str) -> bool:
        return await self.actions.stop_container(container_id)

    async def restart_container(self, container_id: str) -> bool:
        return await self.actions.restart_container(container_id)

    async def kill_container(self, container_id: str) -> bool:
        return await self.actions.kill_container(container_id)

    async def remove_container(self, container_id: str, force: bool = True) -> bool:
        return await self.actions.remove_container(container_id, force)

    async def kill_all_running(self) -> bool:
        return await self.actions.kill_all(c.id for c in self.state.running_containers)

    async def remove_image(self, image_id: str, force: bool = False) -> bool:
        return await self.actions.remove_image(image_id, force)

    async def remove_volume(self, name: str) -> bool:
        return await self.actions.remove_volume(name)

    async def prune_volumes(self) -> bool:
        return await self.actions.prune_volumes()

    async def remove_network(self, network_id: str) -> bool:
        return await self.actions.remove_network(network_id)

    # Errors and lifecycle

    def _set_error(self, message: str) -> None:
        self.store.update(error_message=message)

    def clear_error(self) -> None:
        if self.store.state.error_message is not None:
            self.store.update(error_message=None)

    async def close(self) -> None:
        """Stop auto-refresh and cancel every view and subscription."""
        self.stop_auto_refresh()
        views, self._views = self._views, []
        subscriptions, self._subscriptions = self._subscriptions, []
        await asyncio.gather(
            *(view.aclose() for view in views),
            *(subscription.aclose() for subscription in subscriptions),
        )
        if self._owns_settings:
            self.settings.close()
        logger.debug("Service closed")
