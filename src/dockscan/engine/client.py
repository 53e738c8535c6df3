"""
Async Docker Engine API client over the resolved unix socket
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator, Callable

import httpx

from dockscan.discovery.resolver import SocketResolver
from dockscan.engine.endpoints import EngineEndpoints
from dockscan.engine.errors import (
    DecodeError,
    EngineHTTPError,
    SocketUnavailable,
    TransportFailure,
)
from dockscan.infrastructure.config import CONNECT_TIMEOUT_S, REQUEST_TIMEOUT_S
from dockscan.infrastructure.logger import logger

ENGINE_BASE_URL = "http://localhost"

TransportFactory = Callable[[str], httpx.AsyncBaseTransport]


def unix_socket_transport(socket_path: str) -> httpx.AsyncBaseTransport:
    return httpx.AsyncHTTPTransport(uds=socket_path)


def _transport_message(err: Exception) -> str:
    detail = str(err).strip()
    if isinstance(err, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "Docker request timed out"
    if detail:
        return f"Could not reach the Docker socket: {detail}"
    return TransportFailure.default_message


class EngineClient:
    """
    Issues Engine HTTP requests over whichever socket the resolver holds.

    Every call reads ``resolver.current`` at call time, so a re-resolution
    takes effect on the next request. There are no implicit retries.

    Example:
        client = EngineClient(resolver)
        body, status = await client.request("GET", EngineEndpoints.CONTAINERS_LIST)
        async for chunk in client.stream(EngineEndpoints.container_logs(cid, True, 500, False)):
            ...
    """

    def __init__(
        self,
        resolver: SocketResolver,
        transport_factory: TransportFactory | None = None,
        connect_timeout: float = CONNECT_TIMEOUT_S,
        request_timeout: float = REQUEST_TIMEOUT_S,
    ) -> None:
        self._resolver = resolver
        self._transport_factory = transport_factory or unix_socket_transport
        self._connect_timeout = connect_timeout
        self._request_timeout = request_timeout

    def _socket_path(self) -> str:
        endpoint = self._resolver.current
        if not endpoint.is_available or endpoint.socket_path is None:
            raise SocketUnavailable()
        return endpoint.socket_path

    def _http_client(self, socket_path: str, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport_factory(socket_path),
            base_url=ENGINE_BASE_URL,
            timeout=timeout,
        )

    async def request(self, method: str, path: str, body: Any = None) -> tuple[bytes, int]:
        """
        Send one request and return ``(body, status)``.

        Statuses of 400 and above are returned, not raised.

        Raises:
            SocketUnavailable: No endpoint is resolved
            TransportFailure: Connection refused, timed out, or broken exchange
        """
        socket_path = self._socket_path()
        headers: dict[str, str] = {}
        content: bytes | None = None
        if body is not None:
            content = json.dumps(body).encode()
            headers["Content-Type"] = "application/json"

        timeout = httpx.Timeout(self._request_timeout, connect=self._connect_timeout)
        try:
            async with self._http_client(socket_path, timeout) as client:
                response = await asyncio.wait_for(
                    client.request(method, path, content=content, headers=headers),
                    timeout=self._request_timeout,
                )
        except (httpx.HTTPError, asyncio.TimeoutError) as err:
            logger.debug("Engine request failed", method=method, path=path, error=repr(err))
            raise TransportFailure(_transport_message(err)) from err

        return response.content, response.status_code

    async def stream(self, path: str) -> AsyncGenerator[bytes, None]:
        """
        Streaming GET yielding body chunks as they arrive.

        Only the connect phase has a timeout. Closing the iterator or
        cancelling the consuming task closes the connection.

        Raises:
            SocketUnavailable: No endpoint is resolved
            EngineHTTPError: The Engine answered with status >= 400
            TransportFailure: The connection failed or broke mid-stream
        """
        socket_path = self._socket_path()
        timeout = httpx.Timeout(None, connect=self._connect_timeout)
        try:
            async with self._http_client(socket_path, timeout) as client:
                async with client.stream("GET", path) as response:
                    if response.status_code >= 400:
                        error_body = await response.aread()
                        raise EngineHTTPError.from_body(response.status_code, error_body)
                    async for chunk in response.aiter_bytes():
                        if chunk:
                            yield chunk
        except httpx.HTTPError as err:
            logger.debug("Engine stream failed", path=path, error=repr(err))
            raise TransportFailure(_transport_message(err)) from err

    # Convenience

    async def expect_ok(self, method: str, path: str, body: Any = None) -> bytes:
        """Like ``request`` but raises EngineHTTPError for statuses >= 400."""
        data, status = await self.request(method, path, body)
        if status >= 400:
            raise EngineHTTPError.from_body(status, data)
        return data

    async def get_json(self, path: str) -> Any:
        data = await self.expect_ok("GET", path)
        try:
            return json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as err:
            raise DecodeError() from err

    async def ping(self) -> tuple[bytes, int]:
        return await self.request("GET", EngineEndpoints.PING)
