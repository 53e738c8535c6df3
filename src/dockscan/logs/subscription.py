"""Long-lived, auto-reconnecting follow-log subscriptions."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from dockscan.engine.client import EngineClient
from dockscan.engine.endpoints import EngineEndpoints
from dockscan.engine.errors import EngineError, StreamDecodeError
from dockscan.infrastructure.config import (
    LOG_BATCH_WINDOW_S,
    LOG_QUEUE_SIZE,
    LOG_TAIL_DEFAULT,
    RECONNECT_BACKOFF_S,
)
from dockscan.infrastructure.logger import logger
from dockscan.logs.stream_decoder import LogStreamDecoder

OnError = Callable[[EngineError], None]
BeforeAttempt = Callable[[], Awaitable[None]]

_END = object()


class SubscriptionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    CANCELLED = "cancelled"


class LogSubscription:
    """Follows one container's logs until cancelled.

    The first connection asks for ``tail`` backlog lines; every reconnect asks
    for none. Any failure or server-side end of stream is followed by a fixed
    backoff and a new attempt. Text is delivered through a bounded queue to a
    single consumer via ``async for`` or ``batches()``.
    """

    def __init__(
        self,
        client: EngineClient,
        container_id: str,
        tail: int = LOG_TAIL_DEFAULT,
        timestamps: bool = False,
        on_error: OnError | None = None,
        before_attempt: BeforeAttempt | None = None,
        backoff_s: float = RECONNECT_BACKOFF_S,
        queue_size: int = LOG_QUEUE_SIZE,
    ) -> None:
        self.container_id = container_id
        self._client = client
        self._tail = max(0, tail)
        self._timestamps = timestamps
        self._on_error = on_error
        self._before_attempt = before_attempt
        self._backoff_s = backoff_s
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task[None] | None = None
        self._state = SubscriptionState.IDLE
        self._finished = False
        self.attempts = 0
        self.last_error: EngineError | None = None
        self.last_anomaly: StreamDecodeError | None = None

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_cancelled(self) -> bool:
        return self._state is SubscriptionState.CANCELLED

    def start(self) -> None:
        if self._state is not SubscriptionState.IDLE:
            return
        self._state = SubscriptionState.CONNECTING
        self._task = asyncio.create_task(self._run(), name=f"logs-{self.container_id[:12]}")
        logger.debug("Following container logs", container_id=self.container_id, tail=self._tail)

    def cancel(self) -> None:
        """Stop for good: no reconnect and no further chunks after this returns."""
        if self._state is SubscriptionState.CANCELLED:
            return
        self._state = SubscriptionState.CANCELLED
        if self._task is not None:
            self._task.cancel()

        while not self._queue.empty():
            self._queue.get_nowait()
        self._end_queue()
        logger.debug("Log subscription cancelled", container_id=self.container_id)

    async def aclose(self) -> None:
        """Cancel and wait for the background task to finish unwinding."""
        self.cancel()
        task, self._task = self._task, None
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # Background task

    async def _run(self) -> None:
        tail = self._tail
        try:
            while not self.is_cancelled:
                self._state = SubscriptionState.CONNECTING
                self.attempts += 1
                try:
                    if self._before_attempt is not None:
                        await self._before_attempt()
                    await self._stream_once(tail)
                    logger.debug("Log stream ended", container_id=self.container_id)
                except EngineError as err:
                    self._report(err)
                except Exception as err:
                    logger.exception("Unexpected error in log stream", container_id=self.container_id)
                    self._report(EngineError(str(err) or None))

                # on_error may have cancelled us
                if self.is_cancelled:
                    return
                tail = 0
                self._state = SubscriptionState.DISCONNECTED
                await asyncio.sleep(self._backoff_s)
        finally:
            if not self.is_cancelled:
                logger.warning("Log subscription stopped unexpectedly", container_id=self.container_id)
                self._state = SubscriptionState.CANCELLED
                self._end_queue()

    async def _stream_once(self, tail: int) -> None:
        decoder = LogStreamDecoder()
        path = EngineEndpoints.container_logs(
            self.container_id, follow=True, tail=tail, timestamps=self._timestamps
        )
        stream = self._client.stream(path)
        try:
            async for chunk in stream:
                if self._state is SubscriptionState.CONNECTING:
                    self._state = SubscriptionState.STREAMING
                text = decoder.push(chunk)
                if text:
                    await self._queue.put(text)
        finally:
            await stream.aclose()
            if decoder.anomaly is not None:
                self.last_anomaly = decoder.anomaly

        remainder = decoder.flush()
        if remainder:
            await self._queue.put(remainder)

    def _report(self, err: EngineError) -> None:
        self.last_error = err
        logger.warning("Log stream failed", container_id=self.container_id, error=err.message)
        if self._on_error is not None:
            try:
                self._on_error(err)
            except Exception:
                logger.exception("Log error callback failed", container_id=self.container_id)

    def _end_queue(self) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    # Consumer side

    def __aiter__(self) -> LogSubscription:
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def batches(self, window_s: float = LOG_BATCH_WINDOW_S) -> AsyncIterator[str]:
        """Coalesce chunks that arrive within ``window_s`` of the first one."""
        loop = asyncio.get_running_loop()
        async for first in self:
            parts = [first]
            deadline = loop.time() + window_s
            while not self._finished:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                if item is _END:
                    self._finished = True
                    break
                parts.append(item)  # type: ignore[arg-type]
            yield "".join(parts)


class ContainerView:
    """Owns every log subscription opened for one container's detail view."""

    def __init__(
        self,
        client: EngineClient,
        container_id: str,
        on_error: OnError | None = None,
        before_attempt: BeforeAttempt | None = None,
    ) -> None:
        self.container_id = container_id
        self._client = client
        self._on_error = on_error
        self._before_attempt = before_attempt
        self._subscriptions: list[LogSubscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriptions(self) -> list[LogSubscription]:
        return list(self._subscriptions)

    def follow_logs(self, tail: int = LOG_TAIL_DEFAULT, timestamps: bool = False) -> LogSubscription:
        if self._closed:
            raise RuntimeError(f"Container view for {self.container_id} is closed")
        subscription = LogSubscription(
            self._client,
            self.container_id,
            tail=tail,
            timestamps=timestamps,
            on_error=self._on_error,
            before_attempt=self._before_attempt,
        )
        self._subscriptions.append(subscription)
        subscription.start()
        return subscription

    def close(self) -> None:
        self._closed = True
        for subscription in self._subscriptions:
            subscription.cancel()

    async def aclose(self) -> None:
        self._closed = True
        await asyncio.gather(*(s.aclose() for s in self._subscriptions))

    async def __aenter__(self) -> ContainerView:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.aclose()
