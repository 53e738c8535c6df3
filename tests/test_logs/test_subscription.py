"""Tests for follow-log subscriptions."""

import asyncio
import struct

import pytest

from dockscan.engine.errors import EngineHTTPError, SocketUnavailable, TransportFailure
from dockscan.logs.subscription import ContainerView, LogSubscription, SubscriptionState

HANG = "hang"


class FakeStreamClient:
    """Serves one scripted attempt per ``stream()`` call.

    Each attempt is a list of chunks and exceptions; once the script runs
    out every further attempt hangs until cancelled.
    """

    def __init__(self, attempts: list) -> None:
        self._attempts = list(attempts)
        self.paths: list[str] = []
        self.closed = 0

    def stream(self, path: str):
        self.paths.append(path)
        attempt = self._attempts.pop(0) if self._attempts else HANG
        return self._serve(attempt)

    async def _serve(self, attempt):
        try:
            if attempt == HANG:
                await asyncio.Event().wait()
            for item in attempt:
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed += 1


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


async def _collect(sub: LogSubscription) -> list[str]:
    return [text async for text in sub]


def frame(stream: int, payload: bytes) -> bytes:
    return struct.pack(">BxxxI", stream, len(payload)) + payload


class TestLogSubscription:
    @pytest.mark.asyncio
    async def test_backlog_only_on_first_attempt(self):
        client = FakeStreamClient([[b"first\n"], [b"second\n"]])
        sub = LogSubscription(client, "abc", tail=500, backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()

        assert await asyncio.wait_for(sub.__anext__(), 1) == "first\n"
        assert await asyncio.wait_for(sub.__anext__(), 1) == "second\n"
        assert "tail=500" in client.paths[0]
        assert "follow=true" in client.paths[0]
        assert all("tail=0" in path for path in client.paths[1:])
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_demultiplexes_frames(self):
        client = FakeStreamClient([[frame(1, b"out\n") + frame(2, b"err\n")]])
        sub = LogSubscription(client, "abc", backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()
        assert await asyncio.wait_for(sub.__anext__(), 1) == "out\nerr\n"
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_each_failure_reported_once(self):
        errors = []
        client = FakeStreamClient([
            [EngineHTTPError(404, "No such container: abc")],
            [TransportFailure()],
            [SocketUnavailable()],
        ])
        sub = LogSubscription(client, "abc", on_error=errors.append, backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()

        await wait_until(lambda: len(client.paths) >= 4)
        assert [e.message for e in errors] == [
            "No such container: abc",
            "Could not reach the Docker socket",
            "No Docker/Colima backend available",
        ]
        assert sub.last_error is errors[-1]
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_reported(self):
        errors = []
        client = FakeStreamClient([[ValueError("boom")]])
        sub = LogSubscription(client, "abc", on_error=errors.append, backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: len(errors) == 1)
        assert errors[0].message == "boom"
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_cancel_from_error_callback_is_final(self):
        client = FakeStreamClient([[TransportFailure()] for _ in range(10)])

        def give_up(err) -> None:
            sub.cancel()

        sub = LogSubscription(client, "abc", on_error=give_up, backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: sub.is_cancelled)
        await asyncio.sleep(0.05)

        assert sub.state is SubscriptionState.CANCELLED
        assert len(client.paths) == 1
        assert [text async for text in sub] == []
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_failing_error_callback_does_not_stop_retries(self):
        def broken(err) -> None:
            raise ValueError("callback bug")

        client = FakeStreamClient([[TransportFailure()], [TransportFailure()], [TransportFailure()]])
        sub = LogSubscription(client, "abc", on_error=broken, backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: len(client.paths) >= 4)

        assert sub.attempts >= 4
        assert isinstance(sub.last_error, TransportFailure)
        assert not sub.is_cancelled
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_task_killed_externally_ends_consumer(self):
        client = FakeStreamClient([])
        sub = LogSubscription(client, "abc")  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: bool(client.paths))

        sub._task.cancel()  # type: ignore[union-attr]
        assert await asyncio.wait_for(_collect(sub), 1) == []
        assert sub.is_cancelled
        assert client.closed == 1

    @pytest.mark.asyncio
    async def test_reconnects_after_clean_end(self):
        client = FakeStreamClient([[b"a"], [b"b"], [b"c"]])
        sub = LogSubscription(client, "abc", backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: len(client.paths) >= 4)
        assert sub.attempts >= 4
        assert sub.last_error is None
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_everything(self):
        client = FakeStreamClient([[TransportFailure()]])
        sub = LogSubscription(client, "abc", backoff_s=5.0)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: sub.state is SubscriptionState.DISCONNECTED)

        sub.cancel()
        await asyncio.sleep(0.05)

        assert sub.state is SubscriptionState.CANCELLED
        assert len(client.paths) == 1
        assert [text async for text in sub] == []

    @pytest.mark.asyncio
    async def test_cancel_discards_unread_chunks(self):
        client = FakeStreamClient([[b"x", b"y", b"z"]])
        sub = LogSubscription(client, "abc", backoff_s=5.0)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: sub._queue.qsize() == 3)

        sub.cancel()
        assert [text async for text in sub] == []

    @pytest.mark.asyncio
    async def test_cancel_ends_waiting_consumer(self):
        client = FakeStreamClient([])
        sub = LogSubscription(client, "abc")  # type: ignore[arg-type]
        sub.start()

        async def consume():
            return [text async for text in sub]

        consumer = asyncio.create_task(consume())
        await wait_until(lambda: sub.state is SubscriptionState.CONNECTING and client.paths)
        sub.cancel()
        assert await asyncio.wait_for(consumer, 1) == []

    @pytest.mark.asyncio
    async def test_cancel_closes_open_stream(self):
        client = FakeStreamClient([])
        sub = LogSubscription(client, "abc")  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: bool(client.paths))
        await sub.aclose()
        assert client.closed == 1

    @pytest.mark.asyncio
    async def test_state_transitions(self):
        client = FakeStreamClient([[b"hello"], HANG])
        sub = LogSubscription(client, "abc", backoff_s=0.01)  # type: ignore[arg-type]
        assert sub.state is SubscriptionState.IDLE
        sub.start()
        assert sub.state is SubscriptionState.CONNECTING
        await asyncio.wait_for(sub.__anext__(), 1)
        await sub.aclose()
        assert sub.state is SubscriptionState.CANCELLED

    @pytest.mark.asyncio
    async def test_before_attempt_runs_each_time(self):
        calls = []

        async def before() -> None:
            calls.append(len(calls))

        client = FakeStreamClient([[b"a"], [b"b"]])
        sub = LogSubscription(client, "abc", before_attempt=before, backoff_s=0.01)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: len(client.paths) >= 3)
        assert len(calls) >= 3
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_batches_coalesce(self):
        client = FakeStreamClient([[b"a", b"b", b"c"]])
        sub = LogSubscription(client, "abc", backoff_s=5.0)  # type: ignore[arg-type]
        sub.start()
        await wait_until(lambda: sub._queue.qsize() == 3)

        batches = sub.batches(window_s=0.05)
        assert await asyncio.wait_for(batches.__anext__(), 1) == "abc"
        sub.cancel()
        assert [b async for b in batches] == []


class TestContainerView:
    @pytest.mark.asyncio
    async def test_close_cancels_all_subscriptions(self):
        client = FakeStreamClient([])
        view = ContainerView(client, "abc")  # type: ignore[arg-type]
        first = view.follow_logs(tail=10)
        second = view.follow_logs(tail=0)
        await wait_until(lambda: len(client.paths) == 2)

        view.close()
        assert first.is_cancelled
        assert second.is_cancelled
        assert len(view.subscriptions) == 2
        await view.aclose()
        assert client.closed == 2

    @pytest.mark.asyncio
    async def test_closed_view_refuses_new_subscriptions(self):
        view = ContainerView(FakeStreamClient([]), "abc")  # type: ignore[arg-type]
        await view.aclose()
        with pytest.raises(RuntimeError):
            view.follow_logs()

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        client = FakeStreamClient([])
        async with ContainerView(client, "abc") as view:  # type: ignore[arg-type]
            sub = view.follow_logs()
            await wait_until(lambda: bool(client.paths))
        assert sub.is_cancelled
        assert client.closed == 1
