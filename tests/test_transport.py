from __future__ import annotations

import asyncio
import socket
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from pyvtrack._backoff import ReconnectPolicy
from pyvtrack._transport import ReconnectingWebSocket, TransportState
from pyvtrack.exceptions import TrackerTransportError

_FAST_RETRY = ReconnectPolicy(min_delay=0.01, grow_factor=1.0, max_delay=0.01, max_retries=3)


@dataclass
class FakeBackend:
    received: list[str] = field(default_factory=list)
    connections: int = 0
    close_first_connection: bool = False
    close_every_connection: bool = False

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connections += 1
        if self.close_every_connection or (self.close_first_connection and self.connections == 1):
            await ws.close()
            return ws
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self.received.append(msg.data)
        return ws


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def ws_url(backend: FakeBackend) -> AsyncIterator[str]:
    app = web.Application()
    app.router.add_get("/ws", backend.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield f"ws://{server.host}:{server.port}/ws"
    finally:
        await server.close()


@pytest_asyncio.fixture
async def http_session() -> AsyncIterator[aiohttp.ClientSession]:
    async with aiohttp.ClientSession() as session:
        yield session


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_opens_and_sends_text_frames(
    ws_url: str, backend: FakeBackend, http_session: aiohttp.ClientSession
) -> None:
    transport = ReconnectingWebSocket(ws_url, http_session, policy=_FAST_RETRY)
    assert transport.state is TransportState.CONNECTING

    transport.start()
    assert await transport.wait_open(2.0) is True
    assert transport.state is TransportState.OPEN

    await transport.send_str('{"vehicleId": "V1"}')
    await _wait_for(lambda: backend.received == ['{"vehicleId": "V1"}'])

    await transport.close()
    assert transport.state is TransportState.CLOSED


@pytest.mark.asyncio
async def test_close_is_idempotent_and_stops_reconnecting(
    ws_url: str, backend: FakeBackend, http_session: aiohttp.ClientSession
) -> None:
    transport = ReconnectingWebSocket(ws_url, http_session, policy=_FAST_RETRY)
    transport.start()
    assert await transport.wait_open(2.0)

    await transport.close()
    await transport.close()
    await asyncio.sleep(0.05)

    assert transport.state is TransportState.CLOSED
    assert backend.connections == 1
    assert await transport.wait_open(0.1) is False


@pytest.mark.asyncio
async def test_send_when_not_open_raises(http_session: aiohttp.ClientSession) -> None:
    transport = ReconnectingWebSocket("ws://127.0.0.1:1/ws", http_session)

    with pytest.raises(TrackerTransportError) as excinfo:
        await transport.send_str("payload")

    assert excinfo.value.url == "ws://127.0.0.1:1/ws"


@pytest.mark.asyncio
async def test_refused_connection_gives_up_and_stays_closed(http_session: aiohttp.ClientSession) -> None:
    url = f"ws://127.0.0.1:{_unused_port()}/ws"
    policy = ReconnectPolicy(min_delay=0.01, grow_factor=1.0, max_delay=0.01, max_retries=2)
    transport = ReconnectingWebSocket(url, http_session, policy=policy, connection_timeout=1.0)

    transport.start()
    assert await transport.wait_open(1.0) is False

    await _wait_for(lambda: transport._task is not None and transport._task.done())  # type: ignore[attr-defined]
    assert transport.state is TransportState.CLOSED
    assert await transport.wait_open(0.1) is False
    await transport.close()


@pytest.mark.asyncio
async def test_reconnects_after_server_closes(
    ws_url: str, backend: FakeBackend, http_session: aiohttp.ClientSession
) -> None:
    backend.close_first_connection = True
    transport = ReconnectingWebSocket(ws_url, http_session, policy=_FAST_RETRY)

    transport.start()
    await _wait_for(lambda: backend.connections >= 2 and transport.state is TransportState.OPEN)

    await transport.send_str("after-reconnect")
    await _wait_for(lambda: backend.received == ["after-reconnect"])
    await transport.close()


@pytest.mark.asyncio
async def test_short_lived_connections_count_against_retry_budget(
    ws_url: str, backend: FakeBackend, http_session: aiohttp.ClientSession
) -> None:
    backend.close_every_connection = True
    policy = ReconnectPolicy(min_delay=0.01, grow_factor=1.0, max_delay=0.01, max_retries=3, min_uptime=5.0)
    transport = ReconnectingWebSocket(ws_url, http_session, policy=policy)

    transport.start()
    await _wait_for(lambda: transport._task is not None and transport._task.done())  # type: ignore[attr-defined]
    await asyncio.sleep(0.05)

    assert backend.connections == 1 + policy.max_retries
    assert transport.state is TransportState.CLOSED
    await transport.close()
