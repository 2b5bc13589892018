"""WebSocket transport with automatic reconnect and backoff."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import Protocol

import aiohttp

from pyvtrack._backoff import ReconnectPolicy
from pyvtrack._constants import CONNECTION_TIMEOUT, USER_AGENT
from pyvtrack.exceptions import TrackerTransportError

_logger = logging.getLogger(__name__)


class TransportState(enum.StrEnum):
    """Lifecycle of the underlying socket (mirrors WebSocket ``readyState``)."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Transport(Protocol):
    """Structural transport interface used by the connection manager.

    Test doubles implement this; production uses
    :class:`ReconnectingWebSocket`.
    """

    @property
    def state(self) -> TransportState: ...

    def start(self) -> None: ...

    async def wait_open(self, timeout: float) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> None: ...


class ReconnectingWebSocket:
    """aiohttp WebSocket client that reconnects on abnormal closure.

    The socket is opened by a background task started with :meth:`start`.
    Each attempt is bounded by *connection_timeout*. After a failed attempt
    or an unexpected disconnect the task retries according to *policy*;
    the retry counter resets once a connection has stayed open for
    ``policy.min_uptime`` seconds. While waiting between attempts, and
    after the retry budget is spent, the state is ``closed``. :meth:`close` stops reconnection for good.
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        policy: ReconnectPolicy | None = None,
        connection_timeout: float = CONNECTION_TIMEOUT,
        heartbeat: float | None = None,
    ) -> None:
        self._url = url
        self._http = http_session
        self._policy = policy or ReconnectPolicy()
        self._connection_timeout = connection_timeout
        self._heartbeat = heartbeat
        self._state = TransportState.CONNECTING
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._should_reconnect = True
        self._open_waiters: list[asyncio.Future[bool]] = []

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> TransportState:
        return self._state

    def _set_state(self, state: TransportState) -> None:
        if state is not self._state:
            _logger.debug("WebSocket %s -> %s", self._state.value, state.value)
        self._state = state

    def _resolve_waiters(self, opened: bool) -> None:
        waiters, self._open_waiters = self._open_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(opened)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the connect loop. Must be called from a running event loop."""
        if self._task is not None or not self._should_reconnect:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"ws-connect:{self._url}")

    async def close(self) -> None:
        """Close the socket and stop reconnecting. Idempotent."""
        self._should_reconnect = False
        task, self._task = self._task, None
        ws, self._ws = self._ws, None
        if task is None and ws is None and self._state is TransportState.CLOSED:
            return

        self._set_state(TransportState.CLOSING)
        try:
            if ws is not None and not ws.closed:
                await ws.close()
        except (aiohttp.ClientError, OSError):
            _logger.debug("WebSocket close handshake failed", exc_info=True)
        finally:
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            self._set_state(TransportState.CLOSED)
            self._resolve_waiters(False)
        _logger.info("WebSocket to %s closed by client", self._url)

    async def wait_open(self, timeout: float) -> bool:
        """Wait until the pending attempt opens.

        Returns ``False`` if the attempt fails, the transport is closed,
        or *timeout* elapses first. Never raises.
        """
        if self._state is TransportState.OPEN:
            return True
        if self._state is not TransportState.CONNECTING or timeout <= 0:
            return False

        waiter: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._open_waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout)
        except TimeoutError:
            return False
        finally:
            with contextlib.suppress(ValueError):
                self._open_waiters.remove(waiter)

    async def send_str(self, data: str) -> None:
        """Write one text frame.

        Raises
        ------
        TrackerTransportError
            If the socket is not open or the write fails.
        """
        ws = self._ws
        if self._state is not TransportState.OPEN or ws is None or ws.closed:
            raise TrackerTransportError(
                f"WebSocket is not open (state={self._state.value})",
                url=self._url,
            )
        try:
            await ws.send_str(data)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
            raise TrackerTransportError(
                f"Send to {self._url} failed: {exc}",
                url=self._url,
            ) from exc

    # ------------------------------------------------------------------
    # Connect loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        retry = 0
        try:
            while self._should_reconnect:
                delay = self._policy.delay_for(retry)
                if delay > 0:
                    _logger.debug(
                        "Reconnecting to %s in %.2fs (retry %d/%d)",
                        self._url,
                        delay,
                        retry,
                        self._policy.max_retries,
                    )
                    await asyncio.sleep(delay)

                self._set_state(TransportState.CONNECTING)
                ws = await self._connect_once()
                if ws is not None:
                    opened_at = loop.time()
                    await self._read_until_closed(ws)
                    if loop.time() - opened_at >= self._policy.min_uptime:
                        retry = 0

                if not self._should_reconnect:
                    return
                if self._policy.exhausted(retry):
                    _logger.warning(
                        "Giving up on %s after %d retries",
                        self._url,
                        retry,
                    )
                    return
                retry += 1
        except Exception:
            _logger.error("WebSocket connect loop for %s crashed", self._url, exc_info=True)
        finally:
            if self._should_reconnect:
                self._set_state(TransportState.CLOSED)
                self._resolve_waiters(False)

    async def _connect_once(self) -> aiohttp.ClientWebSocketResponse | None:
        try:
            ws = await asyncio.wait_for(
                self._http.ws_connect(
                    self._url,
                    heartbeat=self._heartbeat,
                    headers={"user-agent": USER_AGENT},
                ),
                timeout=self._connection_timeout,
            )
        except TimeoutError:
            _logger.warning("WebSocket connect to %s timed out after %.1fs", self._url, self._connection_timeout)
        except (aiohttp.ClientError, OSError) as exc:
            _logger.warning("WebSocket error connecting to %s: %s", self._url, exc)
        else:
            if not self._should_reconnect:
                await ws.close()
                return None
            self._ws = ws
            self._set_state(TransportState.OPEN)
            _logger.info("WebSocket connected to %s", self._url)
            self._resolve_waiters(True)
            return ws

        self._set_state(TransportState.CLOSED)
        self._resolve_waiters(False)
        return None

    async def _read_until_closed(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Drain inbound frames until the socket closes.

        The backend sends nothing this client needs; frames are logged
        and dropped.
        """
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    _logger.warning("WebSocket error on %s: %s", self._url, ws.exception())
                    break
                _logger.debug("Ignoring inbound %s frame from %s", msg.type.name, self._url)
        finally:
            if self._ws is ws:
                self._ws = None
            if not ws.closed:
                await ws.close()

        if self._should_reconnect:
            _logger.info("WebSocket to %s closed: code=%s", self._url, ws.close_code)
            self._set_state(TransportState.CLOSED)
