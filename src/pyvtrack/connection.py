"""Connection manager owning the single reporting WebSocket."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from pyvtrack._transport import ReconnectingWebSocket, Transport, TransportState
from pyvtrack.config import TrackerConfig
from pyvtrack.models.connection import ConnectionState

_logger = logging.getLogger(__name__)

_STATE_MAP: dict[TransportState, ConnectionState] = {
    TransportState.CONNECTING: ConnectionState.CONNECTING,
    TransportState.OPEN: ConnectionState.CONNECTED,
    TransportState.CLOSING: ConnectionState.CLOSING,
    TransportState.CLOSED: ConnectionState.CLOSED,
}


class ConnectionManager:
    """Keep at most one live connection to the configured endpoint.

    The connection is created lazily by the first :meth:`send` and
    discarded by :meth:`close`, so the next send starts a fresh one.
    Failures never propagate: :meth:`send` reports them as ``False``.

    Usage::

        async with ConnectionManager(config) as manager:
            ok = await manager.send(report.to_wire())
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport_factory: Callable[[], Transport] | None = None,
    ) -> None:
        self._config = config or TrackerConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport_factory = transport_factory
        self._transport: Transport | None = None
        self._send_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the connection and release an owned HTTP session."""
        await self.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _create_transport(self) -> Transport:
        if self._transport_factory is not None:
            return self._transport_factory()
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._external_session = False
        return ReconnectingWebSocket(
            self._config.endpoint_url,
            self._http_session,
            policy=self._config.reconnect,
            connection_timeout=self._config.connection_timeout,
            heartbeat=self._config.ws_heartbeat,
        )

    def _ensure_transport(self) -> Transport:
        transport = self._transport
        if transport is None:
            _logger.debug("Opening connection to %s", self._config.endpoint_url)
            transport = self._create_transport()
            self._transport = transport
            transport.start()
        return transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, payload: bytes | str) -> bool:
        """Send one text frame.

        Creates the connection if none exists. If it is still opening,
        waits up to ``config.connection_timeout`` seconds for it. A
        connection that is closing or closed is never revived here.

        Returns
        -------
        bool
            ``True`` if the open connection accepted the frame.
        """
        try:
            text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
            transport = self._ensure_transport()

            if transport.state is TransportState.CONNECTING:
                opened = await transport.wait_open(self._config.connection_timeout)
                if not opened:
                    _logger.warning(
                        "Connection to %s did not open within %.1fs",
                        self._config.endpoint_url,
                        self._config.connection_timeout,
                    )
                    return False
                if transport is not self._transport:
                    _logger.debug("Connection was closed while waiting for it to open")
                    return False

            if transport.state is not TransportState.OPEN:
                _logger.warning("Cannot send: connection is %s", self.status().value)
                return False

            async with self._send_lock:
                await transport.send_str(text)
        except Exception:
            _logger.warning("Failed to send payload to %s", self._config.endpoint_url, exc_info=True)
            return False

        _logger.debug("Payload sent: %s", text)
        return True

    def status(self) -> ConnectionState:
        """Non-blocking snapshot of the connection state."""
        transport = self._transport
        if transport is None:
            return ConnectionState.DISCONNECTED
        return _STATE_MAP.get(transport.state, ConnectionState.UNKNOWN)

    async def close(self) -> None:
        """Tear down and discard the current connection. Idempotent."""
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.close()
        except Exception:
            _logger.warning("Error while closing connection", exc_info=True)
