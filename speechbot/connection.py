# =============================================================================
# SpeechBubble Bot Client -- Connection Manager
# =============================================================================
#
# WebSocket lifecycle management: connect, heartbeat, fixed-delay reconnect.
#
# Everything runs on the event loop, so no locking is needed. The only
# suspension points that matter are the handshake and the forced close at the
# start of connect(); every connect() and disconnect() bumps a generation
# number, and a connect() that finds the number moved on while it was
# suspended discards its transport instead of installing it. The heartbeat
# task only exists while a transport is open and the reconnect task only
# while none is.
# =============================================================================

from __future__ import annotations

import asyncio
import time

from typing import Any, Awaitable, Callable

import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from ._logging import logger
from .constants import (
    CMD_HEY,
    USER_AGENT,
    WS_CLOSE_ABNORMAL,
    WS_CLOSE_NORMAL,
)
from .errors import SpeechBotConnectionError, SpeechBotTimeoutError
from .protocol import encode
from .types import BotConfig, ConnectionPhase, ConnectionState

# Opens a transport: connector(url, **options) -> connection
Connector = Callable[..., Awaitable[Any]]


class ConnectionManager:
    """Owns the transport for one client.

    ``disconnect()`` is the only way to stop reconnecting: a close the
    caller asked for never schedules a new attempt, any other close does
    (when ``auto_reconnect`` is on) after ``reconnect_delay`` seconds,
    indefinitely.

    Args:
        config: Address, timeouts and reconnect policy.
        state: The client's connection record; ``phase`` and
            ``last_ping_time`` are written here.
        connector: Opens the WebSocket. Defaults to
            ``websockets.asyncio.client.connect``.
        on_connecting: Called before each open attempt.
        on_open: Awaited after the transport opens.
        on_message: Awaited for each received text frame.
        on_close: Called with ``(code, reason)`` after every close.
        on_error: Called with transport-level exceptions.
    """

    def __init__(
        self,
        config: BotConfig,
        state: ConnectionState,
        *,
        connector: Connector | None = None,
        on_connecting: Callable[[], Any] | None = None,
        on_open: Callable[[], Awaitable[Any]] | None = None,
        on_message: Callable[[str | bytes], Awaitable[Any]] | None = None,
        on_close: Callable[[int, str], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ) -> None:
        self._config = config
        self._state = state
        self._connector = connector or websockets.asyncio.client.connect

        # Callbacks
        self._on_connecting = on_connecting
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error

        # State
        self._ws: Any | None = None
        self._force_disconnect = False
        self._generation = 0

        # Tasks
        self._recv_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    # -- Properties -----------------------------------------------------------

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._state.phase in (
            ConnectionPhase.AWAITING_AUTH,
            ConnectionPhase.AUTHENTICATED,
        )

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # -- Connect / Disconnect -------------------------------------------------

    async def connect(self) -> None:
        """Open a fresh transport, closing the current one first.

        Never raises for transport failures: they are reported through
        ``on_error`` and handled like any other close.

        A ``disconnect()`` or a newer ``connect()`` that arrives while this
        call is still in its handshake supersedes it: the transport it opens
        is closed straight away and nothing is reported or rescheduled.
        """
        self._cancel_reconnect()
        self._generation += 1
        generation = self._generation

        if self._ws is not None:
            self._force_disconnect = True
            await self._close_transport()
            if generation != self._generation:
                return
        self._force_disconnect = False

        self._state.set_phase(ConnectionPhase.CONNECTING)
        if self._on_connecting:
            self._on_connecting()

        url = self._config.url
        try:
            ws = await self._connector(
                url,
                user_agent_header=USER_AGENT,
                open_timeout=self._config.connect_timeout,
                ping_interval=None,  # keep-alive is the application-level hey
            )
        except asyncio.CancelledError:
            if generation == self._generation:
                self._state.set_phase(ConnectionPhase.DISCONNECTED)
            raise
        except Exception as exc:
            if generation != self._generation:
                logger.debug("Superseded connect attempt failed: %s", exc)
                return
            self._open_failed(url, exc)
            return

        if generation != self._generation:
            await self._discard(ws)
            return

        self._ws = ws
        self._state.last_ping_time = time.time()
        self._state.set_phase(ConnectionPhase.AWAITING_AUTH)
        logger.info("Connected to %s", url)

        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        if self._on_open:
            await self._on_open()

        # on_open may have closed the transport already
        if self._ws is ws:
            self._recv_task = asyncio.create_task(self._recv_loop(ws))

    async def disconnect(self) -> None:
        """Close the transport and suppress the reconnect it would trigger.

        With no transport open, cancels a pending reconnect instead, and
        abandons a handshake that is still in progress.
        """
        self._cancel_reconnect()
        self._generation += 1
        self._force_disconnect = True
        if self._ws is not None:
            await self._close_transport()
        else:
            self._state.set_phase(ConnectionPhase.DISCONNECTED)

    # -- Send -----------------------------------------------------------------

    async def send(self, cmd: str, data: dict[str, Any] | None = None) -> bool:
        """Send one envelope.  Returns False (message dropped) when offline."""
        ws = self._ws
        if ws is None or not self.is_connected:
            logger.debug("Not connected, dropping '%s'", cmd)
            return False

        try:
            await ws.send(encode(cmd, data))
            return True
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
            return False

    # -- Internal: receive loop -----------------------------------------------

    async def _recv_loop(self, ws: Any) -> None:
        """Read frames until the transport closes."""
        try:
            async for frame in ws:
                if self._on_message:
                    await self._on_message(frame)
        except ConnectionClosedError as exc:
            logger.debug("WebSocket closed with error: %s", exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Receive loop error: %s", exc)
            self._report(SpeechBotConnectionError(f"Transport error: {exc}"))
            await ws.close()

        # A caller-initiated close already handled this transport
        if self._ws is not ws:
            return
        self._ws = None
        self._recv_task = None
        self._handle_close(
            ws.close_code if ws.close_code is not None else WS_CLOSE_ABNORMAL,
            ws.close_reason or "",
        )

    # -- Internal: heartbeat --------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        """Send ``hey`` every ``hey_freq`` seconds while connected."""
        while True:
            try:
                await asyncio.sleep(self._config.hey_freq)
            except asyncio.CancelledError:
                return

            if self.is_connected:
                await self.send(CMD_HEY, {})

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    # -- Internal: close / reconnect ------------------------------------------

    async def _close_transport(self) -> None:
        """Close the current transport and run close handling inline."""
        ws = self._ws
        if ws is None:
            return
        self._ws = None

        recv_task = self._recv_task
        self._recv_task = None
        # Closing from inside a message handler: the loop ends on its own
        if recv_task is not None and recv_task is not asyncio.current_task():
            recv_task.cancel()
            await asyncio.gather(recv_task, return_exceptions=True)

        try:
            await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
        except Exception as exc:
            logger.debug("Close failed: %s", exc)

        self._handle_close(
            ws.close_code if ws.close_code is not None else WS_CLOSE_NORMAL,
            ws.close_reason or "Client disconnect",
        )

    def _open_failed(self, url: str, exc: Exception) -> None:
        if isinstance(exc, TimeoutError):
            self._report(
                SpeechBotTimeoutError(
                    f"Connection to {url} timed out after {self._config.connect_timeout}s"
                )
            )
            self._handle_close(WS_CLOSE_ABNORMAL, "Connection timed out")
        else:
            self._report(SpeechBotConnectionError(f"Failed to connect to {url}: {exc}"))
            self._handle_close(WS_CLOSE_ABNORMAL, str(exc))

    async def _discard(self, ws: Any) -> None:
        """Close a transport whose connect() was superseded mid-handshake."""
        logger.debug("Connect superseded during handshake, closing new transport")
        try:
            await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
        except Exception as exc:
            logger.debug("Close failed: %s", exc)

    def _handle_close(self, code: int, reason: str) -> None:
        """React to a transport close."""
        logger.debug("WebSocket closed: code=%d reason=%s", code, reason)

        self._cancel_heartbeat()
        self._state.set_phase(ConnectionPhase.DISCONNECTED)
        if self._on_close:
            self._on_close(code, reason)

        if self._force_disconnect:
            return
        if self._config.auto_reconnect:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay = self._config.reconnect_delay
        logger.info("Reconnecting in %.1fs", delay)
        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        """Wait, then try to reconnect."""
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return

        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # -- Errors ---------------------------------------------------------------

    def _report(self, exc: Exception) -> None:
        logger.warning("%s", exc)
        if self._on_error:
            self._on_error(exc)
