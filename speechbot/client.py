# =============================================================================
# SpeechBubble Bot Client -- Async Client
# =============================================================================
#
# Primary public API. Decodes inbound envelopes, routes them to the session
# handler or the state replica, and republishes everything to observers
# through callbacks and an async iterator.
# =============================================================================

from __future__ import annotations

import asyncio
import time

from uuid import uuid4
from collections import defaultdict
from typing import Any, Awaitable, Callable

from ._logging import logger
from .connection import ConnectionManager, Connector
from .constants import (
    CHAT_POSE,
    CHAT_STANDARD,
    CHAT_WHISPER,
    CMD_AUTH_FAILURE,
    CMD_AUTHENTICATE,
    CMD_JOIN,
    CMD_LEAVE,
    CMD_LOGIN,
    CMD_SAY,
    CMD_SPEECHBUBBLE,
    CMD_STATUS,
    EVENT_QUEUE_SIZE,
)
from .errors import SpeechBotProtocolError
from .models import Channel, User
from .protocol import Envelope, decode, decode_domain
from .replica import Effects, StateReplica
from .session import SessionHandler
from .types import BotConfig, ConnectionPhase, ConnectionState, SpeechEvent

# Type alias for event handlers
EventHandler = Callable[[SpeechEvent], Any]
AsyncEventHandler = Callable[[SpeechEvent], Awaitable[Any]]


class SpeechBotClient:
    """Async SpeechBubble bot client with context manager and iterator support.

    Args:
        config: Connection settings. Without one, keyword settings build it
            (``host="chat.example.com", channels=["lobby"]`` ...), using
            either field names or the original bot API names.
        connector: Replaces ``websockets.asyncio.client.connect``.
        queue_size: Max events buffered for the async iterator. When full,
            oldest events are dropped.

    Example::

        async with SpeechBotClient(username="bot", password="pw",
                                   channels=["lobby"]) as bot:

            @bot.on("said")
            async def echo(event):
                if event.chat.text == "ping":
                    await bot.say(event.chat.channel_id, "pong")

            await asyncio.Event().wait()
    """

    def __init__(
        self,
        config: BotConfig | None = None,
        *,
        connector: Connector | None = None,
        queue_size: int = EVENT_QUEUE_SIZE,
        **settings: Any,
    ) -> None:
        if config is None:
            config = BotConfig.from_mapping(settings)
        elif settings:
            raise TypeError("Pass either a BotConfig or keyword settings, not both")
        self._config = config

        self._state = ConnectionState()
        self._replica = StateReplica()
        self._session = SessionHandler(config, self._state, self._replica)
        self._connection = ConnectionManager(
            config,
            self._state,
            connector=connector,
            on_connecting=self._on_connecting,
            on_open=self._on_open,
            on_message=self._on_raw_message,
            on_close=self._on_close,
            on_error=self._on_error,
        )

        # Callback handlers: type -> list of handlers
        self._handlers: dict[str, list[EventHandler | AsyncEventHandler]] = defaultdict(
            list
        )
        self._wildcard_handlers: list[EventHandler | AsyncEventHandler] = []

        # Event queue for async iteration
        self._event_queue: asyncio.Queue[SpeechEvent] = asyncio.Queue(maxsize=queue_size)
        self._background_tasks: set[asyncio.Task[Any]] = set()

        # Top-level command dispatch table
        self._commands: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            CMD_STATUS: self._handle_status,
            CMD_AUTH_FAILURE: self._handle_auth_failure,
            CMD_LOGIN: self._handle_login,
            CMD_SPEECHBUBBLE: self._handle_speechbubble,
        }

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> SpeechBotClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # -- Async iterator -------------------------------------------------------

    def __aiter__(self) -> SpeechBotClient:
        return self

    async def __anext__(self) -> SpeechEvent:
        return await self._event_queue.get()

    # -- Connect / Disconnect -------------------------------------------------

    async def connect(self) -> None:
        """Connect (or reconnect) to the server. Safe to call repeatedly."""
        await self._connection.connect()

    async def disconnect(self) -> None:
        """Close the connection for good; no automatic reconnect follows."""
        await self._connection.disconnect()

    async def close(self) -> None:
        """Alias for disconnect."""
        await self.disconnect()

    # -- Properties -----------------------------------------------------------

    @property
    def config(self) -> BotConfig:
        return self._config

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def is_authenticated(self) -> bool:
        return self.is_connected and self._state.phase == ConnectionPhase.AUTHENTICATED

    @property
    def session_id(self) -> str | None:
        return self._state.session_id

    @property
    def last_ping_time(self) -> float | None:
        return self._state.last_ping_time

    @property
    def epoch(self) -> Any:
        return self._state.epoch

    @property
    def username(self) -> str:
        return self._session.username

    @property
    def user(self) -> User | None:
        return self._replica.user

    @property
    def users(self) -> dict[str, User]:
        return self._replica.users

    @property
    def channels(self) -> dict[str, Channel]:
        return self._replica.channels

    @property
    def server_config(self) -> dict[str, Any]:
        return self._session.server_config

    @property
    def queue_size(self) -> int:
        """Number of events waiting in the iterator queue."""
        return self._event_queue.qsize()

    # -- Outbound -------------------------------------------------------------

    async def send(self, cmd: str, data: dict[str, Any] | None = None) -> bool:
        """Send a low-level envelope.  False if disconnected (message dropped)."""
        return await self._connection.send(cmd, data)

    async def send_command(self, cmd: str, data: dict[str, Any] | None = None) -> bool:
        """Send a speechbubble sub-command."""
        payload = dict(data or {})
        payload["cmd"] = cmd
        return await self.send(CMD_SPEECHBUBBLE, payload)

    async def say(self, channel_id: str, html: str, **overrides: Any) -> bool:
        """Post a message to a channel.

        Args:
            channel_id: Target channel.
            html: Message body (HTML).
            **overrides: Replace any field of the outgoing chat, e.g. ``type``.
        """
        chat: dict[str, Any] = {
            "id": uuid4().hex,
            "username": self.username,
            "channel_id": channel_id,
            "date": time.time(),
            "type": CHAT_STANDARD,
            "content": html,
        }
        chat.update(overrides)
        return await self.send_command(CMD_SAY, chat)

    async def pose(self, channel_id: str, html: str, **overrides: Any) -> bool:
        overrides["type"] = CHAT_POSE
        return await self.say(channel_id, html, **overrides)

    async def whisper(
        self, channel_id: str, username: str, html: str, **overrides: Any
    ) -> bool:
        """Post a message in a channel that only *username* can see."""
        overrides["type"] = CHAT_WHISPER
        overrides["to"] = username
        return await self.say(channel_id, html, **overrides)

    async def join(self, channel_id: str) -> bool:
        return await self.send_command(CMD_JOIN, {"channel_id": channel_id})

    async def leave(self, channel_id: str) -> bool:
        return await self.send_command(CMD_LEAVE, {"channel_id": channel_id})

    # -- Handler registration -------------------------------------------------

    def on(
        self, event_type: str
    ) -> Callable[[EventHandler | AsyncEventHandler], EventHandler | AsyncEventHandler]:
        """Decorator to register a handler for one event name.

        Example::

            @bot.on("joined")
            def greet(event):
                print(event.payload["username"], "joined")
        """

        def decorator(
            fn: EventHandler | AsyncEventHandler,
        ) -> EventHandler | AsyncEventHandler:
            self._handlers[event_type].append(fn)
            return fn

        return decorator

    def on_any(
        self, fn: EventHandler | AsyncEventHandler
    ) -> EventHandler | AsyncEventHandler:
        """Register a wildcard handler that receives all events."""
        self._wildcard_handlers.append(fn)
        return fn

    def off(self, event_type: str, fn: EventHandler | AsyncEventHandler) -> None:
        """Remove a specific handler."""
        handlers = self._handlers.get(event_type, [])
        if fn in handlers:
            handlers.remove(fn)

    # -- Internal: transport callbacks ----------------------------------------

    def _on_connecting(self) -> None:
        self._emit(SpeechEvent(type="connecting"))

    async def _on_open(self) -> None:
        await self.send(CMD_AUTHENTICATE, self._session.authenticate_payload())
        self._emit(SpeechEvent(type="connect"))

    def _on_close(self, code: int, reason: str) -> None:
        self._emit(SpeechEvent(type="close", payload={"code": code, "reason": reason}))

    def _on_error(self, exc: Exception) -> None:
        self._emit(SpeechEvent(type="error", payload={"message": str(exc)}, error=exc))

    # -- Internal: message handling -------------------------------------------

    async def _on_raw_message(self, frame: str | bytes) -> None:
        """Decode one frame and dispatch it."""
        try:
            envelope = decode(frame)
        except SpeechBotProtocolError as exc:
            logger.warning("Dropping frame: %s", exc)
            self._on_error(exc)
            return

        try:
            await self._dispatch(envelope)
        except Exception as exc:
            logger.exception("Failed to process '%s'", envelope.cmd)
            self._on_error(SpeechBotProtocolError(f"Bad '{envelope.cmd}' payload: {exc}"))

    async def _dispatch(self, envelope: Envelope) -> None:
        handler = self._commands.get(envelope.cmd)
        if handler is None:
            logger.debug("Ignoring unknown command '%s'", envelope.cmd)
            return
        await handler(envelope.data)

    async def _handle_status(self, data: dict[str, Any]) -> None:
        self._state.epoch = data.get("epoch")
        self._state.last_ping_time = time.time()

    async def _handle_auth_failure(self, data: dict[str, Any]) -> None:
        self._on_error(self._session.handle_auth_failure(data))
        await self.disconnect()

    async def _handle_login(self, data: dict[str, Any]) -> None:
        joins = self._session.handle_login(data)
        self._emit(SpeechEvent(type="login", payload=data))
        for channel_id in joins:
            await self.join(channel_id)

    async def _handle_speechbubble(self, data: dict[str, Any]) -> None:
        command = decode_domain(data)
        effects = self._replica.apply(command)
        await self._apply_effects(effects)

        # Always republish: firehose first, then the specific listener
        self._emit(
            SpeechEvent(
                type=CMD_SPEECHBUBBLE,
                payload=command.data,
                command=command.name,
                chat=effects.chat,
            )
        )
        self._emit(SpeechEvent(type=command.name, payload=command.data, chat=effects.chat))

    async def _apply_effects(self, effects: Effects) -> None:
        for notice in effects.notices:
            self._on_error(notice)
        for channel_id in effects.joins:
            await self.join(channel_id)

    # -- Internal: observers --------------------------------------------------

    def _emit(self, event: SpeechEvent) -> None:
        """Invoke callbacks, then enqueue for the iterator."""
        self._invoke_handlers(event)

        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            # Drop oldest to make room
            try:
                self._event_queue.get_nowait()
                self._event_queue.put_nowait(event)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _invoke_handlers(self, event: SpeechEvent) -> None:
        """Call registered handlers for this event type."""
        handlers = self._handlers.get(event.type, []) + self._wildcard_handlers
        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as exc:
                logger.error("Handler error for '%s': %s", event.type, exc)
