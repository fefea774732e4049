# =============================================================================
# SpeechBubble Bot Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from ._logging import logger
from .constants import (
    CONNECTION_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    HEARTBEAT_INTERVAL,
    RECONNECT_DELAY,
    STATUS_TIMEOUT,
)

if TYPE_CHECKING:
    from .models import ChatMessage


class ConnectionPhase(str, Enum):
    """Session lifecycle phase.

    Flow per connection attempt:
    DISCONNECTED -> CONNECTING -> AWAITING_AUTH -> AUTHENTICATED -> DISCONNECTED.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"


@dataclass
class ConnectionState:
    """The one connection record a client owns.

    Attributes:
        phase: Current lifecycle phase.
        session_id: Issued on first login, reused to resume after reconnect.
        last_ping_time: ``time.time()`` of the last open or ``status`` frame.
        epoch: Server epoch from the last ``status`` frame.
    """

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    session_id: str | None = None
    last_ping_time: float | None = None
    epoch: Any = None

    def set_phase(self, new_phase: ConnectionPhase) -> None:
        if new_phase == self.phase:
            return
        old = self.phase
        self.phase = new_phase
        logger.debug("Phase: %s -> %s", old.value, new_phase.value)


# Original bot API argument names -> BotConfig field names
_LEGACY_KEYS = {
    "hostname": "host",
    "ssl": "secure",
    "channels": "channels",
    "reconnect": "auto_reconnect",
    "reconnectDelaySec": "reconnect_delay",
    "connectTimeoutSec": "connect_timeout",
    "heyFreqSec": "hey_freq",
    "statusTimeoutSec": "status_timeout",
}


@dataclass
class BotConfig:
    """Construction-time settings for :class:`~speechbot.client.SpeechBotClient`.

    Attributes:
        host: Server hostname.
        port: Server port.
        secure: Use ``wss://`` instead of ``ws://``.
        username: Login name for credential authentication.
        password: Password for credential authentication.
        channels: Channels to join after every login.
        auto_reconnect: Reconnect after an unexpected close.
        reconnect_delay: Fixed delay in seconds before reconnecting.
        connect_timeout: Seconds allowed for the opening handshake.
        hey_freq: Seconds between keep-alive ``hey`` frames.
        status_timeout: Accepted for compatibility, not enforced.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    secure: bool = False
    username: str = ""
    password: str = ""
    channels: list[str] = field(default_factory=list)
    auto_reconnect: bool = True
    reconnect_delay: float = RECONNECT_DELAY
    connect_timeout: float = CONNECTION_TIMEOUT
    hey_freq: float = HEARTBEAT_INTERVAL
    status_timeout: float = STATUS_TIMEOUT

    @property
    def url(self) -> str:
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.host}:{self.port}/"

    @classmethod
    def from_mapping(cls, args: Mapping[str, Any]) -> BotConfig:
        """Build a config from keyword-style settings.

        Accepts both field names and the original bot API names
        (``hostname``, ``ssl``, ``reconnectDelaySec`` ...). Unknown keys
        are ignored.
        """
        fields = set(cls.__dataclass_fields__)
        kwargs: dict[str, Any] = {}
        for key, value in args.items():
            name = _LEGACY_KEYS.get(key, key)
            if name in fields:
                kwargs[name] = value
        if "channels" in kwargs:
            kwargs["channels"] = list(kwargs["channels"])
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class SpeechEvent:
    """An event delivered to observers.

    Attributes:
        type: Event name: ``connect``, ``login``, ``said``, ``speechbubble`` ...
        payload: Event data as a dict.
        command: Sub-command name, set on ``speechbubble`` firehose events.
        chat: Enriched message for ``said`` events.
        error: The exception carried by ``error`` events.
    """

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    command: str | None = None
    chat: ChatMessage | None = None
    error: Exception | None = None
