# =============================================================================
# SpeechBubble Bot Client -- Wire Protocol Codec
# =============================================================================
#
# Every frame in both directions is a JSON envelope:
#
#   {"cmd": "<command>", "data": {...}}
#
# Chat-domain traffic is wrapped in a "speechbubble" envelope whose data
# carries its own nested "cmd" naming the sub-command:
#
#   {"cmd": "speechbubble", "data": {"cmd": "said", "channel_id": ...}}
# =============================================================================

from __future__ import annotations

import json

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import CMD_SPEECHBUBBLE
from .errors import SpeechBotProtocolError

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


class SubCommand(str, Enum):
    """Domain sub-commands the client applies to its replica.

    Anything else the server sends inside a speechbubble envelope
    (``pong``, ``avatar_changed``, ``topic_changed`` ...) is forwarded to
    observers without touching local state.
    """

    JOINED = "joined"
    LEFT = "left"
    WELCOME = "welcome"
    GOODBYE = "goodbye"
    SAID = "said"
    USER_UPDATED = "user_updated"
    CHANNEL_UPDATED = "channel_updated"

    @classmethod
    def lookup(cls, name: str) -> SubCommand | None:
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class Envelope:
    cmd: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DomainCommand:
    """A decoded speechbubble sub-command.

    ``kind`` is ``None`` for sub-commands the client does not handle.
    ``data`` is the payload without the nested ``cmd`` key.
    """

    name: str
    kind: SubCommand | None
    data: dict[str, Any]


def decode(frame: str | bytes) -> Envelope:
    """Parse one text frame into an :class:`Envelope`.

    Raises:
        SpeechBotProtocolError: The frame is not a JSON object with a
            string ``cmd``.
    """
    try:
        parsed = _json_loads(frame)
    except ValueError as exc:
        raise SpeechBotProtocolError(f"Malformed frame: {exc}") from exc

    if not isinstance(parsed, dict) or not isinstance(parsed.get("cmd"), str):
        raise SpeechBotProtocolError("Frame has no command")

    data = parsed.get("data")
    return Envelope(cmd=parsed["cmd"], data=data if isinstance(data, dict) else {})


def decode_domain(data: dict[str, Any]) -> DomainCommand:
    """Split a speechbubble envelope's data into name and payload."""
    payload = dict(data)
    name = str(payload.pop("cmd", ""))
    return DomainCommand(name=name, kind=SubCommand.lookup(name), data=payload)


def encode(cmd: str, data: dict[str, Any] | None = None) -> str:
    return _json_dumps({"cmd": cmd, "data": data if data is not None else {}})

