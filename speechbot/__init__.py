"""SpeechBubble bot client: one resumable chat session over a WebSocket.

Usage::

    from speechbot import SpeechBotClient

    bot = SpeechBotClient(host="chat.example.com", username="bot",
                          password="secret", channels=["lobby"])

    @bot.on("said")
    async def echo(event):
        if event.chat.text == "ping":
            await bot.say(event.chat.channel_id, "pong")

    await bot.connect()

The client reconnects after unexpected closes, resumes the session with the
id issued at login, and keeps ``bot.channels`` and ``bot.users`` in sync
with the server.

Optional extras::

    pip install speechbot[fast]   # orjson
"""

from ._version import __version__
from .client import SpeechBotClient
from .errors import (
    ChannelRemovedError,
    SpeechBotAuthError,
    SpeechBotConnectionError,
    SpeechBotError,
    SpeechBotProtocolError,
    SpeechBotTimeoutError,
)
from .models import Channel, ChannelUpdate, ChatMessage, User, UserUpdate
from .protocol import SubCommand
from .text import decode_entities, html_to_text
from .types import BotConfig, ConnectionPhase, ConnectionState, SpeechEvent


def connect(**settings) -> SpeechBotClient:
    """Create a client. Use as an async context manager.

    Keyword arguments become the :class:`BotConfig`.

    Example::

        async with connect(username="bot", password="pw") as bot:
            async for event in bot:
                print(event.type, event.payload)
    """
    return SpeechBotClient(**settings)


__all__ = [
    "__version__",
    "connect",
    "SpeechBotClient",
    "BotConfig",
    "ConnectionPhase",
    "ConnectionState",
    "SpeechEvent",
    "SubCommand",
    "User",
    "UserUpdate",
    "Channel",
    "ChannelUpdate",
    "ChatMessage",
    "html_to_text",
    "decode_entities",
    "SpeechBotError",
    "SpeechBotConnectionError",
    "SpeechBotAuthError",
    "SpeechBotProtocolError",
    "SpeechBotTimeoutError",
    "ChannelRemovedError",
]
