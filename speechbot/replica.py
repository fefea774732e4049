# =============================================================================
# SpeechBubble Bot Client -- State Replica
# =============================================================================
#
# Local mirror of the server's users and channels. The server is
# authoritative: events that reference a channel we do not know are dropped,
# and a later welcome or login fills the gap.
#
# Handlers never do I/O. Anything that needs a send or a notification is
# returned as ``Effects`` and carried out by the client.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ._logging import logger
from .constants import CHAT_STANDARD, REMOVAL_REASONS
from .errors import ChannelRemovedError
from .models import (
    Channel,
    ChannelUpdate,
    ChatMessage,
    User,
    UserUpdate,
    merge_channel,
    merge_user,
)
from .protocol import DomainCommand, SubCommand
from .text import html_to_text

_CHAT_FIELDS = frozenset(
    {"id", "channel_id", "username", "type", "content", "date", "to"}
)


@dataclass
class Effects:
    """Side effects requested by a replica handler.

    Attributes:
        joins: Channels to send a join request for, in order.
        notices: Removal notices to report as ``error`` events.
        chat: Enriched message built by a ``said`` event.
    """

    joins: list[str] = field(default_factory=list)
    notices: list[ChannelRemovedError] = field(default_factory=list)
    chat: ChatMessage | None = None


class StateReplica:
    """Users and channels as last reported by the server.

    Records survive reconnects. A login merges its channel map into what
    is already here rather than replacing it.
    """

    def __init__(self) -> None:
        self.username: str = ""
        self.user: User | None = None
        self.users: dict[str, User] = {}
        self.channels: dict[str, Channel] = {}

        self._handlers: dict[SubCommand, Callable[[dict[str, Any]], Effects]] = {
            SubCommand.JOINED: self.joined,
            SubCommand.LEFT: self.left,
            SubCommand.WELCOME: self.welcome,
            SubCommand.GOODBYE: self.goodbye,
            SubCommand.SAID: self.said,
            SubCommand.USER_UPDATED: self.user_updated,
            SubCommand.CHANNEL_UPDATED: self.channel_updated,
        }

    def apply(self, command: DomainCommand) -> Effects:
        """Apply one domain event. Unhandled sub-commands change nothing."""
        if command.kind is None:
            return Effects()
        return self._handlers[command.kind](command.data)

    # -- Login ----------------------------------------------------------------

    def load_users(
        self,
        username: str,
        user: Mapping[str, Any] | None,
        users: Mapping[str, Mapping[str, Any]] | None,
    ) -> None:
        """Replace the user table with the complete one sent at login."""
        self.username = username
        self.user = User.from_payload({"username": username, **(user or {})})
        self.users = {
            name: User.from_payload({"username": name, **data})
            for name, data in (users or {}).items()
        }

    def merge_channels(self, channels: Mapping[str, Mapping[str, Any]] | None) -> None:
        """Merge a login channel map; existing channels keep unspecified fields."""
        for channel_id, data in (channels or {}).items():
            self._merge_channel(channel_id, data)

    def _merge_channel(self, channel_id: str, data: Mapping[str, Any] | None) -> Channel:
        update = ChannelUpdate.from_payload(data)
        channel = self.channels.get(channel_id)
        if channel is None:
            channel = self.channels[channel_id] = Channel(channel_id=channel_id)
        return merge_channel(channel, update)

    # -- Membership -----------------------------------------------------------

    def joined(self, data: dict[str, Any]) -> Effects:
        channel = self.channels.get(data.get("channel_id", ""))
        username = data.get("username") or (data.get("user") or {}).get("username")
        if channel is None or not username:
            return Effects()

        if channel.live_users is None:
            channel.live_users = {}
        channel.live_users[username] = {"live": 1}
        return Effects()

    def left(self, data: dict[str, Any]) -> Effects:
        channel = self.channels.get(data.get("channel_id", ""))
        if channel is None or channel.live_users is None:
            return Effects()

        channel.live_users.pop(data.get("username", ""), None)
        return Effects()

    def welcome(self, data: dict[str, Any]) -> Effects:
        """We joined a channel; the payload includes its live roster."""
        channel_id = data.get("channel_id", "")
        if not channel_id:
            return Effects()

        channel = self._merge_channel(channel_id, data.get("channel"))
        channel.history = None
        channel.ui = True
        return Effects()

    def goodbye(self, data: dict[str, Any]) -> Effects:
        """We left a channel, voluntarily or not."""
        channel_id = data.get("channel_id", "")
        channel = self.channels.get(channel_id)
        if channel is None:
            return Effects()

        channel.ui = False
        channel.live_users = None

        reason = data.get("reason", "")
        if reason in REMOVAL_REASONS:
            return Effects(notices=[ChannelRemovedError(channel_id, reason)])
        return Effects()

    # -- Messages -------------------------------------------------------------

    def said(self, data: dict[str, Any]) -> Effects:
        channel = self.channels.get(data.get("channel_id", "")) or Channel(channel_id="")
        username = data.get("username", "")

        chat = ChatMessage(
            id=str(data.get("id", "")),
            channel_id=data.get("channel_id", ""),
            username=username,
            type=data.get("type") or CHAT_STANDARD,
            content=data.get("content") or "",
            date=data.get("date"),
            to=data.get("to"),
            extra={k: v for k, v in data.items() if k not in _CHAT_FIELDS},
        )
        chat.text = html_to_text(chat.content, decode_emoji=True)

        user = self.users.get(username)
        if user is not None:
            chat.nickname = user.nickname
            chat.full_name = user.full_name
        # Channel admins count even without server-wide admin
        chat.is_admin = bool(user and user.is_admin) or channel.has_admin_role(username)
        return Effects(chat=chat)

    # -- Record updates -------------------------------------------------------

    def user_updated(self, data: dict[str, Any]) -> Effects:
        update = UserUpdate.from_payload(data)
        if not update.username:
            return Effects()

        if update.username == self.username and self.user is not None:
            merge_user(self.user, update)

        user = self.users.get(update.username)
        if user is None:
            user = self.users[update.username] = User(username=update.username)
        merge_user(user, update)
        return Effects()

    def channel_updated(self, data: dict[str, Any]) -> Effects:
        """A channel was created, changed or deleted.

        PM invitations piggyback on this event: a direct-message channel we
        have no UI for gets joined.
        """
        channel_id = data.get("channel_id", "")
        if not channel_id:
            return Effects()

        channel = self._merge_channel(channel_id, data.get("channel"))
        if channel.deleted:
            del self.channels[channel_id]
            logger.debug("Channel %s deleted", channel_id)
        elif channel.pm and not channel.ui:
            return Effects(joins=[channel_id])
        return Effects()
