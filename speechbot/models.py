# =============================================================================
# SpeechBubble Bot Client -- Replica Records
# =============================================================================
#
# Users and channels are long-lived and updated by partial payloads. Each
# entity has a typed partial-update struct that records only the fields the
# server actually sent, and a merge function that overwrites exactly those.
# A field left as ``None`` on an update struct means "not specified".
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .constants import CHAT_STANDARD

_USER_FIELDS = ("nickname", "full_name", "privileges")
_CHANNEL_FIELDS = (
    "title",
    "topic",
    "pm",
    "ui",
    "deleted",
    "users",
    "live_users",
    "history",
)


def _split(data: Mapping[str, Any], known: tuple[str, ...], skip: tuple[str, ...]):
    fields = {k: data[k] for k in known if data.get(k) is not None}
    extra = {k: v for k, v in data.items() if k not in known and k not in skip}
    return fields, extra


# -- Users --------------------------------------------------------------------


@dataclass
class User:
    """A server user, keyed by ``username``."""

    username: str
    nickname: str = ""
    full_name: str = ""
    privileges: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return bool(self.privileges.get("admin"))

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> User:
        update = UserUpdate.from_payload(data)
        return merge_user(cls(username=update.username), update)


@dataclass
class UserUpdate:
    """Fields of a ``user_updated`` payload that the server specified."""

    username: str
    nickname: str | None = None
    full_name: str | None = None
    privileges: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> UserUpdate:
        fields, extra = _split(data, _USER_FIELDS, ("username",))
        return cls(username=str(data.get("username", "")), extra=extra, **fields)


def merge_user(user: User, update: UserUpdate) -> User:
    """Overwrite the fields *update* specifies; keep everything else."""
    if update.nickname is not None:
        user.nickname = update.nickname
    if update.full_name is not None:
        user.full_name = update.full_name
    if update.privileges is not None:
        user.privileges = dict(update.privileges)
    user.extra.update(update.extra)
    return user


# -- Channels -----------------------------------------------------------------


@dataclass
class Channel:
    """A channel, keyed by ``channel_id``.

    Attributes:
        users: Per-channel role table, username -> role flags (``admin`` ...).
        live_users: Username -> presence marker. ``None`` until joined.
        ui: True while we hold an active foreground context (after welcome).
        pm: Direct-message channel.
        history: Backlog sent with the channel; dropped on welcome.
        deleted: Set by the server on the update that removes the channel.
    """

    channel_id: str
    title: str = ""
    topic: str = ""
    pm: bool = False
    ui: bool = False
    deleted: bool = False
    users: dict[str, dict[str, Any]] = field(default_factory=dict)
    live_users: dict[str, dict[str, Any]] | None = None
    history: list[Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def has_admin_role(self, username: str) -> bool:
        role = self.users.get(username)
        return bool(role and role.get("admin"))

    @classmethod
    def from_payload(cls, channel_id: str, data: Mapping[str, Any]) -> Channel:
        return merge_channel(cls(channel_id=channel_id), ChannelUpdate.from_payload(data))


@dataclass
class ChannelUpdate:
    """Fields of a channel payload that the server specified."""

    title: str | None = None
    topic: str | None = None
    pm: bool | None = None
    ui: bool | None = None
    deleted: bool | None = None
    users: dict[str, dict[str, Any]] | None = None
    live_users: dict[str, dict[str, Any]] | None = None
    history: list[Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any] | None) -> ChannelUpdate:
        fields, extra = _split(data or {}, _CHANNEL_FIELDS, ("id", "channel_id"))
        update = cls(extra=extra, **fields)
        update.users = _role_table(update.users)
        update.live_users = _role_table(update.live_users)
        return update


def _role_table(value: Any) -> dict[str, dict[str, Any]] | None:
    """Per-user records keyed by username; entries that are not mappings are dropped."""
    if not isinstance(value, Mapping):
        return None
    return {name: dict(entry) for name, entry in value.items() if isinstance(entry, Mapping)}


def merge_channel(channel: Channel, update: ChannelUpdate) -> Channel:
    """Overwrite the fields *update* specifies; keep everything else."""
    if update.title is not None:
        channel.title = update.title
    if update.topic is not None:
        channel.topic = update.topic
    if update.pm is not None:
        channel.pm = bool(update.pm)
    if update.ui is not None:
        channel.ui = bool(update.ui)
    if update.deleted is not None:
        channel.deleted = bool(update.deleted)
    if update.users is not None:
        channel.users = {name: dict(role) for name, role in update.users.items()}
    if update.live_users is not None:
        channel.live_users = dict(update.live_users)
    if update.history is not None:
        channel.history = list(update.history)
    channel.extra.update(update.extra)
    return channel


# -- Chat messages ------------------------------------------------------------


@dataclass
class ChatMessage:
    """A message as delivered to observers. Never stored in the replica."""

    id: str
    channel_id: str
    username: str
    type: str = CHAT_STANDARD
    content: str = ""
    text: str = ""
    date: float | None = None
    to: str | None = None
    nickname: str | None = None
    full_name: str | None = None
    is_admin: bool = False
    extra: dict[str, Any] = field(default_factory=dict)
