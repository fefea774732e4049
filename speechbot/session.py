# =============================================================================
# SpeechBubble Bot Client -- Session Handler
# =============================================================================
#
# Authenticates (or resumes) on every open and processes the server's
# verdict. The session id from the first login is kept across reconnects so
# later opens resume the same session instead of logging in again.
# =============================================================================

from __future__ import annotations

from typing import Any

from ._logging import logger
from .errors import SpeechBotAuthError
from .replica import StateReplica
from .types import BotConfig, ConnectionPhase, ConnectionState


class SessionHandler:
    """Login state for one client.

    Args:
        config: Credentials and the auto-join channel list.
        state: The client's connection record; ``session_id`` and ``phase``
            are written here.
        replica: Receives the user table and channel map from each login.
    """

    def __init__(
        self,
        config: BotConfig,
        state: ConnectionState,
        replica: StateReplica,
    ) -> None:
        self._config = config
        self._state = state
        self._replica = replica
        self.server_config: dict[str, Any] = {}

    @property
    def username(self) -> str:
        return self._replica.username or self._config.username

    @property
    def can_resume(self) -> bool:
        return bool(self._state.session_id)

    def authenticate_payload(self) -> dict[str, Any]:
        """Data for the ``authenticate`` frame sent on each open."""
        if self._state.session_id:
            logger.debug("Resuming session")
            return {"session_id": self._state.session_id}
        return {"username": self._config.username, "password": self._config.password}

    def handle_login(self, data: dict[str, Any]) -> list[str]:
        """Store a successful login and return the channels to join.

        Auto-join channels come first, then every known PM channel so
        direct-message conversations survive a resumed session. Each
        channel appears once.
        """
        username = data.get("username") or self._config.username
        self._replica.load_users(username, data.get("user"), data.get("users"))
        self._replica.merge_channels(data.get("channels"))

        self._state.session_id = data.get("session_id")
        self._state.set_phase(ConnectionPhase.AUTHENTICATED)
        self.server_config = dict(data.get("config") or {})

        logger.info(
            "Logged in as %s (%d channels, %d users)",
            username,
            len(self._replica.channels),
            len(self._replica.users),
        )

        joins = list(dict.fromkeys(self._config.channels))
        for channel_id, channel in self._replica.channels.items():
            if channel.pm and channel_id not in joins:
                joins.append(channel_id)
        return joins

    def handle_auth_failure(self, data: dict[str, Any]) -> SpeechBotAuthError:
        """Record a rejected login; the caller must close without reconnecting.

        The session id is dropped, so a later manual ``connect()`` falls
        back to credentials instead of replaying a dead session.
        """
        resumed = self.can_resume
        self._state.session_id = None
        message = data.get("description") or "Authentication failure"
        logger.error("%s (resume=%s)", message, resumed)
        return SpeechBotAuthError(message)
