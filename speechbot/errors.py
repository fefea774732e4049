# =============================================================================
# SpeechBubble Bot Client -- Error Types
# =============================================================================


class SpeechBotError(Exception):
    """Base exception for all SpeechBubble client errors."""


class SpeechBotConnectionError(SpeechBotError):
    """Connection-related errors (failed to connect, lost connection)."""


class SpeechBotAuthError(SpeechBotError):
    """Authentication rejected by the server."""


class SpeechBotProtocolError(SpeechBotError):
    """Wire protocol errors (malformed frames, missing command)."""


class SpeechBotTimeoutError(SpeechBotError):
    """Operation timed out."""


class ChannelRemovedError(SpeechBotError):
    """We were removed from a channel (kicked, channel deleted or made private)."""

    def __init__(self, channel_id: str, reason: str) -> None:
        self.channel_id = channel_id
        self.reason = reason
        super().__init__(f"You were kicked from channel '{channel_id}'.")
