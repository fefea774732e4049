# =============================================================================
# SpeechBubble Bot Client -- Protocol Constants
# =============================================================================

from ._version import __version__

CLIENT_VERSION = __version__
USER_AGENT = f"SpeechBubble Bot API v{CLIENT_VERSION}"

# -- Defaults ------------------------------------------------------------------

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4480

# -- Timing (seconds) --------------------------------------------------------

RECONNECT_DELAY = 5.0
CONNECTION_TIMEOUT = 5.0
HEARTBEAT_INTERVAL = 20.0
STATUS_TIMEOUT = 5.0

# -- Event queue ---------------------------------------------------------------

EVENT_QUEUE_SIZE = 1000

# -- Top-level wire commands ---------------------------------------------------

CMD_AUTHENTICATE = "authenticate"
CMD_HEY = "hey"
CMD_STATUS = "status"
CMD_AUTH_FAILURE = "auth_failure"
CMD_LOGIN = "login"
CMD_SPEECHBUBBLE = "speechbubble"

# -- Outbound domain sub-commands ----------------------------------------------

CMD_SAY = "say"
CMD_JOIN = "join"
CMD_LEAVE = "leave"

# -- Chat message types --------------------------------------------------------

CHAT_STANDARD = "standard"
CHAT_POSE = "pose"
CHAT_WHISPER = "whisper"

# Goodbye reasons that mean we were removed against our will
REMOVAL_REASONS = frozenset({"private", "delete", "kick"})

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_ABNORMAL = 1006
