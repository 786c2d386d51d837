"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Message operations (content limits, page sizes)
- Realtime delivery (timeouts, typing expiry, close codes)
- Presence tracking (heartbeats, channel layer group names)

Import example:
    from chat.constants import MESSAGE_CONFIG, REALTIME_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits (measured after trimming)
    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters
    MIN_CONTENT_LENGTH: Final[int] = 1

    # History pages
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100

    # Messages embedded in a conversation detail response
    DETAIL_MESSAGE_LIMIT: Final[int] = 50


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Configuration for the WebSocket channel."""

    # Upper bound on a single send (store append + fan-out)
    SEND_TIMEOUT_SECONDS: Final[float] = 10.0

    # Typing indicators disappear this long after the last signal
    TYPING_EXPIRY_SECONDS: Final[float] = 3.0

    # Minimum gap between typing intents sent by one client
    TYPING_THROTTLE_SECONDS: Final[float] = 2.0

    # Close codes (4000-4999 are application defined)
    CLOSE_UNAUTHORIZED: Final[int] = 4001

    # Channel layer group prefix for conversation rooms
    ROOM_GROUP_PREFIX: Final[str] = "chat"


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for presence tracking."""

    # How often clients should send heartbeat
    HEARTBEAT_INTERVAL_SECONDS: Final[int] = 30

    # A connection without a heartbeat for this long is treated as dead
    STALE_CONNECTION_SECONDS: Final[int] = 90

    # Every live connection joins this group to receive user_status_change
    PRESENCE_GROUP: Final[str] = "presence"

    # Per-user group, used to reach all of one user's connections
    USER_GROUP_PREFIX: Final[str] = "user"
