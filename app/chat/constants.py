"""
Constants and configuration for the chat core.

This module centralizes configuration values for:
- Message limits and page sizes
- Chat naming rules
- Typing state TTL and cache keys
- Channel layer group naming
- Error codes returned in ServiceResult failures

Import example:
    from chat.constants import MESSAGE_CONFIG, TYPING_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_TEXT_LENGTH: Final[int] = 1000  # Characters

    # Pagination (list_messages)
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Chat Configuration
# =============================================================================


class CHAT_CONFIG:
    """Configuration for chat creation."""

    MAX_GROUP_NAME_LENGTH: Final[int] = 50
    DIRECT_PARTICIPANT_COUNT: Final[int] = 2

    # Lookup retries after losing a concurrent direct-chat insert
    MAX_RESOLVE_ATTEMPTS: Final[int] = 3

    # Image upload
    MAX_IMAGE_BYTES: Final[int] = 10 * 1024 * 1024  # 10 MB


# =============================================================================
# Typing Configuration
# =============================================================================


class TYPING_CONFIG:
    """Configuration for typing state."""

    # Entry lifetime after the most recent keystroke (seconds)
    TTL_SECONDS: Final[int] = 2

    # Cache key: typing:<chat_id>:<user_id>
    KEY_PREFIX: Final[str] = "typing"


# =============================================================================
# Subscription Configuration
# =============================================================================


class SUBSCRIPTION_CONFIG:
    """Channel layer group names and event types."""

    CHAT_GROUP_PREFIX: Final[str] = "chat"  # chat.<chat_id>
    USER_CHATS_GROUP_TEMPLATE: Final[str] = "user.{user_id}.chats"

    EVENT_TYPE: Final[str] = "chat.changed"

    # Reasons carried by chat.changed events
    REASON_CREATED: Final[str] = "created"
    REASON_MESSAGE: Final[str] = "message"
    REASON_READ: Final[str] = "read"
    REASON_TYPING: Final[str] = "typing"
    REASON_RECONCILED: Final[str] = "reconciled"


# =============================================================================
# Error Codes
# =============================================================================


class ErrorCode:
    """Error codes for ServiceResult failures."""

    INVALID_ARGUMENT: Final[str] = "INVALID_ARGUMENT"
    NOT_PARTICIPANT: Final[str] = "NOT_PARTICIPANT"
    NOT_FOUND: Final[str] = "NOT_FOUND"
