"""
Pagination for chat reads.

This module provides:
- MessageCursor: Opaque backward cursor for list_messages
- MessagePage: One page of messages, oldest first

Design Decisions:
    - Message pages walk backward from the newest message but each page is
      returned oldest-first, so an older page prepended to a newer one
      reproduces the unpaginated order
    - Cursors encode the per-chat sequence, which is the insertion
      tie-break for equal sent_at values
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat.models import Message


@dataclass(frozen=True)
class MessageCursor:
    """
    Position for backward message pagination.

    Points just before the oldest message of the previous page.
    """

    before_sequence: int

    def encode(self) -> str:
        """Encode cursor as urlsafe base64 JSON string."""
        json_str = json.dumps({"before": self.before_sequence})
        return base64.urlsafe_b64encode(json_str.encode()).decode()

    @classmethod
    def decode(cls, encoded: str) -> MessageCursor:
        """
        Decode cursor from base64 JSON string.

        Raises:
            ValueError: If the cursor is malformed
        """
        try:
            json_str = base64.urlsafe_b64decode(encoded.encode()).decode()
            data = json.loads(json_str)
            before = int(data["before"])
        except (binascii.Error, UnicodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError("Invalid cursor") from e
        if before < 1:
            raise ValueError("Invalid cursor")
        return cls(before_sequence=before)


@dataclass
class MessagePage:
    """
    A page of messages.

    Attributes:
        messages: Messages ordered oldest to newest
        next_cursor: Cursor for the next older page, None when exhausted
        has_more: Whether older messages exist
    """

    messages: list[Message] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False
