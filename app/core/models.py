"""
Abstract base models shared by the identity and chat apps.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)
    UUIDModel: BaseModel with a UUID primary key

Usage:
    from core.models import UUIDModel

    class Conversation(UUIDModel):
        name = models.CharField(max_length=50, blank=True)

Note:
    Records carrying opaque string ids in snapshots (chats, messages)
    use UUIDModel. Users keep integer keys.
"""

from __future__ import annotations

import uuid

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing creation/modification timestamps.

    Fields:
        created_at: Set when the row is first inserted
        updated_at: Refreshed on every save()

    Note:
        Queryset .update() calls bypass auto_now; include updated_at
        explicitly when it matters.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"


class UUIDModel(BaseModel):
    """BaseModel keyed by a random UUID."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta(BaseModel.Meta):
        abstract = True
