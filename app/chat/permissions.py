"""
Permission classes for chat API.

Participation is the only access rule in the chat core: a user may read
or write a conversation if and only if they hold a Participant row in it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.models import Conversation, Message, Participant

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsConversationParticipant(permissions.BasePermission):
    """
    Allows access only to participants of the conversation.

    Works on Conversation, Participant and Message objects.
    """

    message = "You are not a participant in this chat"

    def has_object_permission(
        self, request: Request, view: APIView, obj: Conversation | Participant | Message
    ) -> bool:
        if not request.user.is_authenticated:
            return False

        if isinstance(obj, (Participant, Message)):
            conversation_id = obj.conversation_id
        else:
            conversation_id = obj.pk

        return Participant.objects.filter(
            conversation_id=conversation_id,
            user=request.user,
        ).exists()
