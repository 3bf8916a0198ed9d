"""
Chat application configuration.

This app provides the chat synchronization core:
- Direct (1:1) and group conversations
- Ordered message log with cursor pagination
- Read receipts and unread counts
- Typing state
- Snapshot subscriptions over the channel layer
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def ready(self):
        """
        Build the process-wide ChatClient.

        Views and consumers fetch it with chat.client.get_chat_client().
        """
        from chat.client import ChatClient

        self.client = ChatClient()
