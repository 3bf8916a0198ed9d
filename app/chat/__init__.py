"""
Chat app: the chat synchronization core.

This app handles:
- Chat directory (find-or-create direct chats, group chats)
- Ordered message log with cursor pagination
- Read receipts and per-participant unread counters
- Ephemeral typing state with a short TTL
- Snapshot subscriptions over the channel layer
- Image uploads for image messages

Related apps:
    - identity: User model and directory

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.client import get_chat_client

    client = get_chat_client()
    chat = client.resolve_chat([ann.id, bob.id]).unwrap()
    client.send_message(chat.id, ann.id, "Ann", text="Hello!")
    client.mark_read(chat.id, bob.id)
"""
