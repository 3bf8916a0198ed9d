"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/<conversation_id>/ - One conversation's messages and record
    ws/chats/ - The connected user's chat list

Authentication:
    JWT token passed as query parameter (?token=<jwt_access_token>) or as
    the second subprotocol after "jwt". JWTAuthMiddleware validates it and
    attaches the user to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/<uuid:conversation_id>/",
        consumers.ChatConsumer.as_asgi(),
    ),
    path(
        "ws/chats/",
        consumers.ChatListConsumer.as_asgi(),
    ),
]
