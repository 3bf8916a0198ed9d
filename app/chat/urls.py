"""
URL configuration for chat API.

URL Structure:
    /users/                      GET
    /chats/                      GET, POST
    /chats/{id}/                 GET
    /chats/{id}/messages/        GET, POST
    /chats/{id}/read/            POST
    /chats/{id}/typing/          POST
    /chats/{id}/images/          POST

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import ChatViewSet, UserListView

router = DefaultRouter()
router.register(r"chats", ChatViewSet, basename="chat")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    path("users/", UserListView.as_view(), name="user-list"),
]
