"""
URL configuration for the chat service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        login/                     - Email/password login (JWT pair, marks online)
        refresh/                   - Refresh access token
        logout/                    - Mark offline
        me/                        - Current user (GET/PATCH)
    /api/v1/chat/                  - Chat endpoints
        users/                     - Users to chat with
        chats/                     - Chat list / find-or-create
        chats/{id}/                - Chat detail
        chats/{id}/messages/       - Message page / send
        chats/{id}/read/           - Mark chat as read
        chats/{id}/typing/         - Typing state
        chats/{id}/images/         - Image upload

WebSocket routes are declared in chat/routing.py.

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("identity.urls")),
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Chat Admin"
admin.site.site_title = "Chat Admin Portal"
admin.site.index_title = "Chats, messages and users"
