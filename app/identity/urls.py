"""
URL configuration for identity app.

URL structure:
    /api/v1/auth/login/    - JWT sign-in (sets is_online)
    /api/v1/auth/refresh/  - JWT refresh
    /api/v1/auth/logout/   - Sign-out (clears is_online)
    /api/v1/auth/me/       - Current user
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from identity.views import LoginView, LogoutView, MeView

app_name = "identity"

urlpatterns = [
    path("login/", LoginView.as_view(), name="login"),
    path("refresh/", TokenRefreshView.as_view(), name="refresh"),
    path("logout/", LogoutView.as_view(), name="logout"),
    path("me/", MeView.as_view(), name="me"),
]
