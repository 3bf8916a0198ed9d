"""Tests for WebSocket JWT authentication."""

from asgiref.sync import async_to_sync
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken

from chat.middleware import (
    JWTAuthMiddleware,
    get_token_from_query,
    get_token_from_subprotocol,
    get_user_from_token,
)
from identity.tests.factories import UserFactory


class TestTokenExtraction:
    def test_query_string(self):
        assert get_token_from_query({"query_string": b"token=abc&x=1"}) == "abc"

    def test_query_string_without_token(self):
        assert get_token_from_query({"query_string": b"x=1"}) is None
        assert get_token_from_query({}) is None

    def test_subprotocol(self):
        assert get_token_from_subprotocol({"subprotocols": ["jwt", "abc"]}) == "abc"

    def test_subprotocol_needs_jwt_marker(self):
        assert get_token_from_subprotocol({"subprotocols": ["graphql-ws", "abc"]}) is None
        assert get_token_from_subprotocol({"subprotocols": ["jwt"]}) is None


class TestGetUserFromToken:
    def test_valid_access_token(self, db):
        user = UserFactory()

        assert async_to_sync(get_user_from_token)(str(AccessToken.for_user(user))) == user

    def test_garbage_token_is_anonymous(self, db):
        assert isinstance(async_to_sync(get_user_from_token)("not-a-jwt"), AnonymousUser)

    def test_refresh_token_is_not_accepted(self, db):
        user = UserFactory()

        result = async_to_sync(get_user_from_token)(str(RefreshToken.for_user(user)))

        assert isinstance(result, AnonymousUser)

    def test_inactive_user_is_anonymous(self, db):
        user = UserFactory(is_active=False)

        result = async_to_sync(get_user_from_token)(str(AccessToken.for_user(user)))

        assert isinstance(result, AnonymousUser)


class TestJWTAuthMiddleware:
    def _run(self, scope):
        seen = {}

        async def inner(scope, receive, send):
            seen["user"] = scope["user"]

        async def noop(*args):
            return None

        async_to_sync(JWTAuthMiddleware(inner))(scope, noop, noop)
        return seen["user"]

    def test_token_sets_user(self, db):
        user = UserFactory()
        token = str(AccessToken.for_user(user))

        assert self._run({"type": "websocket", "query_string": f"token={token}".encode()}) == user

    def test_no_token_is_anonymous(self, db):
        assert isinstance(self._run({"type": "websocket", "query_string": b""}), AnonymousUser)

    def test_existing_user_kept_without_token(self, db):
        user = UserFactory()

        assert self._run({"type": "websocket", "query_string": b"", "user": user}) == user
