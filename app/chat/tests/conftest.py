"""
Test configuration and fixtures for chat tests.

This module provides:
- Users (ann, bob, cara) and a user outside every chat (dave)
- Direct and group chats created through the services
- API clients authenticated as each user
- Clean cache (typing state) and channel layer for every test

Usage:
    def test_example(direct_chat, ann_api):
        response = ann_api.get(f"/api/v1/chat/chats/{direct_chat.id}/")
        assert response.status_code == 200
"""

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.cache import cache
from rest_framework.test import APIClient

from chat.client import get_chat_client
from chat.services import ConversationService
from identity.tests.factories import UserFactory


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_backends():
    """Empty the cache and the in-memory channel layer around each test."""
    cache.clear()
    layer = get_channel_layer()
    async_to_sync(layer.flush)()
    yield
    cache.clear()
    async_to_sync(layer.flush)()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def ann(db):
    return UserFactory(display_name="Ann")


@pytest.fixture
def bob(db):
    return UserFactory(display_name="Bob")


@pytest.fixture
def cara(db):
    return UserFactory(display_name="Cara")


@pytest.fixture
def dave(db):
    """A user who is not a participant in any fixture chat."""
    return UserFactory(display_name="Dave")


# =============================================================================
# Chat Fixtures
# =============================================================================


@pytest.fixture
def direct_chat(ann, bob):
    """Direct chat between Ann and Bob."""
    return ConversationService.resolve_chat([ann.id, bob.id]).data


@pytest.fixture
def group_chat(ann, bob, cara):
    """Group 'Team' created by Ann with Bob and Cara."""
    return ConversationService.resolve_chat(
        [ann.id, bob.id, cara.id], is_group=True, name="Team"
    ).data


@pytest.fixture
def chat_client():
    """The process-wide ChatClient."""
    return get_chat_client()


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


def _authenticated(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def ann_api(ann):
    return _authenticated(ann)


@pytest.fixture
def bob_api(bob):
    return _authenticated(bob)


@pytest.fixture
def dave_api(dave):
    return _authenticated(dave)
