"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures for conversation participants and outsiders
- Conversation fixtures (direct and group)
- API client helpers for authenticated requests
- Token helpers for WebSocket handshakes

Usage:
    def test_example(direct_conversation, alice_client):
        response = alice_client.get(f"/api/v1/chats/{direct_conversation.id}/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from chat.tests.factories import DirectConversationFactory, GroupConversationFactory


def access_token_for(user) -> str:
    """Issue a simplejwt access token for a user."""
    return str(RefreshToken.for_user(user).access_token)


def authenticated_client(user) -> APIClient:
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access_token_for(user)}")
    return client


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    return UserFactory(display_name="Alice")


@pytest.fixture
def bob(db):
    return UserFactory(display_name="Bob")


@pytest.fixture
def carol(db):
    return UserFactory(display_name="Carol")


@pytest.fixture
def outsider(db):
    """A user who is not a participant in any test conversation."""
    return UserFactory(display_name="Outsider")


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def direct_conversation(db, alice, bob):
    """Direct conversation between alice and bob."""
    return DirectConversationFactory(user1=alice, user2=bob)


@pytest.fixture
def group_conversation(db, alice, bob, carol):
    """Group conversation created by alice with bob and carol."""
    return GroupConversationFactory(created_by=alice, title="Crew", members=[bob, carol])


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def alice_client(alice):
    return authenticated_client(alice)


@pytest.fixture
def bob_client(bob):
    return authenticated_client(bob)


@pytest.fixture
def outsider_client(outsider):
    return authenticated_client(outsider)
