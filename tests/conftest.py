"""
Root conftest.py - shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."].
    • Every store is the in-memory adapter; no AWS, OpenAI, Stripe or Recall calls.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict
from unittest.mock import MagicMock

import pytest

# Before api_service.src.main is imported anywhere
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from adapters.in_memory_metadata_store import InMemoryMetadataStoreAdapter
from domain.models import (
    OrganizationMember,
    OrganizationRole,
    Plan,
    Subscription,
    SubscriptionStatus,
    UserContext,
)
from services.access_policy import AccessPolicy
from services.room_service import RoomService


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ---------------------------------------------------------------------------
# Minimal required settings kwargs for Settings(**BASE_SETTINGS_KWARGS)
# ---------------------------------------------------------------------------

BASE_SETTINGS_KWARGS: Dict[str, str] = {
    "llm_provider": "openai",
    "openai_api_key": "sk-test",
    "environment": "development",
}


@pytest.fixture()
def base_settings_kwargs() -> Dict[str, str]:
    """Provide the minimal kwargs needed to instantiate ``Settings``."""
    return {**BASE_SETTINGS_KWARGS}


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


# ---------------------------------------------------------------------------
# Sample transcript
# ---------------------------------------------------------------------------

SAMPLE_TRANSCRIPT_TEXT = (
    "Alice: Thanks everyone for joining the planning call.\n"
    "Bob: I'll send the revised budget to finance by Friday.\n"
    "Alice: Great. I will book the venue for the offsite.\n"
    "Carol: I can draft the agenda once the venue is confirmed.\n"
)


@pytest.fixture()
def sample_transcript() -> str:
    return SAMPLE_TRANSCRIPT_TEXT


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture()
def owner() -> UserContext:
    return UserContext(user_id="user-owner", email="owner@acme.com")


@pytest.fixture()
def guest() -> UserContext:
    return UserContext(user_id="user-guest", email="Guest@Acme.com")


# ---------------------------------------------------------------------------
# Stores and services
# ---------------------------------------------------------------------------

@pytest.fixture()
def store() -> InMemoryMetadataStoreAdapter:
    return InMemoryMetadataStoreAdapter()


@pytest.fixture()
def policy(store, clock) -> AccessPolicy:
    return AccessPolicy(organizations=store, subscriptions=store, usage=store, clock=clock)


@pytest.fixture()
def room_service(store, policy, clock) -> RoomService:
    return RoomService(store=store, access_policy=policy, clock=clock)


def grant_plan(store, user_id: str, plan: Plan = Plan.PRO) -> None:
    """Give ``user_id`` an active personal subscription."""
    store.put_subscription(
        Subscription(user_id=user_id, plan=plan, status=SubscriptionStatus.ACTIVE)
    )


def grant_enterprise(store, org_id: str, *users: UserContext) -> None:
    """Active enterprise subscription on ``org_id`` with ``users`` as members."""
    store.put_subscription(
        Subscription(organization_id=org_id, plan=Plan.ENTERPRISE, status=SubscriptionStatus.ACTIVE)
    )
    for index, user in enumerate(users):
        store.add_organization_member(
            OrganizationMember(
                organization_id=org_id,
                user_id=user.user_id,
                email=user.email,
                role=OrganizationRole.OWNER if index == 0 else OrganizationRole.MEMBER,
            )
        )


@pytest.fixture()
def mock_llm() -> MagicMock:
    """LLM provider returning two action items."""
    mock = MagicMock()
    mock.generate.return_value = (
        '[{"task": "Send revised budget", "assignee": "Bob", "deadline": "2026-03-13"},'
        ' {"task": "Book the venue", "assignee": "Alice", "deadline": null}]'
    )
    return mock
