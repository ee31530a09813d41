"""Pytest configuration and fixtures for proxy tests."""

import asyncio
import os

# Required configuration must exist before the app module is imported.
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("PORT", "3000")

import pytest
from fastapi.testclient import TestClient

from launchpad_proxy.core.config import load_settings
from launchpad_proxy.core.errors import CollaboratorError
from launchpad_proxy.main import create_app
from launchpad_proxy.models.user import Identity, SubscriptionTier
from launchpad_proxy.services.quota_store import InMemoryQuotaStore


COMPLETION = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1700000000,
    "model": "gpt-4",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Hello there!"},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 9, "completion_tokens": 3, "total_tokens": 12},
}

MESSAGES = [{"role": "user", "content": "Hello"}]

FREE_AUTH = {"Authorization": "Bearer free-token"}
PRO_AUTH = {"Authorization": "Bearer pro-token"}


class ManualClock:
    """Monotonic clock controlled by the test."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentityProvider:
    def __init__(self, users):
        self.users = users
        self.error = None
        self.tokens = []

    async def validate_token(self, token):
        self.tokens.append(token)
        if self.error is not None:
            raise self.error
        return self.users.get(token)


class FakeProfileStore:
    def __init__(self, tiers):
        self.tiers = tiers
        self.error = None

    async def get_subscription_tier(self, identity_id):
        if self.error is not None:
            raise self.error
        return self.tiers.get(identity_id)


class FakeLogStore:
    def __init__(self):
        self.entries = []
        self.error = None

    async def append(self, entry):
        if self.error is not None:
            raise self.error
        self.entries.append(entry)


class FakeCompletionProvider:
    def __init__(self, response=None):
        self.response = response if response is not None else COMPLETION
        self.calls = []
        self.error = None

    async def complete(self, model, messages, temperature, max_tokens):
        self.calls.append(
            {"model": model, "messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        # yield to the loop so concurrent requests interleave
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings():
    return load_settings(
        supabase_url="https://project.supabase.co",
        supabase_service_key="service-key",
        openai_api_key="sk-test",
        port=3000,
        _env_file=None,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def quota_store(clock):
    return InMemoryQuotaStore(clock=clock)


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider({
        "free-token": Identity(id="user-free", email="free@example.com"),
        "pro-token": Identity(id="user-pro", email="pro@example.com"),
        "orphan-token": Identity(id="user-orphan"),
    })


@pytest.fixture
def profile_store():
    return FakeProfileStore({
        "user-free": SubscriptionTier.FREE,
        "user-pro": SubscriptionTier.PRO,
    })


@pytest.fixture
def log_store():
    return FakeLogStore()


@pytest.fixture
def completion_provider():
    return FakeCompletionProvider()


@pytest.fixture
def make_app(settings, identity_provider, profile_store, log_store, completion_provider, quota_store):
    """Build an app wired to the fake collaborators; settings may be overridden."""

    def _make_app(**overrides):
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        return create_app(
            app_settings,
            identity_provider=identity_provider,
            profile_store=profile_store,
            log_store=log_store,
            completion_provider=completion_provider,
            quota_store=quota_store,
        )

    return _make_app


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def collaborator_error(message: str = "upstream exploded: secret-internal-detail") -> CollaboratorError:
    return CollaboratorError(message)
