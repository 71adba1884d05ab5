"""Pytest configuration and fixtures."""

import os

import pytest

from tests.fakes.fake_db import FakeCatalog, FakeConversationStore
from tests.fixtures_cards import BRAIN_ID, CONVERSATION_ID, sample_brain, sample_catalog


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["BRAIN_CHAT_ENV"] = "test"


@pytest.fixture
def catalog():
    """Sample card catalog, one card per known type."""
    return sample_catalog()


@pytest.fixture
def fake_catalog(catalog):
    return FakeCatalog(brains={BRAIN_ID: sample_brain()}, cards={BRAIN_ID: catalog})


@pytest.fixture
def fake_store():
    store = FakeConversationStore()
    store.add_conversation(BRAIN_ID, CONVERSATION_ID)
    return store
