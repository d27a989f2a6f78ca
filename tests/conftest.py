"""Pytest configuration and fixtures."""

import os

import pytest

# Set before test modules are collected: importing the app reads settings
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["ARTEMIS_ENV"] = "test"
os.environ["FRONTEND_URLS"] = "http://localhost:5173"


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Give every test a fresh turn budget."""
    from artemis.core.rate_limiter import get_chat_rate_limiter

    get_chat_rate_limiter().reset()
    yield
