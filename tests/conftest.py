"""
Pytest configuration and shared fixtures for Voice Matrix tests.

This module provides:
- Environment setup (dev mode, quiet logging) before any app imports
- Fixtures for in-memory storage, the fake voice provider and a wired
  service container
"""

import os
import sys

import pytest

# Environment setup before any imports
os.environ["DEV_MODE"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["REQUEST_LOGGING_ENABLED"] = "false"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("VAPI_WEBHOOK_SECRET", None)

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture
def storage():
    from voicematrix.storage import InMemoryStorage

    return InMemoryStorage()


@pytest.fixture
def voice_provider():
    from tests.fakes import FakeVoiceProvider

    return FakeVoiceProvider()


@pytest.fixture
def settings():
    from voicematrix.config import Settings

    return Settings()
