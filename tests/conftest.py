"""
Pytest configuration for trendintel tests.

Django settings come from trendintel.settings_test (see pyproject.toml):
in-memory SQLite, LLM disabled, Apify disabled, no inter-batch delay.
"""

import pytest

from trendintel.etl.config import EtlConfig
from trendintel.etl.jobs import InMemoryJobTracker
from trendintel.etl.store import InMemoryTrendStore
from tests.helpers.fakes import RecordingSleep


@pytest.fixture
def enable_apify(settings):
    """Enable APIFY_ENABLED for tests that need to call client methods."""
    settings.APIFY_ENABLED = True
    yield
    settings.APIFY_ENABLED = False


@pytest.fixture
def store():
    return InMemoryTrendStore()


@pytest.fixture
def tracker():
    return InMemoryJobTracker()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def etl_config():
    """Inline, delay-free config with the default batch size."""
    return EtlConfig(batch_size=10, inter_batch_delay_seconds=0.0, max_workers=1)
