"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Make tests/fakes.py importable from every test package
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeMailboxClient, FakeMailboxFactory, FakeRedis  # noqa: E402

from outlook_vault.auth.cipher import Cipher  # noqa: E402
from outlook_vault.auth.session import SessionBinder  # noqa: E402
from outlook_vault.lib.config import (  # noqa: E402
    AppConfig,
    ExchangeConfig,
    RedisConfig,
    SecurityConfig,
    VaultSettings,
)
from outlook_vault.storage.calendar_registry import CalendarRegistry  # noqa: E402
from outlook_vault.storage.record_store import RecordStore  # noqa: E402

TEST_AES_KEY_HEX = "0123456789abcdef" * 4
TEST_SESSION_SECRET = "test-session-secret-not-for-production"
TEST_OWA_URL = "https://mail.example.com/owa"


@pytest.fixture
def security_config():
    """Security settings with a fixed test key."""
    return SecurityConfig(
        aes_key_hex=TEST_AES_KEY_HEX,
        session_secret=TEST_SESSION_SECRET,
    )


@pytest.fixture
def settings(security_config):
    """Complete, valid settings for building the app."""
    return VaultSettings(
        security=security_config,
        redis=RedisConfig(),
        exchange=ExchangeConfig(owa_url=TEST_OWA_URL, remote_timeout=5.0),
        app=AppConfig(cors_origins=("http://localhost:3000",)),
    )


@pytest.fixture
def cipher(security_config):
    """Cipher under the test key."""
    return Cipher(security_config.aes_key)


@pytest.fixture
def binder():
    """Session binder under the test secret."""
    return SessionBinder(TEST_SESSION_SECRET)


@pytest.fixture
def fake_redis():
    """Empty in-memory Redis."""
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    """Record store over the in-memory Redis."""
    return RecordStore(fake_redis, max_retries=3)


@pytest.fixture
def registry(store):
    """Calendar registry over the test store."""
    return CalendarRegistry(store)


@pytest.fixture
def mailbox_client():
    """Canned remote mailbox client."""
    return FakeMailboxClient()


@pytest.fixture
def client_factory(mailbox_client):
    """Client factory handing out the canned client."""
    return FakeMailboxFactory(mailbox_client)


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "contract: marks tests as contract tests (library mocking)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (full HTTP app, in-memory backends)"
    )
