"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from fake_jmap import TOKEN, FakeJmapServer
from jmapmail.client import JmapClient
from jmapmail.config import Config, JmapConfig, ProviderConfig
from jmapmail.fastmail import FastmailProvider


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def server():
    """A fake JMAP account with the usual role mailboxes and one identity."""
    fake = FakeJmapServer()
    fake.add_standard_mailboxes()
    fake.add_identity("id-1", "me@example.com", "Me")
    return fake


@pytest.fixture
def provider_config():
    return ProviderConfig(thread_page_size=10, message_page_size=5, bulk_sender_cap=3)


@pytest_asyncio.fixture
async def client(server):
    async with JmapClient(server.session(), transport=server.transport()) as jmap_client:
        yield jmap_client


@pytest_asyncio.fixture
async def provider(client, provider_config):
    return FastmailProvider(client, provider_config)


@pytest.fixture
def sample_config(monkeypatch):
    """A configuration whose token matches the fake server."""
    monkeypatch.setenv("JMAPMAIL_API_TOKEN", TOKEN)
    return Config(
        jmap=JmapConfig(session_url="https://jmap.test/jmap/session"),
        provider=ProviderConfig(bulk_sender_cap=3),
    )


@pytest.fixture
def sample_config_toml(temp_dir, monkeypatch):
    """Create a sample TOML config file."""
    # Token must come from environment variable
    monkeypatch.setenv("JMAPMAIL_API_TOKEN", "secret-token")

    config_path = temp_dir / "config.toml"
    config_path.write_text('''
[jmap]
session_url = "https://jmap.test/jmap/session"
timeout_seconds = 10

[provider]
thread_page_size = 25
message_page_size = 15
bulk_sender_cap = 100
label_prefix = "Robot"

[logging]
level = "debug"
''')
    return config_path
