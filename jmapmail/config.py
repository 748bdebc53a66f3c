"""Configuration management for jmapmail."""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SESSION_URL = "https://api.fastmail.com/jmap/session"


@dataclass
class JmapConfig:
    """JMAP server configuration.

    The API token MUST be provided via environment variable:
    - JMAPMAIL_API_TOKEN: bearer token for the JMAP session
    """
    session_url: str = DEFAULT_SESSION_URL
    api_token: str = field(default="", repr=False)
    timeout_seconds: float = 30.0

    def __post_init__(self):
        """Load credentials from environment variables."""
        env_token = os.environ.get("JMAPMAIL_API_TOKEN")
        if env_token:
            self.api_token = env_token


@dataclass
class ProviderConfig:
    thread_page_size: int = 50
    message_page_size: int = 20
    bulk_sender_cap: int = 500  # Max ids fetched per sender per bulk call
    label_prefix: str = "jmapmail"  # Parent name for system labels we create


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Config:
    jmap: JmapConfig = field(default_factory=JmapConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path) -> Config:
    """Load configuration from a TOML file."""
    path = Path(path)
    with path.open("rb") as f:
        data = tomllib.load(f)

    jmap_data = data.get("jmap", {})
    if "api_token" in jmap_data:
        logger.warning("Ignoring api_token in config file; set JMAPMAIL_API_TOKEN instead")
    jmap_config = JmapConfig(
        session_url=jmap_data.get("session_url", DEFAULT_SESSION_URL),
        timeout_seconds=jmap_data.get("timeout_seconds", 30.0),
    )

    provider_data = data.get("provider", {})
    provider_config = ProviderConfig(
        thread_page_size=provider_data.get("thread_page_size", 50),
        message_page_size=provider_data.get("message_page_size", 20),
        bulk_sender_cap=provider_data.get("bulk_sender_cap", 500),
        label_prefix=provider_data.get("label_prefix", "jmapmail"),
    )

    logging_data = data.get("logging", {})
    logging_config = LoggingConfig(
        level=str(logging_data.get("level", "INFO")).upper(),
    )

    return Config(
        jmap=jmap_config,
        provider=provider_config,
        logging=logging_config,
    )
