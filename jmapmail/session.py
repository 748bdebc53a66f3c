"""JMAP session resource: where to send calls and which account to use."""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import JmapConfig
from .errors import TransportError
from .protocol import MAIL_CAPABILITY

logger = logging.getLogger("jmapmail.session")


@dataclass
class JmapSession:
    """An authenticated session as supplied by the caller.

    This package never performs authentication; the access token is taken
    as given.
    """
    api_url: str
    upload_url: str
    download_url: str
    account_id: str
    access_token: str = field(default="", repr=False)
    state: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], access_token: str) -> "JmapSession":
        """Build a session from the JSON session resource (RFC 8620 section 2)."""
        accounts = data.get("accounts") or {}
        primary_accounts = data.get("primaryAccounts") or {}

        account_id = primary_accounts.get(MAIL_CAPABILITY)
        if not account_id and accounts:
            # Fallback to first account
            account_id = next(iter(accounts.keys()))

        api_url = data.get("apiUrl")
        if not account_id or not api_url:
            raise ValueError("Could not determine account or API URL from session")

        return cls(
            api_url=api_url,
            upload_url=data.get("uploadUrl", ""),
            download_url=data.get("downloadUrl", ""),
            account_id=account_id,
            access_token=access_token,
            state=data.get("state", ""),
        )


async def fetch_session(
    config: JmapConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JmapSession:
    """Fetch the session resource with the configured bearer token."""
    if not config.api_token:
        raise ValueError(
            "JMAP API token required. Set the JMAPMAIL_API_TOKEN environment variable."
        )

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_seconds),
        transport=transport,
    ) as client:
        try:
            response = await client.get(
                config.session_url,
                headers={"Authorization": f"Bearer {config.api_token}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Session request failed: {e}") from e

    if response.is_error:
        raise TransportError(
            f"Session request failed: {response.status_code}",
            status_code=response.status_code,
        )

    session = JmapSession.from_dict(response.json(), config.api_token)
    logger.info(f"JMAP session established for account: {session.account_id}")
    return session
