"""Sending identities."""

import logging
from dataclasses import dataclass, field
from typing import Any

from .client import JmapClient
from .errors import NotFoundError
from .protocol import Method

logger = logging.getLogger("jmapmail.identity")


@dataclass
class Identity:
    id: str
    email: str
    name: str = ""
    reply_to: list[dict[str, str]] = field(default_factory=list)
    bcc: list[dict[str, str]] = field(default_factory=list)
    text_signature: str = ""
    html_signature: str = ""
    may_delete: bool = False

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> "Identity":
        return cls(
            id=str(data.get("id", "")),
            email=str(data.get("email") or ""),
            name=str(data.get("name") or ""),
            reply_to=list(data.get("replyTo") or []),
            bcc=list(data.get("bcc") or []),
            text_signature=str(data.get("textSignature") or ""),
            html_signature=str(data.get("htmlSignature") or ""),
            may_delete=bool(data.get("mayDelete", False)),
        )

    @property
    def signature(self) -> str:
        return self.html_signature or self.text_signature

    def as_address(self) -> dict[str, str]:
        address = {"email": self.email}
        if self.name:
            address["name"] = self.name
        return address


class IdentityResolver:
    """Chooses who a message is sent as.

    Identities are fetched on every call; the first one the server returns
    is the default.
    """

    def __init__(self, client: JmapClient):
        self._client = client

    async def list_identities(self) -> list[Identity]:
        batch, handle = await self._client.call(
            Method.IDENTITY_GET,
            {"accountId": self._client.account_id},
        )
        return [Identity.from_jmap(i) for i in batch.get(handle).list]

    async def default_identity(self, email: str | None = None) -> Identity:
        """Return the identity for ``email`` if one exists, else the default.

        Raises:
            NotFoundError: If the account has no identities at all.
        """
        identities = await self.list_identities()
        if not identities:
            raise NotFoundError("No identity found for sending")

        if email:
            wanted = email.strip().lower()
            for identity in identities:
                if identity.email.lower() == wanted:
                    return identity
            logger.debug(f"No identity for {email}, using default {identities[0].email}")
        return identities[0]
