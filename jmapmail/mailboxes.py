"""Mailbox model and the per-provider mailbox index."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .client import JmapClient
from .protocol import Method

logger = logging.getLogger("jmapmail.mailboxes")


class MailboxRole(str, Enum):
    """Well-known mailbox purposes (RFC 8621 / IANA mailbox roles)."""
    INBOX = "inbox"
    SENT = "sent"
    DRAFTS = "drafts"
    TRASH = "trash"
    JUNK = "junk"
    ARCHIVE = "archive"
    FLAGGED = "flagged"


MAILBOX_PROPERTIES = [
    "id",
    "name",
    "parentId",
    "role",
    "sortOrder",
    "totalEmails",
    "unreadEmails",
    "totalThreads",
    "unreadThreads",
    "isSubscribed",
]


def _int(value: Any) -> int:
    return value if isinstance(value, int) else 0


@dataclass
class Mailbox:
    id: str
    name: str
    parent_id: str | None = None
    role: str | None = None
    sort_order: int = 0
    total_emails: int = 0
    unread_emails: int = 0
    total_threads: int = 0
    unread_threads: int = 0
    is_subscribed: bool = True

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> "Mailbox":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or ""),
            parent_id=data.get("parentId") or None,
            role=data.get("role") or None,
            sort_order=_int(data.get("sortOrder")),
            total_emails=_int(data.get("totalEmails")),
            unread_emails=_int(data.get("unreadEmails")),
            total_threads=_int(data.get("totalThreads")),
            unread_threads=_int(data.get("unreadThreads")),
            is_subscribed=bool(data.get("isSubscribed", True)),
        )

    @property
    def is_system(self) -> bool:
        return self.role is not None


class MailboxCache:
    """In-memory index of all mailboxes, owned by one provider instance.

    The index is rebuilt wholesale rather than patched: any mailbox create
    or destroy calls ``invalidate()`` and the next lookup refetches.

    Two mailboxes with the same name (case-insensitively) resolve to the one
    indexed last. For roles the first mailbox indexed is authoritative.
    """

    def __init__(self, client: JmapClient):
        self._client = client
        self._lock = asyncio.Lock()
        self._generation = 0
        self._populated = False
        self._by_id: dict[str, Mailbox] = {}
        self._by_role: dict[str, Mailbox] = {}
        self._by_name: dict[str, Mailbox] = {}

    @property
    def populated(self) -> bool:
        return self._populated

    def invalidate(self) -> None:
        self._generation += 1
        self._populated = False

    async def ensure(self) -> None:
        """Populate the indices if they are not already populated.

        Population is single-flight: concurrent callers wait on one fetch.
        If the cache is invalidated while a fetch is in progress, that fetch
        is discarded and repeated.
        """
        if self._populated:
            return
        async with self._lock:
            while not self._populated:
                generation = self._generation
                mailboxes = await self._fetch()
                if generation == self._generation:
                    self._index(mailboxes)

    async def _fetch(self) -> list[Mailbox]:
        batch, handle = await self._client.call(
            Method.MAILBOX_GET,
            {"accountId": self._client.account_id, "properties": MAILBOX_PROPERTIES},
        )
        mailboxes = [Mailbox.from_jmap(m) for m in batch.get(handle).list]
        logger.debug(f"Fetched {len(mailboxes)} mailboxes")
        return mailboxes

    def _index(self, mailboxes: list[Mailbox]) -> None:
        by_id: dict[str, Mailbox] = {}
        by_role: dict[str, Mailbox] = {}
        by_name: dict[str, Mailbox] = {}
        for mailbox in mailboxes:
            by_id[mailbox.id] = mailbox
            by_name[mailbox.name.lower()] = mailbox
            if mailbox.role:
                if mailbox.role in by_role:
                    logger.warning(
                        f"Multiple mailboxes with role {mailbox.role}; keeping {by_role[mailbox.role].id}"
                    )
                else:
                    by_role[mailbox.role] = mailbox
        self._by_id, self._by_role, self._by_name = by_id, by_role, by_name
        self._populated = True

    async def all(self) -> list[Mailbox]:
        await self.ensure()
        return list(self._by_id.values())

    async def by_id(self, mailbox_id: str) -> Mailbox | None:
        await self.ensure()
        return self._by_id.get(mailbox_id)

    async def by_role(self, role: MailboxRole | str) -> Mailbox | None:
        await self.ensure()
        key = role.value if isinstance(role, MailboxRole) else role
        return self._by_role.get(key)

    async def by_name(self, name: str) -> Mailbox | None:
        await self.ensure()
        return self._by_name.get(name.lower())
