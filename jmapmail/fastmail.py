"""Fastmail (JMAP) implementation of EmailProvider."""

import base64
import logging
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Any

from .blob import BlobTransfer
from .client import JmapClient
from .compose import (
    build_email,
    prefixed_subject,
    reply_threading,
    threading_headers,
)
from .config import ProviderConfig
from .errors import JmapError, MutationError, NotFoundError, SendError
from .identity import Identity, IdentityResolver
from .mailboxes import Mailbox, MailboxCache, MailboxRole
from .models import (
    AttachmentData,
    BulkResult,
    EmailLabel,
    EmailSignature,
    EmailThread,
    Folder,
    LabelResult,
    MessagePage,
    MessageRef,
    OutgoingAttachment,
    ParsedMessage,
    ReplyContext,
    SentMessage,
    ThreadPage,
    ThreadQuery,
    UnsupportedResult,
)
from .mutations import (
    MessagePatch,
    archive_patch,
    build_update,
    label_patch,
    move_patch,
    read_patch,
    star_patch,
    unarchive_patch,
)
from .normalize import EMAIL_PROPERTIES, FLAGGED, SEEN, parse_jmap_email
from .pagination import PageCursor
from .protocol import Method, QueryResult, SetResult, creation_reference
from .threads import assemble_thread, group_into_threads

logger = logging.getLogger("jmapmail.fastmail")

# ThreadQuery.type values mapped to mailbox roles
QUERY_TYPE_ROLES = {
    "inbox": MailboxRole.INBOX,
    "sent": MailboxRole.SENT,
    "draft": MailboxRole.DRAFTS,
    "drafts": MailboxRole.DRAFTS,
    "trash": MailboxRole.TRASH,
    "spam": MailboxRole.JUNK,
    "junk": MailboxRole.JUNK,
    "archive": MailboxRole.ARCHIVE,
}

NEWEST_FIRST = [{"property": "receivedAt", "isAscending": False}]
OLDEST_FIRST = [{"property": "receivedAt", "isAscending": True}]

UNSUPPORTED_FILTERS = "Server-side filters are not available over JMAP"
UNSUPPORTED_PUSH = "Push notifications are not implemented for JMAP"
UNSUPPORTED_HISTORY = "JMAP has no Gmail-style history; use Email/changes"


def utc_date(value: datetime | str | None) -> str | None:
    """Format a date for JMAP UTCDate filters. Naive datetimes are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def bare_address(value: str) -> str:
    """``"Ann <ann@x.com>"`` -> ``"ann@x.com"``."""
    return parseaddr(value)[1].strip().lower()


class FastmailProvider:
    """EmailProvider over a JMAP account.

    Mailbox ids are exposed as label ids. A message may sit in several
    mailboxes at once, so labels map onto memberships and archiving means
    leaving the inbox.
    """

    def __init__(self, client: JmapClient, config: ProviderConfig | None = None):
        self.client = client
        self.config = config or ProviderConfig()
        self.mailboxes = MailboxCache(client)
        self.identities = IdentityResolver(client)
        self.blobs = BlobTransfer(client)
        self._system_labels: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "fastmail"

    @property
    def account_id(self) -> str:
        return self.client.account_id

    # --- Query helpers ---

    def _email_get_args(self, ids: Any, properties: list[str] | None = None) -> dict[str, Any]:
        return {
            "accountId": self.account_id,
            "ids": ids,
            "properties": properties or EMAIL_PROPERTIES,
            "fetchTextBodyValues": True,
            "fetchHTMLBodyValues": True,
        }

    async def _query_and_get(
        self,
        filter: dict[str, Any] | None,
        *,
        sort: list[dict[str, Any]] | None = None,
        limit: int | None = None,
        position: int | None = None,
        collapse_threads: bool = False,
        properties: list[str] | None = None,
    ) -> tuple[QueryResult, list[dict[str, Any]]]:
        """Run Email/query and a chained Email/get in one exchange."""
        request = self.client.new_request()
        query = request.add(
            Method.EMAIL_QUERY,
            {
                "accountId": self.account_id,
                "filter": filter,
                "sort": sort or NEWEST_FIRST,
                "collapseThreads": collapse_threads or None,
                "position": position,
                "limit": limit,
                "calculateTotal": True,
            },
        )
        get = request.add(Method.EMAIL_GET, self._email_get_args(query.ref("/ids"), properties))
        batch = await self.client.execute(request)
        return batch.query(query), batch.get(get).list

    async def _query_ids(self, filter: dict[str, Any] | None, limit: int | None = None) -> list[str]:
        batch, handle = await self.client.call(
            Method.EMAIL_QUERY,
            {
                "accountId": self.account_id,
                "filter": filter,
                "sort": NEWEST_FIRST,
                "limit": limit,
            },
        )
        return batch.query(handle).ids

    async def _get_emails(self, message_ids: list[str]) -> list[dict[str, Any]]:
        if not message_ids:
            return []
        batch, handle = await self.client.call(Method.EMAIL_GET, self._email_get_args(message_ids))
        return batch.get(handle).list

    async def _thread_message_ids(self, thread_id: str) -> list[str]:
        return await self._query_ids({"inThread": thread_id})

    async def _role_id(self, role: MailboxRole) -> str | None:
        mailbox = await self.mailboxes.by_role(role)
        return mailbox.id if mailbox else None

    async def _messages_in(self, role: MailboxRole, limit: int) -> list[ParsedMessage]:
        mailbox_id = await self._role_id(role)
        if not mailbox_id:
            logger.warning(f"No {role.value} mailbox found")
            return []
        _, emails = await self._query_and_get({"inMailbox": mailbox_id}, limit=limit)
        return [parse_jmap_email(e) for e in emails]

    @staticmethod
    def _message_filter(
        *,
        mailbox_id: str | None = None,
        text: str | None = None,
        from_email: str | None = None,
        before: datetime | str | None = None,
        after: datetime | str | None = None,
        is_unread: bool | None = None,
    ) -> dict[str, Any] | None:
        """One FilterCondition; JMAP ANDs the properties of a condition."""
        condition: dict[str, Any] = {}
        if mailbox_id:
            condition["inMailbox"] = mailbox_id
        if text:
            condition["text"] = text
        if from_email:
            condition["from"] = from_email
        if before:
            condition["before"] = utc_date(before)
        if after:
            condition["after"] = utc_date(after)
        if is_unread is True:
            condition["notKeyword"] = SEEN
        elif is_unread is False:
            condition["hasKeyword"] = SEEN
        return condition or None

    # --- Threads ---

    async def get_threads(self, folder_id: str | None = None, limit: int | None = None) -> list[EmailThread]:
        """Threads in a mailbox (inbox by default), newest first.

        Each thread carries the representative message of a collapsed query.
        """
        mailbox_id = folder_id or await self._role_id(MailboxRole.INBOX)
        if not mailbox_id:
            logger.warning("No inbox mailbox found")
            return []

        _, emails = await self._query_and_get(
            {"inMailbox": mailbox_id},
            collapse_threads=True,
            limit=limit or self.config.thread_page_size,
        )
        return group_into_threads(parse_jmap_email(e) for e in emails)

    async def get_thread(self, thread_id: str) -> EmailThread:
        """All messages of a thread, oldest first.

        Raises:
            NotFoundError: If the thread has no messages
        """
        _, emails = await self._query_and_get({"inThread": thread_id}, sort=OLDEST_FIRST)
        if not emails:
            raise NotFoundError(f"Thread not found: {thread_id}")
        return assemble_thread(thread_id, [parse_jmap_email(e) for e in emails])

    async def get_threads_with_query(
        self,
        query: ThreadQuery | None = None,
        max_results: int | None = None,
        page_token: str | None = None,
    ) -> ThreadPage:
        query = query or ThreadQuery()
        cursor = PageCursor.from_token(page_token, max_results or self.config.thread_page_size)

        mailbox_id = query.label_id
        if not mailbox_id and query.type and query.type.lower() in QUERY_TYPE_ROLES:
            role = QUERY_TYPE_ROLES[query.type.lower()]
            mailbox_id = await self._role_id(role)
            if not mailbox_id:
                logger.warning(f"No {role.value} mailbox found")
                return ThreadPage(threads=[])

        filter = self._message_filter(
            mailbox_id=mailbox_id,
            text=query.text,
            from_email=query.from_email,
            before=query.before,
            after=query.after,
            is_unread=query.is_unread,
        )
        if query.type and query.type.lower() == "starred":
            starred = {"hasKeyword": FLAGGED}
            if filter and "hasKeyword" in filter:
                filter = {"operator": "AND", "conditions": [filter, starred]}
            else:
                filter = {**(filter or {}), **starred}

        result, emails = await self._query_and_get(
            filter,
            collapse_threads=True,
            position=cursor.offset,
            limit=cursor.limit,
        )
        threads = group_into_threads(parse_jmap_email(e) for e in emails)
        return ThreadPage(
            threads=threads,
            next_page_token=cursor.next_token(len(result.ids), result.total),
        )

    async def get_threads_with_participant(self, participant_email: str, max_threads: int = 5) -> list[EmailThread]:
        """Recent threads where the address appears as sender or recipient."""
        filter = {
            "operator": "OR",
            "conditions": [
                {"from": participant_email},
                {"to": participant_email},
                {"cc": participant_email},
            ],
        }
        _, emails = await self._query_and_get(filter, limit=max_threads * 3)
        return group_into_threads((parse_jmap_email(e) for e in emails), max_threads=max_threads)

    async def get_threads_from_sender_with_subject(self, sender: str, limit: int) -> list[dict[str, str]]:
        _, emails = await self._query_and_get(
            {"from": sender},
            collapse_threads=True,
            limit=limit,
            properties=["id", "threadId", "subject", "preview"],
        )
        return [
            {
                "id": str(e.get("threadId") or ""),
                "snippet": str(e.get("preview") or ""),
                "subject": str(e.get("subject") or ""),
            }
            for e in emails
        ]

    async def get_thread_messages(self, thread_id: str) -> list[ParsedMessage]:
        return (await self.get_thread(thread_id)).messages

    async def get_thread_messages_in_inbox(self, thread_id: str) -> list[ParsedMessage]:
        inbox_id = await self._role_id(MailboxRole.INBOX)
        if not inbox_id:
            return []
        messages = await self.get_thread_messages(thread_id)
        return [m for m in messages if inbox_id in m.label_ids]

    # --- Labels and folders ---

    @staticmethod
    def _to_label(mailbox: Mailbox) -> EmailLabel:
        return EmailLabel(
            id=mailbox.id,
            name=mailbox.name,
            type="system" if mailbox.is_system else "user",
            threads_total=mailbox.total_threads,
        )

    async def get_labels(self) -> list[EmailLabel]:
        """Every mailbox except role mailboxes other than archive."""
        return [
            self._to_label(m)
            for m in await self.mailboxes.all()
            if m.role is None or m.role == MailboxRole.ARCHIVE.value
        ]

    async def get_label_by_id(self, label_id: str) -> EmailLabel | None:
        mailbox = await self.mailboxes.by_id(label_id)
        return self._to_label(mailbox) if mailbox else None

    async def get_label_by_name(self, name: str) -> EmailLabel | None:
        mailbox = await self.mailboxes.by_name(name)
        return self._to_label(mailbox) if mailbox else None

    async def create_label(self, name: str, parent_id: str | None = None) -> EmailLabel:
        """Create a mailbox and invalidate the cache.

        Raises:
            MutationError: If the server refuses the mailbox
        """
        batch, handle = await self.client.call(
            Method.MAILBOX_SET,
            {
                "accountId": self.account_id,
                "create": {
                    "newMailbox": {
                        "name": name,
                        "parentId": parent_id,
                        "isSubscribed": True,
                    }
                },
            },
        )
        result = batch.set(handle)
        created = result.created.get("newMailbox")
        if not created or not created.get("id"):
            error = result.not_created.get("newMailbox")
            detail = f"{error.type}: {error.description}" if error else "no id returned"
            raise MutationError(f"Failed to create label {name!r}: {detail}")

        self.mailboxes.invalidate()
        logger.info(f"Created label {name} ({created['id']})")
        return EmailLabel(id=str(created["id"]), name=name, type="user", threads_total=0)

    async def delete_label(self, label_id: str) -> None:
        """Destroy a mailbox.

        Raises:
            NotFoundError: If the mailbox does not exist
            MutationError: If the server refuses to destroy it
        """
        batch, handle = await self.client.call(
            Method.MAILBOX_SET,
            {"accountId": self.account_id, "destroy": [label_id]},
        )
        result = batch.set(handle)
        error = result.not_destroyed.get(label_id)
        if error is not None:
            if error.type == "notFound":
                raise NotFoundError(f"Label not found: {label_id}")
            raise MutationError(f"Failed to delete label {label_id}: {error.type}: {error.description}")

        self.mailboxes.invalidate()
        logger.info(f"Deleted label {label_id}")

    async def get_or_create_system_label(self, key: str) -> str:
        """Id of the ``<label_prefix>/<key>`` mailbox, created on first use."""
        if key in self._system_labels:
            return self._system_labels[key]

        name = f"{self.config.label_prefix}/{key}"
        label = await self.get_label_by_name(name)
        if label is None:
            label = await self.create_label(name)
        self._system_labels[key] = label.id
        return label.id

    async def get_folders(self) -> list[Folder]:
        """Mailboxes as a tree; orphans whose parent is unknown become roots."""
        mailboxes = sorted(await self.mailboxes.all(), key=lambda m: (m.sort_order, m.name.lower()))
        folders = {m.id: Folder(id=m.id, display_name=m.name) for m in mailboxes}

        roots: list[Folder] = []
        for mailbox in mailboxes:
            folder = folders[mailbox.id]
            parent = folders.get(mailbox.parent_id) if mailbox.parent_id else None
            if parent is not None:
                parent.child_folders.append(folder)
            else:
                roots.append(folder)
        return roots

    async def get_or_create_folder_id_by_name(self, folder_name: str) -> str:
        mailbox = await self.mailboxes.by_name(folder_name)
        if mailbox is not None:
            return mailbox.id
        return (await self.create_label(folder_name)).id

    # --- Messages ---

    async def get_message(self, message_id: str) -> ParsedMessage:
        emails = await self._get_emails([message_id])
        if not emails:
            raise NotFoundError(f"Message not found: {message_id}")
        return parse_jmap_email(emails[0])

    async def get_messages_batch(self, message_ids: list[str]) -> list[ParsedMessage]:
        return [parse_jmap_email(e) for e in await self._get_emails(message_ids)]

    async def get_previous_conversation_messages(self, message_ids: list[str]) -> list[ParsedMessage]:
        return await self.get_messages_batch(message_ids)

    async def get_message_by_rfc822_message_id(self, rfc822_message_id: str) -> ParsedMessage | None:
        _, emails = await self._query_and_get(
            {"header": ["Message-ID", rfc822_message_id]},
            limit=1,
        )
        return parse_jmap_email(emails[0]) if emails else None

    async def get_original_message(self, original_message_id: str | None) -> ParsedMessage | None:
        if not original_message_id:
            return None
        return await self.get_message_by_rfc822_message_id(original_message_id)

    async def get_sent_messages(self, max_results: int = 20) -> list[ParsedMessage]:
        return await self._messages_in(MailboxRole.SENT, max_results)

    async def get_inbox_messages(self, max_results: int = 20) -> list[ParsedMessage]:
        return await self._messages_in(MailboxRole.INBOX, max_results)

    async def get_drafts(self, max_results: int = 50) -> list[ParsedMessage]:
        return await self._messages_in(MailboxRole.DRAFTS, max_results)

    async def get_draft(self, draft_id: str) -> ParsedMessage | None:
        try:
            return await self.get_message(draft_id)
        except NotFoundError:
            return None

    async def delete_draft(self, draft_id: str) -> None:
        batch, handle = await self.client.call(
            Method.EMAIL_SET,
            {"accountId": self.account_id, "destroy": [draft_id]},
        )
        error = batch.set(handle).not_destroyed.get(draft_id)
        if error is not None and error.type != "notFound":
            raise MutationError(f"Failed to delete draft {draft_id}: {error.type}")

    async def get_sent_message_ids(
        self,
        max_results: int = 50,
        after: datetime | str | None = None,
        before: datetime | str | None = None,
    ) -> list[MessageRef]:
        sent_id = await self._role_id(MailboxRole.SENT)
        if not sent_id:
            return []
        _, emails = await self._query_and_get(
            self._message_filter(mailbox_id=sent_id, after=after, before=before),
            limit=max_results,
            properties=["id", "threadId"],
        )
        return [MessageRef(id=str(e.get("id", "")), thread_id=str(e.get("threadId", ""))) for e in emails]

    async def get_sent_threads_excluding(
        self,
        exclude_to_emails: list[str] | None = None,
        exclude_from_emails: list[str] | None = None,
        max_results: int = 100,
    ) -> list[EmailThread]:
        """Sent threads, skipping messages to or from the excluded addresses."""
        exclude_to = {e.lower() for e in exclude_to_emails or []}
        exclude_from = {e.lower() for e in exclude_from_emails or []}

        messages = await self.get_sent_messages(max_results)

        def excluded(message: ParsedMessage) -> bool:
            recipients = message.headers.get("to", "").lower()
            sender = message.headers.get("from", "").lower()
            return any(e in recipients for e in exclude_to) or any(e in sender for e in exclude_from)

        return group_into_threads(m for m in messages if not excluded(m))

    async def _paginated_messages(
        self,
        filter: dict[str, Any] | None,
        max_results: int | None,
        page_token: str | None,
    ) -> MessagePage:
        cursor = PageCursor.from_token(page_token, max_results or self.config.message_page_size)
        result, emails = await self._query_and_get(filter, position=cursor.offset, limit=cursor.limit)
        return MessagePage(
            messages=[parse_jmap_email(e) for e in emails],
            next_page_token=cursor.next_token(len(result.ids), result.total),
        )

    async def get_messages_with_pagination(
        self,
        query: str | None = None,
        max_results: int | None = None,
        page_token: str | None = None,
        before: datetime | str | None = None,
        after: datetime | str | None = None,
    ) -> MessagePage:
        filter = self._message_filter(text=query, before=before, after=after)
        return await self._paginated_messages(filter, max_results, page_token)

    async def get_messages_from_sender(
        self,
        sender_email: str,
        max_results: int | None = None,
        page_token: str | None = None,
        before: datetime | str | None = None,
        after: datetime | str | None = None,
    ) -> MessagePage:
        filter = self._message_filter(from_email=sender_email, before=before, after=after)
        return await self._paginated_messages(filter, max_results, page_token)

    # --- Mutations ---

    async def _apply(self, message_ids: list[str], patch: MessagePatch) -> SetResult | None:
        """One Email/set update for every id. Per-message rejections are logged."""
        if not message_ids or patch.is_empty:
            return None

        batch, handle = await self.client.call(
            Method.EMAIL_SET,
            {"accountId": self.account_id, "update": build_update(message_ids, patch)},
        )
        result = batch.set(handle)
        for message_id, error in result.not_updated.items():
            logger.warning(f"Update rejected for {message_id}: {error.type} {error.description}")
        return result

    async def _apply_to_thread(self, thread_id: str, patch: MessagePatch) -> int:
        message_ids = await self._thread_message_ids(thread_id)
        if not message_ids:
            logger.debug(f"Thread {thread_id} has no messages")
            return 0
        result = await self._apply(message_ids, patch)
        return len(result.updated) if result else 0

    async def _archive_patch(self) -> MessagePatch | None:
        inbox_id = await self._role_id(MailboxRole.INBOX)
        if not inbox_id:
            logger.warning("No inbox mailbox found; nothing to archive from")
            return None
        return archive_patch(inbox_id, await self._role_id(MailboxRole.ARCHIVE))

    async def _move_to_role_patch(self, role: MailboxRole) -> MessagePatch | None:
        target_id = await self._role_id(role)
        if not target_id:
            logger.warning(f"No {role.value} mailbox found")
            return None
        return move_patch(target_id, await self._role_id(MailboxRole.INBOX))

    async def _move_to_folder_patch(self, folder_name: str) -> MessagePatch | None:
        folder = await self.mailboxes.by_name(folder_name)
        if folder is None:
            logger.warning(f"Folder not found: {folder_name}")
            return None
        return move_patch(folder.id, await self._role_id(MailboxRole.INBOX))

    async def archive_thread(self, thread_id: str) -> None:
        patch = await self._archive_patch()
        if patch is not None:
            await self._apply_to_thread(thread_id, patch)

    async def archive_thread_with_label(self, thread_id: str, label_id: str | None = None) -> None:
        patch = await self._archive_patch()
        if patch is None:
            return
        if label_id:
            patch = patch.merge(label_patch(label_id))
        await self._apply_to_thread(thread_id, patch)

    async def archive_message(self, message_id: str) -> None:
        patch = await self._archive_patch()
        if patch is not None:
            await self._apply([message_id], patch)

    async def unarchive_thread(self, thread_id: str) -> None:
        inbox_id = await self._role_id(MailboxRole.INBOX)
        if not inbox_id:
            logger.warning("No inbox mailbox found")
            return
        await self._apply_to_thread(thread_id, unarchive_patch(inbox_id, await self._role_id(MailboxRole.ARCHIVE)))

    async def unarchive_message(self, message_id: str) -> None:
        inbox_id = await self._role_id(MailboxRole.INBOX)
        if not inbox_id:
            logger.warning("No inbox mailbox found")
            return
        await self._apply([message_id], unarchive_patch(inbox_id, await self._role_id(MailboxRole.ARCHIVE)))

    async def block_unsubscribed_email(self, message_id: str) -> None:
        await self.archive_message(message_id)

    async def trash_thread(self, thread_id: str) -> None:
        patch = await self._move_to_role_patch(MailboxRole.TRASH)
        if patch is not None:
            await self._apply_to_thread(thread_id, patch)

    async def trash_message(self, message_id: str) -> None:
        patch = await self._move_to_role_patch(MailboxRole.TRASH)
        if patch is not None:
            await self._apply([message_id], patch)

    async def mark_spam(self, thread_id: str) -> None:
        patch = await self._move_to_role_patch(MailboxRole.JUNK)
        if patch is not None:
            await self._apply_to_thread(thread_id, patch)

    async def mark_read(self, thread_id: str) -> None:
        await self.mark_read_thread(thread_id, read=True)

    async def mark_read_thread(self, thread_id: str, read: bool = True) -> None:
        await self._apply_to_thread(thread_id, read_patch(read))

    async def mark_read_message(self, message_id: str, read: bool = True) -> None:
        await self._apply([message_id], read_patch(read))

    async def star_message(self, message_id: str, starred: bool = True) -> None:
        await self._apply([message_id], star_patch(starred))

    async def star_thread(self, thread_id: str, starred: bool = True) -> None:
        await self._apply_to_thread(thread_id, star_patch(starred))

    async def _try_label(self, message_id: str, label_id: str) -> bool:
        result = await self._apply([message_id], label_patch(label_id))
        error = result.not_updated.get(message_id) if result else None
        if error is None:
            return True
        if error.type == "notFound":
            raise NotFoundError(f"Message not found: {message_id}")
        return False

    async def label_message(
        self, message_id: str, label_id: str, label_name: str | None = None
    ) -> LabelResult:
        """Add a label; if the id is stale, re-resolve by name and retry once.

        Raises:
            MutationError: If the label cannot be applied and there is no
                name to fall back on, or the retry also fails
            NotFoundError: If the message or the named label does not exist
        """
        if await self.mailboxes.by_id(label_id) is not None:
            if await self._try_label(message_id, label_id):
                return LabelResult()
            logger.warning(f"Label {label_id} was rejected for message {message_id}")
        else:
            logger.warning(f"Label {label_id} not found in mailbox cache")

        if not label_name:
            raise MutationError(f"Could not apply label {label_id} to {message_id} and no label name given")

        self.mailboxes.invalidate()
        mailbox = await self.mailboxes.by_name(label_name)
        if mailbox is None:
            raise NotFoundError(f"Label not found: {label_name}")

        if not await self._try_label(message_id, mailbox.id):
            raise MutationError(f"Failed to apply label {label_name} ({mailbox.id}) to {message_id}")

        logger.info(f"Applied label {label_name} by name; id {label_id} was stale, now {mailbox.id}")
        return LabelResult(used_fallback=True, actual_label_id=mailbox.id)

    async def remove_message_label(self, message_id: str, label_id: str) -> None:
        await self._apply([message_id], label_patch(label_id, apply=False))

    async def remove_thread_label(self, thread_id: str, label_id: str) -> None:
        await self.remove_thread_labels(thread_id, [label_id])

    async def remove_thread_labels(self, thread_id: str, label_ids: list[str]) -> None:
        patch = MessagePatch()
        for label_id in label_ids:
            patch = patch.merge(label_patch(label_id, apply=False))
        await self._apply_to_thread(thread_id, patch)

    async def move_thread_to_folder(self, thread_id: str, folder_name: str) -> None:
        patch = await self._move_to_folder_patch(folder_name)
        if patch is not None:
            await self._apply_to_thread(thread_id, patch)

    async def move_message_to_folder(self, message_id: str, folder_name: str) -> None:
        patch = await self._move_to_folder_patch(folder_name)
        if patch is not None:
            await self._apply([message_id], patch)

    async def _bulk_from_senders(
        self,
        senders: list[str],
        patch: MessagePatch | None,
        action: str,
        mailbox_id: str | None = None,
    ) -> BulkResult:
        """Apply ``patch`` to mail from each sender, optionally only within ``mailbox_id``."""
        result = BulkResult()
        if patch is None:
            return result

        cap = self.config.bulk_sender_cap
        for sender in senders:
            message_ids = await self._query_ids(
                self._message_filter(mailbox_id=mailbox_id, from_email=sender),
                limit=cap,
            )
            if not message_ids:
                continue
            outcome = await self._apply(message_ids, patch)
            if outcome is not None:
                result.processed += len(outcome.updated)
            if len(message_ids) >= cap:
                result.capped_senders.append(sender)
            logger.info(f"Bulk {action}: {len(message_ids)} messages from {sender}")
        return result

    async def bulk_archive_from_senders(self, senders: list[str]) -> BulkResult:
        """Archive inbox messages from each sender, up to the per-sender cap."""
        patch = await self._archive_patch()
        inbox_id = await self._role_id(MailboxRole.INBOX)
        return await self._bulk_from_senders(senders, patch, "archive", mailbox_id=inbox_id)

    async def bulk_trash_from_senders(self, senders: list[str]) -> BulkResult:
        """Trash every message from each sender wherever it is filed, up to the cap."""
        return await self._bulk_from_senders(
            senders, await self._move_to_role_patch(MailboxRole.TRASH), "trash"
        )

    # --- Sending ---

    async def _required_mailbox(self, role: MailboxRole) -> str:
        mailbox_id = await self._role_id(role)
        if not mailbox_id:
            raise NotFoundError(f"No {role.value} mailbox found")
        return mailbox_id

    async def _submit(self, email: dict[str, Any], identity: Identity) -> dict[str, Any]:
        """Create ``email`` and submit it in the same exchange.

        Raises:
            SendError: If either the create or the submission is refused
        """
        request = self.client.new_request()
        create = request.add(
            Method.EMAIL_SET,
            {"accountId": self.account_id, "create": {"email": email}},
        )
        submit = request.add(
            Method.EMAIL_SUBMISSION_SET,
            {
                "accountId": self.account_id,
                "create": {
                    "submission": {
                        "identityId": identity.id,
                        "emailId": creation_reference("email"),
                    }
                },
            },
        )
        batch = await self.client.execute(request)

        created_result = batch.set(create)
        created = created_result.created.get("email")
        if not created or not created.get("id"):
            error = created_result.not_created.get("email")
            detail = f"{error.type}: {error.description}" if error else "no id returned"
            raise SendError(f"Failed to create email: {detail}")

        submission = batch.set(submit)
        if "submission" not in submission.created:
            error = submission.not_created.get("submission")
            detail = f"{error.type}: {error.description}" if error else "no submission returned"
            raise SendError(f"Failed to submit email {created['id']}: {detail}")

        logger.info(f"Sent email {created['id']} as {identity.email}")
        return created

    async def _upload_attachments(self, attachments: list[OutgoingAttachment]) -> list[dict[str, Any]]:
        parts = []
        for attachment in attachments:
            data = base64.b64decode(attachment.content)
            blob = await self.blobs.upload(data, attachment.content_type)
            parts.append(
                {
                    "blobId": blob.blob_id,
                    "type": attachment.content_type,
                    "name": attachment.filename,
                    "disposition": "attachment",
                    "size": blob.size,
                }
            )
        return parts

    async def send_email(
        self,
        to: str,
        subject: str,
        message_text: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        sent_id = await self._required_mailbox(MailboxRole.SENT)
        identity = await self.identities.default_identity()
        email = build_email(
            mailbox_id=sent_id,
            identity=identity,
            to=to,
            subject=subject,
            body=message_text,
            cc=cc,
            bcc=bcc,
        )
        await self._submit(email, identity)

    async def send_email_with_html(
        self,
        to: str,
        subject: str,
        message_html: str,
        cc: str | None = None,
        bcc: str | None = None,
        reply_to: str | None = None,
        reply_context: ReplyContext | None = None,
        attachments: list[OutgoingAttachment] | None = None,
    ) -> SentMessage:
        sent_id = await self._required_mailbox(MailboxRole.SENT)
        identity = await self.identities.default_identity()
        threading = None
        if reply_context is not None:
            threading = threading_headers(reply_context.header_message_id, reply_context.references)

        email = build_email(
            mailbox_id=sent_id,
            identity=identity,
            to=to,
            subject=subject,
            body=message_html,
            html=True,
            cc=cc,
            bcc=bcc,
            reply_to=reply_to,
            attachments=await self._upload_attachments(attachments or []),
            threading=threading,
        )
        created = await self._submit(email, identity)
        thread_id = created.get("threadId") or (reply_context.thread_id if reply_context else "")
        return SentMessage(message_id=str(created["id"]), thread_id=str(thread_id))

    async def reply_to_email(self, email: ParsedMessage, content: str) -> None:
        sent_id = await self._required_mailbox(MailboxRole.SENT)
        identity = await self.identities.default_identity()
        reply = build_email(
            mailbox_id=sent_id,
            identity=identity,
            to=email.headers.get("reply-to") or email.headers.get("from"),
            subject=prefixed_subject("Re:", email.subject),
            body=content,
            threading=reply_threading(email),
        )
        await self._submit(reply, identity)

    async def forward_email(
        self,
        email: ParsedMessage,
        to: str,
        cc: str | None = None,
        bcc: str | None = None,
        content: str | None = None,
    ) -> None:
        sent_id = await self._required_mailbox(MailboxRole.SENT)
        identity = await self.identities.default_identity()
        quoted = "\n".join(
            [
                "---------- Forwarded message ---------",
                f"From: {email.headers.get('from', '')}",
                f"Date: {email.headers.get('date', '')}",
                f"Subject: {email.subject}",
                f"To: {email.headers.get('to', '')}",
                "",
                email.text_plain or email.snippet,
            ]
        )
        body = f"{content}\n\n{quoted}" if content else quoted
        forward = build_email(
            mailbox_id=sent_id,
            identity=identity,
            to=to,
            subject=prefixed_subject("Fwd:", email.subject),
            body=body,
            cc=cc,
            bcc=bcc,
        )
        await self._submit(forward, identity)

    async def draft_email(
        self,
        email: ParsedMessage,
        content: str,
        to: str | None = None,
        subject: str | None = None,
        user_email: str | None = None,
    ) -> str:
        """Save a reply draft and return its id. Nothing is submitted."""
        drafts_id = await self._required_mailbox(MailboxRole.DRAFTS)
        identity = await self.identities.default_identity(user_email)
        draft = build_email(
            mailbox_id=drafts_id,
            identity=identity,
            to=to or email.headers.get("reply-to") or email.headers.get("from"),
            subject=subject or prefixed_subject("Re:", email.subject),
            body=content,
            draft=True,
            threading=reply_threading(email),
        )

        batch, handle = await self.client.call(
            Method.EMAIL_SET,
            {"accountId": self.account_id, "create": {"draft": draft}},
        )
        result = batch.set(handle)
        created = result.created.get("draft")
        if not created or not created.get("id"):
            error = result.not_created.get("draft")
            detail = f"{error.type}: {error.description}" if error else "no id returned"
            raise MutationError(f"Failed to create draft: {detail}")

        logger.info(f"Created draft {created['id']}")
        return str(created["id"])

    # --- Attachments and identities ---

    async def get_attachment(self, message_id: str, attachment_id: str) -> AttachmentData:
        """Download an attachment blob; ``attachment_id`` is the blob id."""
        message = await self.get_message(message_id)
        attachment = next((a for a in message.attachments if a.attachment_id == attachment_id), None)
        if attachment is None:
            raise NotFoundError(f"Attachment {attachment_id} not found on message {message_id}")

        data = await self.blobs.download(attachment_id, attachment.filename, attachment.mime_type)
        return AttachmentData(data=base64.b64encode(data).decode("ascii"), size=len(data))

    async def get_signatures(self) -> list[EmailSignature]:
        identities = await self.identities.list_identities()
        return [
            EmailSignature(
                email=identity.email,
                signature=identity.signature,
                is_default=index == 0,
                display_name=identity.name,
            )
            for index, identity in enumerate(identities)
        ]

    # --- Conversation history ---

    async def check_if_reply_sent(self, sender_email: str) -> bool:
        """Whether anything in Sent was addressed to ``sender_email``.

        Errs toward True when the lookup fails or there is no Sent mailbox,
        so callers hold back rather than treat the sender as new.
        """
        try:
            sent_id = await self._role_id(MailboxRole.SENT)
            if not sent_id:
                logger.warning(f"No sent mailbox; assuming a reply to {sender_email} was sent")
                return True
            ids = await self._query_ids({"inMailbox": sent_id, "to": sender_email}, limit=1)
            return bool(ids)
        except JmapError as e:
            logger.warning(f"Failed to check for replies to {sender_email}: {e}")
            return True

    async def count_received_messages(self, sender_email: str, threshold: int) -> int:
        """Count messages from the sender, stopping at ``threshold``. 0 on failure."""
        try:
            ids = await self._query_ids({"from": sender_email}, limit=threshold)
            return len(ids)
        except JmapError as e:
            logger.warning(f"Failed to count messages from {sender_email}: {e}")
            return 0

    async def has_previous_communications(
        self,
        sender: str,
        date: datetime | str,
        message_id: str | None = None,
    ) -> bool:
        """Whether we exchanged mail with ``sender``, or heard from its domain, before ``date``."""
        address = bare_address(sender) or sender
        before = utc_date(date)
        conditions = [
            {"from": address, "before": before},
            {"to": address, "before": before},
        ]
        _, at, domain = address.rpartition("@")
        if at and domain:
            conditions.append({"from": f"@{domain}", "before": before})
        filter = {"operator": "OR", "conditions": conditions}
        ids = await self._query_ids(filter, limit=2)
        return any(i != message_id for i in ids)

    def is_reply_in_thread(self, message: ParsedMessage) -> bool:
        return bool(message.headers.get("in-reply-to") or message.headers.get("references"))

    async def is_sent_message(self, message: ParsedMessage) -> bool:
        sent_id = await self._role_id(MailboxRole.SENT)
        return bool(sent_id) and sent_id in message.label_ids

    # --- Capabilities JMAP lacks ---

    def _unsupported(self, capability: str, message: str) -> UnsupportedResult:
        logger.warning(f"{capability} is not supported by the {self.name} provider")
        return UnsupportedResult(capability=capability, message=message)

    async def get_filters_list(self) -> UnsupportedResult:
        return self._unsupported("filters", UNSUPPORTED_FILTERS)

    async def create_filter(self, **kwargs) -> UnsupportedResult:
        return self._unsupported("filters", UNSUPPORTED_FILTERS)

    async def create_auto_archive_filter(self, **kwargs) -> UnsupportedResult:
        return self._unsupported("filters", UNSUPPORTED_FILTERS)

    async def delete_filter(self, filter_id: str) -> UnsupportedResult:
        return self._unsupported("filters", UNSUPPORTED_FILTERS)

    async def watch_emails(self) -> UnsupportedResult:
        return self._unsupported("push", UNSUPPORTED_PUSH)

    async def unwatch_emails(self, subscription_id: str | None = None) -> UnsupportedResult:
        return self._unsupported("push", UNSUPPORTED_PUSH)

    async def process_history(self, **kwargs) -> UnsupportedResult:
        return self._unsupported("history", UNSUPPORTED_HISTORY)
