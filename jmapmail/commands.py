"""Command implementations for the jmapmail CLI."""

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx

from .client import JmapClient
from .config import Config
from .errors import JmapError, NotFoundError
from .fastmail import FastmailProvider
from .mailboxes import Mailbox
from .models import EmailThread, OutgoingAttachment
from .session import fetch_session

logger = logging.getLogger("jmapmail")


@asynccontextmanager
async def open_provider(
    config: Config,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[FastmailProvider]:
    """Fetch the session and yield a provider bound to it."""
    session = await fetch_session(config.jmap, transport=transport)
    async with JmapClient(session, config.jmap, transport=transport) as client:
        yield FastmailProvider(client, config.provider)


def _print_threads(threads: list[EmailThread]) -> None:
    print(f"{'Thread':<16} {'From':<30} {'Subject':<50}")
    print("-" * 98)
    for thread in threads:
        first = thread.messages[0] if thread.messages else None
        from_addr = (first.headers.get("from", "") if first else "")[:28]
        subject = (first.subject if first else "")[:48]
        print(f"{thread.id:<16} {from_addr:<30} {subject:<50}")
    print(f"\nTotal: {len(threads)} threads")


def _mailbox_line(mailbox: Mailbox) -> str:
    role = mailbox.role or ""
    return f"{mailbox.id:<16} {mailbox.name:<30} {role:<10} {mailbox.total_emails:>8} {mailbox.unread_emails:>8}"


async def list_mailboxes_cmd(config: Config) -> None:
    """List mailboxes with message counts."""
    async with open_provider(config) as provider:
        mailboxes = await provider.mailboxes.all()

        print(f"{'Id':<16} {'Name':<30} {'Role':<10} {'Total':>8} {'Unread':>8}")
        print("-" * 76)
        for mailbox in sorted(mailboxes, key=lambda m: m.name.lower()):
            print(_mailbox_line(mailbox))


async def list_threads_cmd(config: Config, folder_id: str | None = None, limit: int = 50) -> None:
    """List threads in a mailbox (the inbox by default)."""
    async with open_provider(config) as provider:
        threads = await provider.get_threads(folder_id, limit=limit)
        _print_threads(threads)


async def show_thread_cmd(config: Config, thread_id: str) -> None:
    async with open_provider(config) as provider:
        try:
            thread = await provider.get_thread(thread_id)
        except NotFoundError as e:
            logger.error(str(e))
            return

        for message in thread.messages:
            print(f"[{message.id}] {message.date}  {message.headers.get('from', '')}")
            print(f"    {message.subject}")
            if message.snippet:
                print(f"    {message.snippet[:100]}")


async def read_message_cmd(config: Config, message_id: str) -> None:
    """Read and display a message."""
    async with open_provider(config) as provider:
        try:
            message = await provider.get_message(message_id)
        except NotFoundError:
            logger.error(f"Message {message_id} not found")
            return

        print(f"From: {message.headers.get('from', '')}")
        print(f"To: {message.headers.get('to', '')}")
        print(f"Subject: {message.subject}")
        print(f"Date: {message.date}")
        print(f"Message-ID: {message.headers.get('message-id', '')}")
        print(f"Thread: {message.thread_id}")
        for attachment in message.attachments:
            print(f"Attachment: {attachment.filename} ({attachment.size} bytes) id={attachment.attachment_id}")
        print("-" * 60)
        print(message.text_plain or message.text_html or "(no body)")


async def search_cmd(
    config: Config,
    query: str | None = None,
    limit: int = 20,
    page_token: str | None = None,
    from_email: str | None = None,
) -> None:
    """Search messages, one page at a time."""
    async with open_provider(config) as provider:
        if from_email:
            page = await provider.get_messages_from_sender(from_email, limit, page_token)
        else:
            page = await provider.get_messages_with_pagination(query, limit, page_token)

        print(f"{'Id':<16} {'From':<30} {'Subject':<50}")
        print("-" * 98)
        for message in page.messages:
            print(f"{message.id:<16} {message.headers.get('from', '')[:28]:<30} {message.subject[:48]:<50}")

        if page.next_page_token:
            print(f"\nNext page: --page-token {page.next_page_token}")


async def list_labels_cmd(config: Config) -> None:
    async with open_provider(config) as provider:
        labels = await provider.get_labels()
        print(f"{'Id':<16} {'Name':<40} {'Type':<8} {'Threads':>8}")
        print("-" * 76)
        for label in sorted(labels, key=lambda item: item.name.lower()):
            print(f"{label.id:<16} {label.name:<40} {label.type:<8} {label.threads_total or 0:>8}")


async def create_label_cmd(config: Config, name: str) -> None:
    """Create a label unless one with that name exists."""
    async with open_provider(config) as provider:
        existing = await provider.get_label_by_name(name)
        if existing is not None:
            logger.info(f"Label already exists: {name} ({existing.id})")
            return
        try:
            label = await provider.create_label(name)
        except JmapError as e:
            logger.error(f"Failed to create label {name}: {e}")
            return
        logger.info(f"Created label: {label.name} ({label.id})")


async def delete_label_cmd(config: Config, name: str) -> None:
    async with open_provider(config) as provider:
        label = await provider.get_label_by_name(name)
        if label is None:
            logger.warning(f"Label does not exist: {name}")
            return
        try:
            await provider.delete_label(label.id)
        except JmapError as e:
            logger.error(f"Failed to delete label {name}: {e}")
            return
        logger.info(f"Deleted label: {name}")


async def archive_cmd(config: Config, thread_id: str) -> None:
    async with open_provider(config) as provider:
        await provider.archive_thread(thread_id)
        logger.info(f"Archived thread {thread_id}")


async def trash_cmd(config: Config, thread_id: str) -> None:
    async with open_provider(config) as provider:
        await provider.trash_thread(thread_id)
        logger.info(f"Trashed thread {thread_id}")


async def mark_read_cmd(config: Config, thread_id: str, unread: bool = False) -> None:
    async with open_provider(config) as provider:
        await provider.mark_read_thread(thread_id, read=not unread)
        logger.info(f"Marked thread {thread_id} as {'unread' if unread else 'read'}")


async def label_cmd(config: Config, message_id: str, label: str) -> None:
    """Apply a label to a message, given either its id or its name."""
    async with open_provider(config) as provider:
        by_name = await provider.get_label_by_name(label)
        label_id = by_name.id if by_name else label
        label_name = by_name.name if by_name else None
        try:
            result = await provider.label_message(message_id, label_id, label_name)
        except JmapError as e:
            logger.error(f"Failed to label {message_id}: {e}")
            return
        if result.used_fallback:
            logger.info(f"Labeled {message_id} via name fallback ({result.actual_label_id})")
        else:
            logger.info(f"Labeled {message_id} with {label}")


async def move_cmd(config: Config, thread_id: str, folder: str) -> None:
    async with open_provider(config) as provider:
        await provider.move_thread_to_folder(thread_id, folder)
        logger.info(f"Moved thread {thread_id} to {folder}")


async def bulk_cmd(config: Config, senders: list[str], action: str) -> None:
    """Archive or trash everything in the inbox from the given senders."""
    async with open_provider(config) as provider:
        if action == "trash":
            result = await provider.bulk_trash_from_senders(senders)
        else:
            result = await provider.bulk_archive_from_senders(senders)

        print(f"Processed: {result.processed}")
        if result.has_more:
            print(f"More remain for: {', '.join(result.capped_senders)} (run again to continue)")


async def send_cmd(
    config: Config,
    to: str,
    subject: str,
    body: str,
    cc: str | None = None,
    bcc: str | None = None,
    html: bool = False,
    attachments: list[Path] | None = None,
) -> None:
    async with open_provider(config) as provider:
        try:
            if html or attachments:
                outgoing = [
                    OutgoingAttachment(
                        filename=path.name,
                        content=base64.b64encode(path.read_bytes()).decode("ascii"),
                    )
                    for path in attachments or []
                ]
                sent = await provider.send_email_with_html(
                    to, subject, body, cc=cc, bcc=bcc, attachments=outgoing
                )
                logger.info(f"Sent message {sent.message_id} in thread {sent.thread_id}")
            else:
                await provider.send_email(to, subject, body, cc=cc, bcc=bcc)
                logger.info(f"Sent message to {to}")
        except JmapError as e:
            logger.error(f"Failed to send: {e}")


async def attachment_cmd(config: Config, message_id: str, attachment_id: str, output: Path) -> None:
    """Download an attachment to a file."""
    async with open_provider(config) as provider:
        try:
            attachment = await provider.get_attachment(message_id, attachment_id)
        except JmapError as e:
            logger.error(f"Failed to fetch attachment: {e}")
            return
        output.write_bytes(base64.b64decode(attachment.data))
        logger.info(f"Saved {attachment.size} bytes to {output}")
