"""Base protocol for email providers."""

from typing import Protocol, runtime_checkable

from .models import (
    AttachmentData,
    BulkResult,
    EmailLabel,
    EmailThread,
    LabelResult,
    MessagePage,
    ParsedMessage,
    SentMessage,
    UnsupportedResult,
)


@runtime_checkable
class EmailProvider(Protocol):
    """The normalized mailbox contract shared by every backend.

    Rule evaluation, automation and API routes call only these methods.
    Lookups that may legitimately find nothing return None or an empty
    list; methods that need an entity raise NotFoundError.
    """

    @property
    def name(self) -> str:
        """Return the provider identifier."""
        ...

    async def get_threads(self, folder_id: str | None = None) -> list[EmailThread]:
        """List threads in a mailbox (the inbox by default), newest first."""
        ...

    async def get_thread(self, thread_id: str) -> EmailThread:
        """Return one thread with its messages oldest first."""
        ...

    async def get_message(self, message_id: str) -> ParsedMessage:
        """Fetch a message.

        Raises:
            NotFoundError: If no such message exists
        """
        ...

    async def get_messages_batch(self, message_ids: list[str]) -> list[ParsedMessage]:
        ...

    async def get_labels(self) -> list[EmailLabel]:
        ...

    async def create_label(self, name: str) -> EmailLabel:
        ...

    async def delete_label(self, label_id: str) -> None:
        ...

    async def archive_thread(self, thread_id: str) -> None:
        ...

    async def archive_message(self, message_id: str) -> None:
        ...

    async def trash_thread(self, thread_id: str) -> None:
        ...

    async def mark_spam(self, thread_id: str) -> None:
        ...

    async def mark_read(self, thread_id: str) -> None:
        ...

    async def label_message(
        self, message_id: str, label_id: str, label_name: str | None = None
    ) -> LabelResult:
        """Add a label, retrying once by name if the id turns out to be stale."""
        ...

    async def move_thread_to_folder(self, thread_id: str, folder_name: str) -> None:
        ...

    async def bulk_archive_from_senders(self, senders: list[str]) -> BulkResult:
        ...

    async def bulk_trash_from_senders(self, senders: list[str]) -> BulkResult:
        ...

    async def draft_email(
        self,
        email: ParsedMessage,
        content: str,
        to: str | None = None,
        subject: str | None = None,
        user_email: str | None = None,
    ) -> str:
        """Create a reply draft and return its id. Drafts are never sent."""
        ...

    async def reply_to_email(self, email: ParsedMessage, content: str) -> None:
        ...

    async def send_email(
        self,
        to: str,
        subject: str,
        message_text: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        ...

    async def send_email_with_html(
        self,
        to: str,
        subject: str,
        message_html: str,
        **kwargs,
    ) -> SentMessage:
        ...

    async def get_messages_with_pagination(
        self,
        query: str | None = None,
        max_results: int | None = None,
        page_token: str | None = None,
        before: str | None = None,
        after: str | None = None,
    ) -> MessagePage:
        ...

    async def get_attachment(self, message_id: str, attachment_id: str) -> AttachmentData:
        ...

    async def get_filters_list(self) -> UnsupportedResult | list:
        ...

    async def watch_emails(self) -> UnsupportedResult | None:
        ...
