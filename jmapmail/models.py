"""Provider-agnostic message, thread and label representations.

Callers (rule evaluation, automation, API routes) see only these types,
whether the backend models membership as labels or folders. Mailbox ids
are surfaced as ``label_ids``.
"""

from dataclasses import dataclass, field
from typing import Literal

# Pseudo-labels synthesized from keyword flags
UNREAD_LABEL = "UNREAD"
STARRED_LABEL = "STARRED"
DRAFT_LABEL = "DRAFT"


@dataclass
class Attachment:
    filename: str
    mime_type: str
    size: int
    attachment_id: str  # Blob id; pass to get_attachment()
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ParsedMessage:
    """A normalized email message.

    ``headers`` always carries string values for subject, from, to, cc,
    bcc, reply-to, date, message-id, in-reply-to and references; absent
    headers are empty strings.
    """

    id: str
    thread_id: str
    label_ids: list[str]
    snippet: str
    headers: dict[str, str]
    subject: str = ""
    date: str = ""
    internal_date: str = ""
    text_plain: str = ""
    text_html: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    history_id: str = ""  # JMAP has no history id; kept for interface parity

    @property
    def is_unread(self) -> bool:
        return UNREAD_LABEL in self.label_ids

    @property
    def is_starred(self) -> bool:
        return STARRED_LABEL in self.label_ids

    @property
    def is_draft(self) -> bool:
        return DRAFT_LABEL in self.label_ids


@dataclass
class EmailThread:
    id: str
    messages: list[ParsedMessage]
    snippet: str = ""


@dataclass
class EmailLabel:
    id: str
    name: str
    type: Literal["system", "user"] = "user"
    threads_total: int | None = None


@dataclass
class EmailSignature:
    email: str
    signature: str
    is_default: bool
    display_name: str = ""


@dataclass
class Folder:
    id: str
    display_name: str
    child_folders: list["Folder"] = field(default_factory=list)

    @property
    def child_folder_count(self) -> int:
        return len(self.child_folders)


@dataclass
class MessagePage:
    messages: list[ParsedMessage]
    next_page_token: str | None = None


@dataclass
class ThreadPage:
    threads: list[EmailThread]
    next_page_token: str | None = None


@dataclass
class ThreadQuery:
    """Filter for thread listings; every field is optional."""
    label_id: str | None = None
    type: str | None = None  # inbox, sent, draft, trash, spam, starred, archive
    text: str | None = None
    from_email: str | None = None
    after: str | None = None  # ISO 8601 UTC
    before: str | None = None
    is_unread: bool | None = None


@dataclass
class LabelResult:
    used_fallback: bool = False
    actual_label_id: str | None = None


@dataclass
class SentMessage:
    message_id: str
    thread_id: str


@dataclass
class AttachmentData:
    data: str  # base64
    size: int


@dataclass
class BulkResult:
    """Outcome of a sender-scoped bulk operation.

    ``capped_senders`` lists senders whose matches hit the per-sender cap;
    call again to continue with those.
    """
    processed: int = 0
    capped_senders: list[str] = field(default_factory=list)

    @property
    def has_more(self) -> bool:
        return bool(self.capped_senders)


@dataclass
class UnsupportedResult:
    """Returned instead of raising when the protocol lacks a capability."""
    capability: str
    status: int = 501
    message: str = ""
    supported: bool = False


@dataclass
class MessageRef:
    id: str
    thread_id: str


@dataclass
class OutgoingAttachment:
    filename: str
    content: str  # base64
    content_type: str = "application/octet-stream"


@dataclass
class ReplyContext:
    """Threading information for an HTML send that answers an earlier message."""
    thread_id: str
    header_message_id: str
    references: str | None = None
