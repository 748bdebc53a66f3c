"""Convert JMAP Email records into ParsedMessage.

Every function here is total over well-typed JSON: missing or malformed
fields come out as empty values, never as exceptions.
"""

from typing import Any

from .models import (
    DRAFT_LABEL,
    STARRED_LABEL,
    UNREAD_LABEL,
    Attachment,
    ParsedMessage,
)

EMAIL_PROPERTIES = [
    "id",
    "blobId",
    "threadId",
    "mailboxIds",
    "keywords",
    "from",
    "to",
    "cc",
    "bcc",
    "subject",
    "receivedAt",
    "sentAt",
    "preview",
    "hasAttachment",
    "messageId",
    "inReplyTo",
    "references",
    "replyTo",
    "bodyStructure",
    "bodyValues",
    "textBody",
    "htmlBody",
    "attachments",
]

SEEN = "$seen"
FLAGGED = "$flagged"
DRAFT = "$draft"


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def format_addresses(addresses: Any) -> str:
    """Render a JMAP EmailAddress list as ``Name <email>, other@host``."""
    parts = []
    for addr in _list(addresses):
        addr = _dict(addr)
        email = _str(addr.get("email"))
        name = _str(addr.get("name"))
        if name and email:
            parts.append(f"{name} <{email}>")
        elif email or name:
            parts.append(email or name)
    return ", ".join(parts)


def resolve_body(record: dict[str, Any], key: str) -> str:
    """Follow the first part of ``textBody``/``htmlBody`` into ``bodyValues``.

    A part id with no matching value is treated as an absent body.
    """
    parts = _list(record.get(key))
    if not parts:
        return ""
    part_id = _dict(parts[0]).get("partId")
    if not isinstance(part_id, str):
        return ""
    value = _dict(_dict(record.get("bodyValues")).get(part_id))
    return _str(value.get("value"))


def label_ids_for(record: dict[str, Any]) -> list[str]:
    """Mailbox memberships plus pseudo-labels for keyword flags."""
    label_ids = [mailbox_id for mailbox_id, member in _dict(record.get("mailboxIds")).items() if member]
    keywords = _dict(record.get("keywords"))
    if not keywords.get(SEEN):
        label_ids.append(UNREAD_LABEL)
    if keywords.get(FLAGGED):
        label_ids.append(STARRED_LABEL)
    if keywords.get(DRAFT):
        label_ids.append(DRAFT_LABEL)
    return label_ids


def normalize_attachment(part: dict[str, Any]) -> Attachment:
    name = _str(part.get("name"))
    mime_type = _str(part.get("type")) or "application/octet-stream"
    size = part.get("size")
    return Attachment(
        filename=name or "attachment",
        mime_type=mime_type,
        size=size if isinstance(size, int) else 0,
        attachment_id=_str(part.get("blobId")),
        headers={
            "content-type": mime_type,
            "content-description": name,
            "content-transfer-encoding": "base64",
            "content-id": _str(part.get("cid")),
        },
    )


def _first(values: Any) -> str:
    items = _list(values)
    return _str(items[0]) if items else ""


def parse_jmap_email(record: dict[str, Any]) -> ParsedMessage:
    """Normalize one JMAP Email object."""
    record = _dict(record)
    subject = _str(record.get("subject"))
    received_at = _str(record.get("receivedAt"))
    date = _str(record.get("sentAt")) or received_at
    references = " ".join(_str(r) for r in _list(record.get("references")) if _str(r))

    return ParsedMessage(
        id=_str(record.get("id")),
        thread_id=_str(record.get("threadId")),
        label_ids=label_ids_for(record),
        snippet=_str(record.get("preview")),
        headers={
            "subject": subject,
            "from": format_addresses(record.get("from")),
            "to": format_addresses(record.get("to")),
            "cc": format_addresses(record.get("cc")),
            "bcc": format_addresses(record.get("bcc")),
            "reply-to": format_addresses(record.get("replyTo")),
            "date": date,
            "message-id": _first(record.get("messageId")),
            "in-reply-to": _first(record.get("inReplyTo")),
            "references": references,
        },
        subject=subject,
        date=date,
        internal_date=received_at,
        text_plain=resolve_body(record, "textBody"),
        text_html=resolve_body(record, "htmlBody"),
        attachments=[
            normalize_attachment(part)
            for part in _list(record.get("attachments"))
            if isinstance(part, dict)
        ],
    )
