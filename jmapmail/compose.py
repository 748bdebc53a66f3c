"""Build Email/set create records for outgoing mail."""

from email.utils import getaddresses
from typing import Any

from .identity import Identity
from .models import ParsedMessage
from .normalize import DRAFT, SEEN

BODY_PART_ID = "body"


def parse_address_list(value: str | None) -> list[dict[str, str]] | None:
    """Turn ``"Ann <a@x.com>, b@y.com"`` into JMAP EmailAddress objects."""
    if not value:
        return None
    addresses = []
    for name, email in getaddresses([value]):
        email = email.strip()
        if not email:
            continue
        address = {"email": email}
        if name:
            address["name"] = name
        addresses.append(address)
    return addresses or None


def prefixed_subject(prefix: str, subject: str) -> str:
    """Add ``Re:``/``Fwd:`` unless the subject already carries it."""
    if subject.lower().startswith(prefix.lower()):
        return subject
    return f"{prefix} {subject}".strip()


def threading_headers(message_id: str | None, references: str | None) -> dict[str, list[str]]:
    """inReplyTo/references for a reply to a message with these headers."""
    headers: dict[str, list[str]] = {}
    refs = (references or "").split()
    if message_id:
        headers["inReplyTo"] = [message_id]
        if message_id not in refs:
            refs.append(message_id)
    if refs:
        headers["references"] = refs
    return headers


def reply_threading(message: ParsedMessage) -> dict[str, list[str]]:
    return threading_headers(
        message.headers.get("message-id") or None,
        message.headers.get("references") or None,
    )


def build_email(
    *,
    mailbox_id: str,
    identity: Identity | None,
    to: str | None,
    subject: str,
    body: str,
    html: bool = False,
    cc: str | None = None,
    bcc: str | None = None,
    reply_to: str | None = None,
    from_email: str | None = None,
    draft: bool = False,
    attachments: list[dict[str, Any]] | None = None,
    threading: dict[str, list[str]] | None = None,
) -> dict[str, Any]:
    """An Email object suitable for the ``create`` map of Email/set."""
    if identity is not None:
        sender = [identity.as_address()]
    else:
        sender = parse_address_list(from_email)

    reply_to_addresses = parse_address_list(reply_to)
    bcc_addresses = parse_address_list(bcc)
    if identity is not None and not draft:
        reply_to_addresses = reply_to_addresses or identity.reply_to or None
        bcc_addresses = bcc_addresses or identity.bcc or None

    keywords = {SEEN: True}
    if draft:
        keywords[DRAFT] = True

    content_type = "text/html" if html else "text/plain"
    email: dict[str, Any] = {
        "mailboxIds": {mailbox_id: True},
        "keywords": keywords,
        "from": sender,
        "to": parse_address_list(to),
        "cc": parse_address_list(cc),
        "bcc": bcc_addresses,
        "replyTo": reply_to_addresses,
        "subject": subject,
        "bodyValues": {BODY_PART_ID: {"value": body, "charset": "utf-8"}},
        ("htmlBody" if html else "textBody"): [{"partId": BODY_PART_ID, "type": content_type}],
    }
    if attachments:
        email["attachments"] = attachments
    if threading:
        email.update(threading)

    # Omit unset properties rather than sending nulls
    return {key: value for key, value in email.items() if value is not None}
