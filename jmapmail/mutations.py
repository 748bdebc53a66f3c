"""Sparse patches against mailbox membership and keywords.

A patch names only the mailboxes and keywords it changes, serialized as
JSON-pointer keys (``mailboxIds/<id>``, ``keywords/$seen``). Memberships
the caller did not mention are never touched, so concurrent labels on the
same message survive.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .normalize import FLAGGED, SEEN


@dataclass(frozen=True)
class MembershipChange:
    mailbox_id: str
    member: bool


@dataclass(frozen=True)
class KeywordChange:
    keyword: str
    present: bool


@dataclass(frozen=True)
class MessagePatch:
    memberships: tuple[MembershipChange, ...] = ()
    keywords: tuple[KeywordChange, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.memberships and not self.keywords

    def merge(self, other: "MessagePatch") -> "MessagePatch":
        return MessagePatch(
            memberships=self.memberships + other.memberships,
            keywords=self.keywords + other.keywords,
        )

    def to_jmap(self) -> dict[str, Any]:
        # JMAP membership maps only hold true; removal is a null patch.
        patch: dict[str, Any] = {}
        for change in self.memberships:
            patch[f"mailboxIds/{change.mailbox_id}"] = True if change.member else None
        for change in self.keywords:
            patch[f"keywords/{change.keyword}"] = True if change.present else None
        return patch


def build_update(message_ids: Iterable[str], patch: MessagePatch) -> dict[str, dict[str, Any]]:
    """The ``update`` argument of Email/set applying one patch to many ids."""
    body = patch.to_jmap()
    return {message_id: dict(body) for message_id in message_ids}


def _membership(*changes: tuple[str | None, bool]) -> MessagePatch:
    return MessagePatch(
        memberships=tuple(
            MembershipChange(mailbox_id, member)
            for mailbox_id, member in changes
            if mailbox_id
        )
    )


def archive_patch(inbox_id: str, archive_id: str | None = None) -> MessagePatch:
    return _membership((inbox_id, False), (archive_id, True))


def unarchive_patch(inbox_id: str, archive_id: str | None = None) -> MessagePatch:
    return _membership((inbox_id, True), (archive_id, False))


def move_patch(target_id: str, source_id: str | None = None) -> MessagePatch:
    """Add to ``target_id``, leaving ``source_id`` when given.

    Used for trash, spam and move-to-folder, with the inbox as source.
    """
    if source_id == target_id:
        source_id = None
    return _membership((target_id, True), (source_id, False))


def label_patch(label_id: str, apply: bool = True) -> MessagePatch:
    return _membership((label_id, apply))


def read_patch(read: bool = True) -> MessagePatch:
    return MessagePatch(keywords=(KeywordChange(SEEN, read),))


def star_patch(starred: bool = True) -> MessagePatch:
    return MessagePatch(keywords=(KeywordChange(FLAGGED, starred),))
