"""Offset-based page tokens."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PageCursor:
    offset: int
    limit: int

    @classmethod
    def from_token(cls, token: str | None, limit: int) -> "PageCursor":
        """Parse a page token; anything unparseable starts from the beginning."""
        offset = 0
        if token:
            try:
                offset = max(int(token), 0)
            except ValueError:
                offset = 0
        return cls(offset=offset, limit=max(limit, 1))

    def next_token(self, returned: int, total: int | None) -> str | None:
        """Token for the following page, or None when this is the last one.

        Without a server-reported total, a full page means more may exist.
        """
        next_offset = self.offset + returned
        if total is None:
            return str(next_offset) if returned > 0 and returned >= self.limit else None
        return str(next_offset) if next_offset < total else None
