"""Group flat message lists into threads."""

from collections.abc import Iterable

from .models import EmailThread, ParsedMessage


def group_into_threads(messages: Iterable[ParsedMessage], max_threads: int | None = None) -> list[EmailThread]:
    """Group messages by thread id.

    Threads appear in order of their first message; messages keep their
    relative order within each thread. The snippet is taken from the first
    message of each group.
    """
    grouped: dict[str, list[ParsedMessage]] = {}
    for message in messages:
        if message.thread_id not in grouped:
            if max_threads is not None and len(grouped) >= max_threads:
                continue
            grouped[message.thread_id] = []
        grouped[message.thread_id].append(message)

    return [assemble_thread(thread_id, members) for thread_id, members in grouped.items()]


def assemble_thread(thread_id: str, messages: list[ParsedMessage]) -> EmailThread:
    return EmailThread(
        id=thread_id,
        messages=messages,
        snippet=messages[0].snippet if messages else "",
    )
