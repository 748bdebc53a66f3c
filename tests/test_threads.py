"""Tests for thread grouping."""

from jmapmail.models import ParsedMessage
from jmapmail.threads import assemble_thread, group_into_threads


def message(message_id, thread_id, snippet=""):
    return ParsedMessage(id=message_id, thread_id=thread_id, label_ids=[], snippet=snippet, headers={})


def test_groups_preserve_arrival_order():
    messages = [
        message("m1", "tA", "first A"),
        message("m2", "tB", "first B"),
        message("m3", "tA", "second A"),
        message("m4", "tC", "first C"),
    ]
    threads = group_into_threads(messages)

    assert [t.id for t in threads] == ["tA", "tB", "tC"]
    assert [m.id for m in threads[0].messages] == ["m1", "m3"]
    assert threads[0].snippet == "first A"


def test_every_message_lands_in_exactly_one_thread():
    messages = [message(f"m{i}", f"t{i % 3}") for i in range(10)]
    threads = group_into_threads(messages)

    grouped = [m.id for t in threads for m in t.messages]
    assert sorted(grouped) == sorted(m.id for m in messages)
    for thread in threads:
        assert all(m.thread_id == thread.id for m in thread.messages)


def test_max_threads():
    messages = [message("m1", "t1"), message("m2", "t2"), message("m3", "t1"), message("m4", "t3")]
    threads = group_into_threads(messages, max_threads=2)

    assert [t.id for t in threads] == ["t1", "t2"]
    assert [m.id for m in threads[0].messages] == ["m1", "m3"]


def test_empty():
    assert group_into_threads([]) == []
    assert assemble_thread("t1", []).snippet == ""
