import asyncio
import base64
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from database import Page, RecordStore
from errors import ValidationFailed
from identity import Member
from messaging import (
    ConversationPoller,
    build_attachment,
    compose_message,
    conversation_between,
    load_conversation,
    mark_read,
    send_message,
    unread_counts,
)

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _msg(msg_id: str, sender: str, recipient: str, seconds: int, is_read: bool = False) -> dict:
    return {
        "id": msg_id,
        "sender_id": sender,
        "recipient_id": recipient,
        "content": msg_id,
        "timestamp": T0 + timedelta(seconds=seconds),
        "is_read": is_read,
    }


MESSAGES = [
    _msg("m3", "b", "a", 30),
    _msg("m1", "a", "b", 10),
    _msg("x1", "a", "c", 5),
    _msg("m2", "b", "a", 20),
    _msg("x2", "c", "b", 15),
]


def test_conversation_is_pair_filtered_and_ordered() -> None:
    view = conversation_between(MESSAGES, "a", "b")

    assert [m["id"] for m in view] == ["m1", "m2", "m3"]


def test_conversation_view_is_symmetric() -> None:
    for ordering in itertools.permutations(MESSAGES):
        assert conversation_between(list(ordering), "a", "b") == conversation_between(list(ordering), "b", "a")


def test_missing_timestamp_sorts_first() -> None:
    undated = {"id": "m0", "sender_id": "a", "recipient_id": "b", "content": "?"}

    view = conversation_between(MESSAGES + [undated], "b", "a")

    assert view[0]["id"] == "m0"


def test_mark_read_is_idempotent(store: RecordStore) -> None:
    for message in MESSAGES:
        store.create("chatmessages", dict(message))

    first = mark_read(store, store.get_all("chatmessages").items, "a")
    after_once = {m["id"]: m["is_read"] for m in store.get_all("chatmessages").items}
    second = mark_read(store, store.get_all("chatmessages").items, "a")
    after_twice = {m["id"]: m["is_read"] for m in store.get_all("chatmessages").items}

    assert first == 2
    assert second == 0
    assert after_once == after_twice
    assert after_once == {"m3": True, "m1": False, "x1": False, "m2": True, "x2": False}


def test_load_conversation_returns_snapshot_then_marks_read(store: RecordStore) -> None:
    send_message(store, "u1", "u2", "Hi")

    seen_by_u2 = load_conversation(store, "u2", "u1")
    assert [m["content"] for m in seen_by_u2] == ["Hi"]
    assert seen_by_u2[0]["is_read"] is False

    seen_by_u1 = load_conversation(store, "u1", "u2")
    assert seen_by_u1[0]["is_read"] is True


def test_sender_polling_does_not_mark_read(store: RecordStore) -> None:
    send_message(store, "u1", "u2", "Hi")

    load_conversation(store, "u1", "u2")
    load_conversation(store, "u1", "u2")

    assert store.get_all("chatmessages").items[0]["is_read"] is False


def test_unread_counts_per_peer(store: RecordStore) -> None:
    send_message(store, "b", "a", "one")
    send_message(store, "b", "a", "two")
    send_message(store, "c", "a", "three")
    send_message(store, "a", "b", "mine")

    assert unread_counts(store, "a") == {"b": 2, "c": 1}


def test_compose_requires_text_or_attachment() -> None:
    with pytest.raises(ValidationFailed):
        compose_message("a", "b", "   ")

    attachment = build_attachment("notes.pdf", "application/pdf", b"%PDF")
    message = compose_message("a", "b", "", attachment)
    assert message.is_read is False
    assert message.file_data is attachment
    assert message.id


def test_image_attachment_is_embedded() -> None:
    attachment = build_attachment("cat.png", None, b"\x89PNG")

    assert attachment.type == "image/png"
    assert attachment.size == 4
    assert attachment.data_url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()


def test_other_attachments_keep_metadata_only() -> None:
    attachment = build_attachment("slides.pdf", "application/pdf", b"x" * 2048)

    assert attachment.name == "slides.pdf"
    assert attachment.size == 2048
    assert attachment.data_url is None


class FlakyStore:
    """Serves a fixed message list and can be told to fail reads."""

    def __init__(self, messages):
        self.messages = messages
        self.fail = False
        self.created = []

    def get_all(self, collection_name, filter_dict=None, limit=1000, skip=0):
        if self.fail:
            raise ServerSelectionTimeoutError("store unreachable")
        return Page(items=[dict(m) for m in self.messages], has_next=False)

    def update(self, collection_name, data):
        for message in self.messages:
            if message["id"] == data["id"]:
                message.update(data)
        return data

    def create(self, collection_name, data):
        record = data.model_dump()
        self.created.append(record)
        self.messages.append(record)
        return record["id"]


def test_poller_ticks_until_stopped() -> None:
    store = FlakyStore([_msg("m1", "b", "a", 10)])
    updates = []

    async def scenario():
        poller = ConversationPoller(store, Member(id="a"), "b", interval=0.01, on_update=updates.append)
        async with poller:
            await asyncio.sleep(0.08)
            assert poller.running
        assert not poller.running
        stopped_at = len(updates)
        await asyncio.sleep(0.05)
        return stopped_at

    stopped_at = asyncio.run(scenario())

    assert stopped_at >= 2
    assert len(updates) == stopped_at
    assert updates[0][0]["id"] == "m1"
    assert store.messages[0]["is_read"] is True


def test_poller_keeps_last_known_state_on_errors() -> None:
    store = FlakyStore([_msg("m1", "b", "a", 10)])

    async def scenario():
        poller = ConversationPoller(store, Member(id="a"), "b", interval=60)
        await poller.start()
        store.fail = True
        messages = await poller.refresh()
        poller.stop()
        return poller, messages

    poller, messages = asyncio.run(scenario())

    assert [m["id"] for m in messages] == ["m1"]
    assert poller.messages == messages


def test_poller_send_refreshes_immediately() -> None:
    store = FlakyStore([])

    async def scenario():
        poller = ConversationPoller(store, Member(id="a"), "b", interval=60)
        await poller.start()
        sent = await poller.send("hello")
        poller.stop()
        return poller, sent

    poller, sent = asyncio.run(scenario())

    assert sent["content"] == "hello"
    assert [m["content"] for m in poller.messages] == ["hello"]


def test_poller_send_errors_propagate() -> None:
    store = FlakyStore([])

    async def scenario():
        poller = ConversationPoller(store, Member(id="a"), "b", interval=60)
        try:
            await poller.send("   ")
        finally:
            poller.stop()

    with pytest.raises(ValidationFailed):
        asyncio.run(scenario())
    assert store.created == []
