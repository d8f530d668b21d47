"""
Message synchronization for two-party conversations.

There is no conversation record: a conversation is every chat message whose
(sender_id, recipient_id) matches the unordered pair of two members. Clients
keep a conversation "live" by re-running one poll cycle every POLL_INTERVAL
seconds; each cycle fetches, filters, orders, then marks incoming messages
as read.
"""
import asyncio
import base64
import logging
import mimetypes
from collections import Counter
from typing import Callable, Dict, List, Optional

from pymongo.errors import PyMongoError

from database import EPOCH, RecordStore, as_utc, new_id, utcnow
from errors import NotFound, ValidationFailed
from identity import Member
from schemas import Chatmessage, FileAttachment

logger = logging.getLogger(__name__)

COLLECTION = "chatmessages"
POLL_INTERVAL = 3.0
FETCH_LIMIT = 1000


def _sort_key(message: dict):
    return as_utc(message.get("timestamp")) or EPOCH


def conversation_between(messages: List[dict], self_id: str, peer_id: str) -> List[dict]:
    """Messages exchanged between self and peer, oldest first."""
    pair = [
        m for m in messages
        if (m.get("sender_id") == self_id and m.get("recipient_id") == peer_id)
        or (m.get("sender_id") == peer_id and m.get("recipient_id") == self_id)
    ]
    # stable sort keeps store order for equal timestamps
    pair.sort(key=_sort_key)
    return pair


def unread_for(messages: List[dict], self_id: str) -> List[dict]:
    return [m for m in messages if m.get("recipient_id") == self_id and not m.get("is_read")]


def mark_read(store: RecordStore, messages: List[dict], self_id: str) -> int:
    """Flip is_read on every unread message addressed to self, one update each."""
    marked = 0
    for message in unread_for(messages, self_id):
        try:
            store.update(COLLECTION, {"id": message["id"], "is_read": True})
            marked += 1
        except (PyMongoError, NotFound):
            logger.warning("Could not mark message %s as read", message.get("id"), exc_info=True)
    return marked


def load_conversation(store: RecordStore, self_id: str, peer_id: str) -> List[dict]:
    """
    Run one poll cycle and return the conversation as fetched.

    Read flags flipped by this cycle show up on the next fetch, for either
    party.
    """
    page = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT)
    conversation = conversation_between(page.items, self_id, peer_id)
    mark_read(store, conversation, self_id)
    return conversation


def unread_counts(store: RecordStore, self_id: str) -> Dict[str, int]:
    """Unread message count per sending peer."""
    page = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT)
    return dict(Counter(m.get("sender_id") for m in unread_for(page.items, self_id)))


def build_attachment(name: str, content_type: Optional[str], payload: bytes) -> FileAttachment:
    """
    Images are embedded as a data URL. Any other file keeps only its name,
    type and size; its content is not stored and cannot be downloaded.
    """
    content_type = content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
    data_url = None
    if content_type.startswith("image/"):
        encoded = base64.b64encode(payload).decode("ascii")
        data_url = f"data:{content_type};base64,{encoded}"
    return FileAttachment(name=name, type=content_type, size=len(payload), data_url=data_url)


def compose_message(
    sender_id: str,
    recipient_id: str,
    content: str = "",
    attachment: Optional[FileAttachment] = None,
) -> Chatmessage:
    if not (content or "").strip() and attachment is None:
        raise ValidationFailed("Type a message or attach a file")
    if not recipient_id:
        raise ValidationFailed("Recipient is required")
    return Chatmessage(
        id=new_id(),
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content or "",
        timestamp=utcnow(),
        is_read=False,
        file_data=attachment,
    )


def send_message(
    store: RecordStore,
    sender_id: str,
    recipient_id: str,
    content: str = "",
    attachment: Optional[FileAttachment] = None,
) -> dict:
    message = compose_message(sender_id, recipient_id, content, attachment)
    store.create(COLLECTION, message)
    return message.model_dump()


class ConversationPoller:
    """
    Keeps one conversation view up to date by polling the store.

    Every tick runs as its own task, so a slow fetch can overlap the next one;
    whichever finishes last replaces `messages` wholesale. stop() cancels
    future ticks only, loads already in flight still complete.
    """

    def __init__(
        self,
        store: RecordStore,
        member: Member,
        peer_id: str,
        interval: float = POLL_INTERVAL,
        on_update: Optional[Callable[[List[dict]], None]] = None,
    ):
        self.store = store
        self.member = member
        self.peer_id = peer_id
        self.interval = interval
        self.on_update = on_update
        self.messages: List[dict] = []
        self._timer: Optional[asyncio.Task] = None
        self._inflight = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def refresh(self) -> List[dict]:
        try:
            messages = await asyncio.to_thread(
                load_conversation, self.store, self.member.id, self.peer_id
            )
        except Exception:
            logger.exception("Error loading messages with %s", self.peer_id)
            return self.messages
        self.messages = messages
        if self.on_update is not None:
            self.on_update(messages)
        return messages

    async def _tick(self):
        while True:
            await asyncio.sleep(self.interval)
            task = asyncio.create_task(self.refresh())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def start(self) -> List[dict]:
        if not self.running:
            self._timer = asyncio.create_task(self._tick())
        return await self.refresh()

    def stop(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def send(self, content: str = "", attachment: Optional[FileAttachment] = None) -> dict:
        """Create a message and refresh right away. Failures propagate to the caller."""
        message = await asyncio.to_thread(
            send_message, self.store, self.member.id, self.peer_id, content, attachment
        )
        await self.refresh()
        return message

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.stop()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
