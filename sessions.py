"""
Scheduled sessions and the session access gate.

A session room cannot be entered before its scheduled start. Once started
it stays enterable indefinitely; the elapsed counter runs from the scheduled
start, not from when a member joined.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel

from database import EPOCH, RecordStore, as_utc, utcnow
from errors import Forbidden, NotFound, ValidationFailed
from identity import Member
from schemas import Session, SessionStatus
from whiteboard import Whiteboard

logger = logging.getLogger(__name__)

COLLECTION = "sessions"
FETCH_LIMIT = 1000


class AccessState(str, Enum):
    NOT_STARTED = "not_started"
    LIVE = "live"


class SessionAccess(BaseModel):
    state: AccessState
    scheduled_at: datetime
    elapsed: Optional[timedelta] = None

    @property
    def live(self) -> bool:
        return self.state is AccessState.LIVE


def format_elapsed(delta: timedelta) -> str:
    total = max(int(delta.total_seconds()), 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def is_party(session: dict, member: Member) -> bool:
    return member.id in (session.get("host_id"), session.get("participant_id"))


def get_session(store: RecordStore, session_id: str) -> dict:
    session = store.get_by_id(COLLECTION, session_id)
    if not session:
        raise NotFound("Session not found")
    return session


def check_access(session: dict, member: Member, now: Optional[datetime] = None) -> SessionAccess:
    if not is_party(session, member):
        raise Forbidden("You are not part of this session")
    scheduled = as_utc(session.get("scheduled_date_time"))
    if scheduled is None:
        raise ValidationFailed("Session has no scheduled time")
    now = as_utc(now) or utcnow()
    if now < scheduled:
        return SessionAccess(state=AccessState.NOT_STARTED, scheduled_at=scheduled)
    return SessionAccess(state=AccessState.LIVE, scheduled_at=scheduled, elapsed=now - scheduled)


def _validate_fields(participant_id: str, scheduled_date_time, google_meet_link: str):
    if not (participant_id and scheduled_date_time and google_meet_link):
        raise ValidationFailed("Please fill in all required fields")


def create_session(
    store: RecordStore,
    member: Member,
    participant_id: str,
    scheduled_date_time: datetime,
    google_meet_link: str,
    session_status: SessionStatus = "scheduled",
) -> dict:
    _validate_fields(participant_id, scheduled_date_time, google_meet_link)
    if participant_id == member.id:
        raise ValidationFailed("You cannot schedule a session with yourself")
    session = Session(
        host_id=member.id,
        participant_id=participant_id,
        scheduled_date_time=as_utc(scheduled_date_time),
        google_meet_link=google_meet_link,
        session_status=session_status,
    )
    session_id = store.create(COLLECTION, session)
    logger.info("session %s scheduled by %s", session_id, member.id)
    return store.get_by_id(COLLECTION, session_id)


def update_session(
    store: RecordStore,
    member: Member,
    session_id: str,
    participant_id: str,
    scheduled_date_time: datetime,
    google_meet_link: str,
    session_status: SessionStatus,
) -> dict:
    """Overwrite the editable fields. Concurrent edits: the last one wins."""
    _validate_fields(participant_id, scheduled_date_time, google_meet_link)
    session = get_session(store, session_id)
    if not is_party(session, member):
        raise Forbidden("You are not part of this session")
    return store.update(COLLECTION, {
        "id": session_id,
        "participant_id": participant_id,
        "scheduled_date_time": as_utc(scheduled_date_time),
        "google_meet_link": google_meet_link,
        "session_status": session_status,
    })


def delete_session(store: RecordStore, member: Member, session_id: str) -> None:
    session = get_session(store, session_id)
    if not is_party(session, member):
        raise Forbidden("You are not part of this session")
    store.delete(COLLECTION, session_id)


def sessions_for(store: RecordStore, member: Member) -> List[dict]:
    page = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT)
    mine = [s for s in page.items if is_party(s, member)]
    profiles = {}
    for session in mine:
        other_id = session["participant_id"] if session.get("host_id") == member.id else session.get("host_id")
        if other_id and other_id not in profiles:
            profiles[other_id] = store.get_by_id("userprofiles", other_id)
        session["other_profile"] = profiles.get(other_id)
    mine.sort(key=lambda s: as_utc(s.get("scheduled_date_time")) or EPOCH)
    return mine


class MediaCapture:
    """Local audio/video track state. Nothing is sent to the other party."""

    def __init__(self):
        self.started = False
        self.audio = False
        self.video = False

    def start(self, audio: bool = True, video: bool = True):
        self.started = True
        self.audio = audio
        self.video = video

    def toggle_audio(self) -> bool:
        if self.started:
            self.audio = not self.audio
        return self.audio

    def toggle_video(self) -> bool:
        if self.started:
            self.video = not self.video
        return self.video

    def stop(self):
        self.started = False
        self.audio = False
        self.video = False


class SessionRoom:
    """One member's view of a session: gate, local media, elapsed timer, whiteboard."""

    def __init__(
        self,
        store: RecordStore,
        member: Member,
        session_id: str,
        media: Optional[MediaCapture] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.member = member
        self.session_id = session_id
        self.media = media or MediaCapture()
        self.clock = clock
        self.whiteboard = Whiteboard()
        self.session: Optional[dict] = None
        self.access: Optional[SessionAccess] = None

    def enter(self) -> SessionAccess:
        self.session = get_session(self.store, self.session_id)
        self.access = check_access(self.session, self.member, self.clock())
        if self.access.live:
            self.media.start()
        else:
            logger.debug("session %s not started until %s", self.session_id, self.access.scheduled_at)
        return self.access

    def elapsed(self) -> Optional[timedelta]:
        if self.access is None or not self.access.live:
            return None
        return as_utc(self.clock()) - self.access.scheduled_at

    def leave(self):
        self.media.stop()
