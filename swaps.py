"""
Swap request lifecycle.

    pending -> confirmed   (recipient adds date, time and location)
    pending -> rejected    (recipient, no further data)

Both outcomes are terminal. The store does not enforce any of this; the
checks here are the only guard.
"""
import logging
from typing import List, Optional

from database import EPOCH, RecordStore, as_utc, utcnow
from errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from identity import Member
from schemas import Swaprequest

logger = logging.getLogger(__name__)

COLLECTION = "swaprequests"
FETCH_LIMIT = 1000

ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "rejected"},
    "confirmed": set(),
    "rejected": set(),
}


def describe_session_modes(online: bool, offline: bool) -> str:
    modes = []
    if online:
        modes.append("Online")
    if offline:
        modes.append("Offline")
    if not modes:
        raise ValidationFailed("Select at least one session mode (online or offline)")
    return f"Preferred Session Mode(s): {', '.join(modes)}"


def compose_request_message(note: Optional[str], online: bool, offline: bool) -> str:
    mode_line = describe_session_modes(online, offline)
    note = (note or "").strip()
    return f"{note}\n\n{mode_line}" if note else mode_line


def _get_request(store: RecordStore, request_id: str) -> dict:
    request = store.get_by_id(COLLECTION, request_id)
    if not request:
        raise NotFound("Swap request not found")
    return request


def _check_transition(request: dict, target: str):
    current = request.get("status") or "pending"
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Swap request is already {current}")


def _check_recipient(request: dict, member: Member):
    if request.get("recipient_profile_id") != member.id:
        raise Forbidden("Only the recipient can answer this swap request")


def create_swap_request(
    store: RecordStore,
    member: Member,
    recipient_profile_id: str,
    note: Optional[str] = None,
    online: bool = False,
    offline: bool = False,
) -> dict:
    message = compose_request_message(note, online, offline)
    if not recipient_profile_id:
        raise ValidationFailed("Recipient is required")
    if recipient_profile_id == member.id:
        raise ValidationFailed("You cannot send a swap request to yourself")
    if not store.get_by_id("userprofiles", recipient_profile_id):
        raise NotFound("Recipient profile not found")

    request = Swaprequest(
        sender_profile_id=member.id,
        recipient_profile_id=recipient_profile_id,
        message=message,
        status="pending",
        sent_at=utcnow(),
    )
    request_id = store.create(COLLECTION, request)
    logger.info("swap request %s sent by %s to %s", request_id, member.id, recipient_profile_id)
    return store.get_by_id(COLLECTION, request_id)


def confirm_swap_request(
    store: RecordStore,
    member: Member,
    request_id: str,
    date: str,
    time: str,
    location: str,
    notes: str = "",
) -> dict:
    if not (date and time and location):
        raise ValidationFailed("Date, time and location are required to confirm")
    request = _get_request(store, request_id)
    _check_recipient(request, member)
    _check_transition(request, "confirmed")

    details = f"Meeting confirmed - {date} at {time} in {location}. {notes or ''}".rstrip()
    existing = (request.get("message") or "").strip()
    message = f"{existing}\n\n{details}" if existing else details
    updated = store.update(COLLECTION, {"id": request_id, "status": "confirmed", "message": message})
    logger.info("swap request %s confirmed", request_id)
    return updated


def reject_swap_request(store: RecordStore, member: Member, request_id: str) -> dict:
    request = _get_request(store, request_id)
    _check_recipient(request, member)
    _check_transition(request, "rejected")
    updated = store.update(COLLECTION, {"id": request_id, "status": "rejected"})
    logger.info("swap request %s rejected", request_id)
    return updated


def _with_profiles(store: RecordStore, requests: List[dict], key: str) -> List[dict]:
    profiles = {}
    for request in requests:
        profile_id = request.get(key)
        if profile_id and profile_id not in profiles:
            profiles[profile_id] = store.get_by_id("userprofiles", profile_id)
        request["profile"] = profiles.get(profile_id)
    requests.sort(key=lambda r: as_utc(r.get("sent_at")) or EPOCH, reverse=True)
    return requests


def incoming_requests(store: RecordStore, member: Member) -> List[dict]:
    page = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT)
    incoming = [r for r in page.items if r.get("recipient_profile_id") == member.id]
    return _with_profiles(store, incoming, "sender_profile_id")


def outgoing_requests(store: RecordStore, member: Member) -> List[dict]:
    page = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT)
    outgoing = [r for r in page.items if r.get("sender_profile_id") == member.id]
    return _with_profiles(store, outgoing, "recipient_profile_id")
