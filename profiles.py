"""Member profiles: lazy creation, browsing and client-side search."""
from typing import List, Literal

from database import Page, RecordStore
from errors import NotFound
from identity import Member
from schemas import Userprofile

COLLECTION = "userprofiles"
BROWSE_PAGE_SIZE = 12
SEARCH_FIELDS = ("full_name", "skills_to_teach", "skills_to_learn", "bio")

FilterType = Literal["all", "teach", "learn"]


def get_profile(store: RecordStore, profile_id: str) -> dict:
    profile = store.get_by_id(COLLECTION, profile_id)
    if not profile:
        raise NotFound("Profile not found")
    return profile


def load_profile(store: RecordStore, member: Member) -> dict:
    """Return the member's profile, or an unsaved draft seeded from the nickname."""
    profile = store.get_by_id(COLLECTION, member.id)
    if profile:
        profile["exists"] = True
        return profile
    draft = Userprofile(full_name=member.nickname or "").model_dump()
    draft["id"] = member.id
    draft["exists"] = False
    return draft


def save_profile(store: RecordStore, member: Member, data: Userprofile) -> dict:
    """Update the member's own profile, creating it on first save."""
    profile_data = data.model_dump()
    if store.get_by_id(COLLECTION, member.id):
        store.update(COLLECTION, {"id": member.id, **profile_data})
    else:
        store.create(COLLECTION, {"id": member.id, **profile_data})
    return store.get_by_id(COLLECTION, member.id)


def list_profiles(store: RecordStore, limit: int = BROWSE_PAGE_SIZE, skip: int = 0) -> Page:
    return store.get_all(COLLECTION, {}, limit=limit, skip=skip)


def search_profiles(profiles: List[dict], term: str = "", filter_type: FilterType = "all") -> List[dict]:
    filtered = list(profiles)

    if term:
        needle = term.lower()
        filtered = [
            p for p in filtered
            if any(needle in (p.get(field) or "").lower() for field in SEARCH_FIELDS)
        ]

    if filter_type == "teach":
        filtered = [p for p in filtered if p.get("skills_to_teach")]
    elif filter_type == "learn":
        filtered = [p for p in filtered if p.get("skills_to_learn")]

    return filtered


def available_on(profiles: List[dict], day: str) -> List[dict]:
    day = day.strip().capitalize()
    return [
        p for p in profiles
        if p.get("is_available", True) and day in (p.get("availability_days") or [])
    ]
