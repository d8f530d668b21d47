"""Reviews left by one member for another. Never edited; only the author may delete."""
import logging
from typing import List, Optional

from database import RecordStore
from errors import Forbidden, NotFound, ValidationFailed
from identity import Member
from schemas import Review

logger = logging.getLogger(__name__)

COLLECTION = "reviews"
FETCH_LIMIT = 1000


def create_review(
    store: RecordStore,
    member: Member,
    reviewee_id: str,
    rating: int,
    comment: str = "",
    session_id: Optional[str] = None,
) -> dict:
    if not reviewee_id:
        raise ValidationFailed("Please select a tutor to review")
    if reviewee_id == member.id:
        raise ValidationFailed("You cannot review yourself")
    if rating not in range(1, 6):
        raise ValidationFailed("Rating must be between 1 and 5")
    review = Review(
        reviewer_id=member.id,
        reviewee_id=reviewee_id,
        rating=rating,
        comment=comment or "",
        session_id=session_id or None,
    )
    review_id = store.create(COLLECTION, review)
    return store.get_by_id(COLLECTION, review_id)


def delete_review(store: RecordStore, member: Member, review_id: str) -> None:
    review = store.get_by_id(COLLECTION, review_id)
    if not review:
        raise NotFound("Review not found")
    if review.get("reviewer_id") != member.id:
        raise Forbidden("Only the author can delete this review")
    store.delete(COLLECTION, review_id)
    logger.info("review %s deleted by its author", review_id)


def _attach(store: RecordStore, reviews: List[dict], key: str) -> List[dict]:
    profiles = {}
    for review in reviews:
        profile_id = review.get(key)
        if profile_id and profile_id not in profiles:
            profiles[profile_id] = store.get_by_id("userprofiles", profile_id)
        review["profile"] = profiles.get(profile_id)
    return reviews


def reviews_received(store: RecordStore, member_id: str) -> List[dict]:
    items = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT).items
    return _attach(store, [r for r in items if r.get("reviewee_id") == member_id], "reviewer_id")


def reviews_given(store: RecordStore, member_id: str) -> List[dict]:
    items = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT).items
    return _attach(store, [r for r in items if r.get("reviewer_id") == member_id], "reviewee_id")


def average_rating(reviews: List[dict]) -> float:
    if not reviews:
        return 0.0
    total = sum(r.get("rating") or 0 for r in reviews)
    return round(total / len(reviews), 1)


def rating_percent(reviews: List[dict]) -> int:
    return round(average_rating(reviews) * 20)
