import base64
import binascii
import logging
import os
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

import database
import messaging
import profiles
import quizzes
import reviews
import sessions
import swaps
from database import RecordStore, get_store
from errors import SkillSwapError, ValidationFailed
from identity import Member, get_current_member
from schemas import Question, SessionStatus, Userprofile

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("skillswap")

app = FastAPI(title="SkillSwap API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Error handling ----------

@app.exception_handler(SkillSwapError)
async def skillswap_error_handler(request: Request, exc: SkillSwapError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Record store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Record store unavailable, please try again"})

# ---------- Request Models ----------

class AttachmentUpload(BaseModel):
    name: str
    type: Optional[str] = None
    content_base64: str = ""

class MessageCreate(BaseModel):
    content: str = ""
    attachment: Optional[AttachmentUpload] = None

class SessionModes(BaseModel):
    online: bool = False
    offline: bool = False

class SwapRequestCreate(BaseModel):
    recipient_profile_id: str
    message: Optional[str] = None
    session_modes: SessionModes = Field(default_factory=SessionModes)

class SwapConfirm(BaseModel):
    date: str
    time: str
    location: str
    notes: str = ""

class SessionCreate(BaseModel):
    participant_id: str
    scheduled_date_time: datetime
    google_meet_link: str
    session_status: SessionStatus = "scheduled"

class ReviewCreate(BaseModel):
    reviewee_id: str
    rating: int = 5
    comment: str = ""
    session_id: Optional[str] = None

class QuizCreate(BaseModel):
    session_id: str
    test_title: str
    questions: List[Question]

class QuizSubmit(BaseModel):
    answers: List[int]

# ---------- Core Endpoints ----------

@app.get("/")
def read_root():
    return {"message": "SkillSwap Backend Running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response

# Profiles
@app.get("/api/profiles")
def browse_profiles(
    search: str = "",
    filter_type: Literal["all", "teach", "learn"] = "all",
    day: Optional[str] = None,
    limit: int = Query(profiles.BROWSE_PAGE_SIZE, ge=1, le=database.DEFAULT_PAGE_LIMIT),
    skip: int = Query(0, ge=0),
    store: RecordStore = Depends(get_store),
):
    page = profiles.list_profiles(store, limit=limit, skip=skip)
    items = profiles.search_profiles(page.items, search, filter_type)
    if day:
        items = profiles.available_on(items, day)
    return {"items": items, "has_next": page.has_next}

@app.get("/api/profiles/me")
def my_profile(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    return profiles.load_profile(store, member)

@app.put("/api/profiles/me")
def save_my_profile(
    payload: Userprofile,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return profiles.save_profile(store, member, payload)

@app.get("/api/profiles/{profile_id}")
def profile_detail(profile_id: str, store: RecordStore = Depends(get_store)):
    return profiles.get_profile(store, profile_id)

@app.get("/api/profiles/{profile_id}/reviews")
def profile_reviews(profile_id: str, store: RecordStore = Depends(get_store)):
    received = reviews.reviews_received(store, profile_id)
    return {
        "reviews": received,
        "average_rating": reviews.average_rating(received),
        "rating_percent": reviews.rating_percent(received),
    }

# Conversations
@app.get("/api/conversations")
def unread_summary(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    return {"unread": messaging.unread_counts(store, member.id)}

@app.get("/api/conversations/{peer_id}")
def poll_conversation(
    peer_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return {
        "peer": store.get_by_id("userprofiles", peer_id),
        "messages": messaging.load_conversation(store, member.id, peer_id),
        "poll_interval": messaging.POLL_INTERVAL,
    }

@app.post("/api/conversations/{peer_id}/messages")
def post_message(
    peer_id: str,
    payload: MessageCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    attachment = None
    if payload.attachment is not None:
        try:
            raw = base64.b64decode(payload.attachment.content_base64, validate=True)
        except binascii.Error:
            raise ValidationFailed("Attachment content is not valid base64")
        attachment = messaging.build_attachment(payload.attachment.name, payload.attachment.type, raw)
    message = messaging.send_message(store, member.id, peer_id, payload.content, attachment)
    return {
        "message": message,
        "messages": messaging.load_conversation(store, member.id, peer_id),
    }

# Swap requests
@app.post("/api/swap-requests")
def send_swap_request(
    payload: SwapRequestCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return swaps.create_swap_request(
        store,
        member,
        payload.recipient_profile_id,
        payload.message,
        online=payload.session_modes.online,
        offline=payload.session_modes.offline,
    )

@app.get("/api/swap-requests/incoming")
def list_incoming(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    return swaps.incoming_requests(store, member)

@app.get("/api/swap-requests/outgoing")
def list_outgoing(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    return swaps.outgoing_requests(store, member)

@app.post("/api/swap-requests/{request_id}/confirm")
def confirm_request(
    request_id: str,
    payload: SwapConfirm,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return swaps.confirm_swap_request(
        store, member, request_id, payload.date, payload.time, payload.location, payload.notes
    )

@app.post("/api/swap-requests/{request_id}/reject")
def reject_request(
    request_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return swaps.reject_swap_request(store, member, request_id)

# Sessions
@app.get("/api/sessions")
def list_sessions(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    return sessions.sessions_for(store, member)

@app.post("/api/sessions")
def create_session(
    payload: SessionCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return sessions.create_session(
        store,
        member,
        payload.participant_id,
        payload.scheduled_date_time,
        payload.google_meet_link,
        payload.session_status,
    )

@app.put("/api/sessions/{session_id}")
def update_session(
    session_id: str,
    payload: SessionCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return sessions.update_session(
        store,
        member,
        session_id,
        payload.participant_id,
        payload.scheduled_date_time,
        payload.google_meet_link,
        payload.session_status,
    )

@app.delete("/api/sessions/{session_id}")
def delete_session(
    session_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    sessions.delete_session(store, member, session_id)
    return {"status": "deleted"}

@app.get("/api/sessions/{session_id}/access")
def session_access(
    session_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    session = sessions.get_session(store, session_id)
    access = sessions.check_access(session, member)
    response = {
        "state": access.state.value,
        "scheduled_date_time": access.scheduled_at,
        "elapsed": None,
        "elapsed_seconds": None,
    }
    if access.live:
        response["elapsed"] = sessions.format_elapsed(access.elapsed)
        response["elapsed_seconds"] = int(access.elapsed.total_seconds())
        response["google_meet_link"] = session.get("google_meet_link")
    return response

# Reviews
@app.get("/api/reviews")
def my_reviews(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    received = reviews.reviews_received(store, member.id)
    return {
        "received": received,
        "given": reviews.reviews_given(store, member.id),
        "average_rating": reviews.average_rating(received),
        "rating_percent": reviews.rating_percent(received),
    }

@app.post("/api/reviews")
def post_review(
    payload: ReviewCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return reviews.create_review(
        store, member, payload.reviewee_id, payload.rating, payload.comment, payload.session_id
    )

@app.delete("/api/reviews/{review_id}")
def remove_review(
    review_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    reviews.delete_review(store, member, review_id)
    return {"status": "deleted"}

# Tests
@app.get("/api/tests")
def list_tests(member: Member = Depends(get_current_member), store: RecordStore = Depends(get_store)):
    return quizzes.visible_tests(store, member)

@app.post("/api/tests")
def create_test(
    payload: QuizCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return quizzes.create_test(store, member, payload.session_id, payload.test_title, payload.questions)

@app.put("/api/tests/{test_id}")
def update_test(
    test_id: str,
    payload: QuizCreate,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return quizzes.update_test(
        store, member, test_id, payload.session_id, payload.test_title, payload.questions
    )

@app.delete("/api/tests/{test_id}")
def delete_test(
    test_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    quizzes.delete_test(store, member, test_id)
    return {"status": "deleted"}

@app.post("/api/tests/{test_id}/submit")
def submit_test(
    test_id: str,
    payload: QuizSubmit,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    return quizzes.submit_test(store, member, test_id, payload.answers)

@app.get("/api/tests/{test_id}/result")
def test_result(
    test_id: str,
    member: Member = Depends(get_current_member),
    store: RecordStore = Depends(get_store),
):
    result = quizzes.result_view(store, member, test_id)
    if result is None:
        return {"submitted": False}
    return {"submitted": True, **result.model_dump()}

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
