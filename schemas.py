"""
Database Schemas for SkillSwap

Each Pydantic model corresponds to a MongoDB collection. The collection name
is the lowercase plural of the class name (Userprofile -> userprofiles, with
Sessiontest stored in "tests").
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

SwapStatus = Literal["pending", "confirmed", "rejected"]
SessionStatus = Literal["scheduled", "completed", "cancelled"]


class Userprofile(BaseModel):
    """
    Collection: userprofiles
    One profile per member; the record id is the member id.
    """
    full_name: str = Field("", description="Display name")
    bio: Optional[str] = Field(None, description="Short bio")
    profile_picture: Optional[str] = Field(None, description="Profile image URL")
    skills_to_teach: Optional[str] = Field(None, description="Free text, e.g. 'Guitar, Spanish'")
    skills_to_learn: Optional[str] = Field(None, description="Free text, e.g. 'Python'")
    is_available: bool = Field(True, description="Open to new swaps")
    availability_details: Optional[str] = Field(None, description="Availability text, e.g. evenings")
    availability_days: List[str] = Field(default_factory=list, description="Weekday names")
    instagram_id: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_id: Optional[str] = None

    @field_validator("availability_days")
    @classmethod
    def known_weekdays(cls, days: List[str]) -> List[str]:
        cleaned = []
        for day in days:
            name = day.strip().capitalize()
            if name not in WEEKDAYS:
                raise ValueError(f"Unknown weekday: {day}")
            if name not in cleaned:
                cleaned.append(name)
        return cleaned


class FileAttachment(BaseModel):
    """
    Attachment metadata carried inside a chat message. Only images carry a
    payload (data_url); other files are metadata only.
    """
    name: str
    type: str = Field("application/octet-stream", description="MIME type")
    size: int = Field(0, ge=0, description="Size in bytes")
    data_url: Optional[str] = Field(None, description="Embedded image as a data URL")


class Chatmessage(BaseModel):
    """
    Collection: chatmessages
    Immutable once created except for is_read, flipped by the recipient.
    """
    id: str
    sender_id: str
    recipient_id: str
    content: str = ""
    timestamp: datetime
    is_read: bool = False
    file_data: Optional[FileAttachment] = None


class Swaprequest(BaseModel):
    """
    Collection: swaprequests
    pending -> confirmed | rejected, transitioned once by the recipient.
    """
    sender_profile_id: str
    recipient_profile_id: str
    message: str = ""
    status: SwapStatus = "pending"
    sent_at: datetime


class Session(BaseModel):
    """
    Collection: sessions
    A scheduled meeting between a host and a single participant.
    """
    host_id: str
    participant_id: str
    scheduled_date_time: datetime
    google_meet_link: str
    session_status: SessionStatus = "scheduled"


class Review(BaseModel):
    """
    Collection: reviews
    Created once, never updated, deletable by its author.
    """
    reviewer_id: str
    reviewee_id: str
    rating: int = Field(5, ge=1, le=5)
    comment: str = ""
    session_id: Optional[str] = None


class Question(BaseModel):
    question: str
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_answer: int = Field(..., ge=0, le=3, description="Index into options")


class LearnerSubmission(BaseModel):
    learner_id: str
    answers: List[int]
    submitted_at: datetime


class Sessiontest(BaseModel):
    """
    Collection: tests
    A fixed-choice quiz tied to a session. Holds at most one learner submission.
    """
    tutor_id: str
    session_id: str
    test_title: str
    questions: List[Question] = Field(default_factory=list)
    learner_submissions: Optional[LearnerSubmission] = None
    score: int = 0
    submission_date: Optional[datetime] = None
