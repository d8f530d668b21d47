"""
Session tests: tutor-authored fixed-choice quizzes.

A test record holds a single learner submission. Once it is set the test is
closed: later submissions are refused and the stored score never changes.
"""
import logging
import math
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel

from database import RecordStore, utcnow
from errors import AlreadySubmitted, Forbidden, NotFound, ValidationFailed
from identity import Member
from schemas import LearnerSubmission, Question, Sessiontest
from sessions import get_session, is_party

logger = logging.getLogger(__name__)

COLLECTION = "tests"
FETCH_LIMIT = 1000
OPTION_COUNT = 4


class QuizResult(BaseModel):
    test_id: str
    score: int
    total_questions: int
    correct_answers: int
    answers: List[int]
    submitted_at: Optional[datetime]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def validate_questions(questions: List[Question]):
    if not questions:
        raise ValidationFailed("Add at least one question")
    for q in questions:
        if not q.question.strip() or not all(opt.strip() for opt in q.options):
            raise ValidationFailed("Please fill in all questions and options")


def score_answers(questions: List[dict], answers: List[int]) -> Tuple[int, int]:
    """Return (correct_count, score) where score is a rounded percentage."""
    if not questions:
        return 0, 0
    correct = sum(1 for q, a in zip(questions, answers) if a == q.get("correct_answer"))
    return correct, round_half_up(100 * correct / len(questions))


def get_test(store: RecordStore, test_id: str) -> dict:
    test = store.get_by_id(COLLECTION, test_id)
    if not test:
        raise NotFound("Test not found")
    return test


def _check_tutor(test: dict, member: Member):
    if test.get("tutor_id") != member.id:
        raise Forbidden("Only the tutor who created this test can change it")


def _check_can_view(store: RecordStore, test: dict, member: Member):
    if test.get("tutor_id") == member.id:
        return
    session = store.get_by_id("sessions", test.get("session_id"))
    if not session or not is_party(session, member):
        raise Forbidden("You are not part of this test's session")


def create_test(
    store: RecordStore,
    member: Member,
    session_id: str,
    test_title: str,
    questions: List[Question],
) -> dict:
    if not (test_title or "").strip() or not session_id:
        raise ValidationFailed("Please fill in all required fields and add at least one question")
    validate_questions(questions)
    session = get_session(store, session_id)
    if not is_party(session, member):
        raise Forbidden("You can only create tests for your own sessions")

    test = Sessiontest(
        tutor_id=member.id,
        session_id=session_id,
        test_title=test_title.strip(),
        questions=questions,
    )
    test_id = store.create(COLLECTION, test)
    logger.info("test %s created for session %s", test_id, session_id)
    return store.get_by_id(COLLECTION, test_id)


def update_test(
    store: RecordStore,
    member: Member,
    test_id: str,
    session_id: str,
    test_title: str,
    questions: List[Question],
) -> dict:
    if not (test_title or "").strip() or not session_id:
        raise ValidationFailed("Please fill in all required fields and add at least one question")
    validate_questions(questions)
    test = get_test(store, test_id)
    _check_tutor(test, member)
    if test.get("learner_submissions"):
        raise AlreadySubmitted("This test has already been taken and can no longer be edited")
    get_session(store, session_id)
    return store.update(COLLECTION, {
        "id": test_id,
        "session_id": session_id,
        "test_title": test_title.strip(),
        "questions": [q.model_dump() for q in questions],
    })


def delete_test(store: RecordStore, member: Member, test_id: str) -> None:
    test = get_test(store, test_id)
    _check_tutor(test, member)
    store.delete(COLLECTION, test_id)


def submit_test(store: RecordStore, member: Member, test_id: str, answers: List[int]) -> QuizResult:
    test = get_test(store, test_id)
    if test.get("learner_submissions"):
        raise AlreadySubmitted("This test has already been submitted")
    if test.get("tutor_id") == member.id:
        raise Forbidden("Tutors cannot take their own test")
    if not is_party(get_session(store, test.get("session_id")), member):
        raise Forbidden("Only a participant of this session can take the test")

    questions = test.get("questions") or []
    if not questions:
        raise ValidationFailed("This test has no questions")
    if len(answers) != len(questions) or any(a not in range(OPTION_COUNT) for a in answers):
        raise ValidationFailed("Answer every question before submitting")

    correct, score = score_answers(questions, answers)
    submitted_at = utcnow()
    submission = LearnerSubmission(learner_id=member.id, answers=answers, submitted_at=submitted_at)
    store.update(COLLECTION, {
        "id": test_id,
        "learner_submissions": submission.model_dump(),
        "score": score,
        "submission_date": submitted_at,
    })
    logger.info("test %s submitted by %s with score %s", test_id, member.id, score)
    return QuizResult(
        test_id=test_id,
        score=score,
        total_questions=len(questions),
        correct_answers=correct,
        answers=list(answers),
        submitted_at=submitted_at,
    )


def result_view(store: RecordStore, member: Member, test_id: str) -> Optional[QuizResult]:
    """Stored result, readable by the tutor and the parties of the test's session."""
    test = get_test(store, test_id)
    _check_can_view(store, test, member)
    return result_for(test)


def result_for(test: dict) -> Optional[QuizResult]:
    submission = test.get("learner_submissions")
    if not submission:
        return None
    questions = test.get("questions") or []
    answers = submission.get("answers") or []
    correct, _ = score_answers(questions, answers)
    return QuizResult(
        test_id=test["id"],
        score=test.get("score", 0),
        total_questions=len(questions),
        correct_answers=correct,
        answers=answers,
        submitted_at=submission.get("submitted_at"),
    )


def visible_tests(store: RecordStore, member: Member) -> List[dict]:
    """Tests the member wrote, plus tests tied to sessions the member is part of."""
    sessions = store.get_all("sessions", {}, limit=FETCH_LIMIT).items
    my_sessions = {s["id"] for s in sessions if is_party(s, member)}
    tests = store.get_all(COLLECTION, {}, limit=FETCH_LIMIT).items
    visible = [
        t for t in tests
        if t.get("tutor_id") == member.id or t.get("session_id") in my_sessions
    ]
    tutors = {}
    for test in visible:
        tutor_id = test.get("tutor_id")
        if tutor_id and tutor_id not in tutors:
            tutors[tutor_id] = store.get_by_id("userprofiles", tutor_id)
        test["tutor_profile"] = tutors.get(tutor_id)
        test["can_take"] = tutor_id != member.id and not test.get("learner_submissions")
    return visible
