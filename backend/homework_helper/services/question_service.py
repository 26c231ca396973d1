"""
Question history service.

- Validation and normalisation of incoming questions
- Upsert-on-answer: recording a generated answer against the question history
- The three student feeds (my / community / featured) annotated with vote state
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homework_helper.errors import ServiceUnavailableError, UnauthenticatedError, ValidationError
from homework_helper.models.models import Question, Subject
from homework_helper.services.votes import (
    VoteLedger,
    compat_upvotes,
    display_net_votes,
)

logger = logging.getLogger(__name__)

MAX_QUESTION_LENGTH = 2000

# A question is "featured" once it is popular enough on either axis
FEATURED_MIN_UPVOTES = 5
FEATURED_MIN_ASK_COUNT = 3


# =============================================================================
# VALIDATION
# =============================================================================

def normalize_question_text(text: Optional[str], max_length: int = MAX_QUESTION_LENGTH) -> str:
    """Trim the question and enforce presence and length limits."""
    if text is None or not text.strip():
        raise ValidationError("Please provide a question")
    if len(text) > max_length:
        raise ValidationError(f"Question must be {max_length} characters or less")
    return text.strip()


def normalize_subject(subject: Optional[str]) -> str:
    """Map an optional subject to one of the stored Subject values (default Other)."""
    if subject is None or not subject.strip():
        return Subject.OTHER.value
    for value in Subject.values():
        if value.lower() == subject.strip().lower():
            return value
    raise ValidationError(f"Subject must be one of: {', '.join(Subject.values())}")


def normalize_topic(topic: Optional[str]) -> Optional[str]:
    if topic is None or not topic.strip():
        return None
    return topic.strip()


# =============================================================================
# UPSERT-ON-ANSWER
# =============================================================================

def record_answer(
    db: Session,
    text: str,
    subject: str,
    topic: Optional[str],
    answer: str,
    asker_id: Optional[str],
) -> Question:
    """
    Record a generated answer in the question history.

    Repeat asks of the same text + subject by the same named asker collapse
    into one row whose ask_count grows. Every other ask (new text, another
    asker, or a guest) gets its own row. Guests have no identity to key on, so
    their asks are never merged.

    Raises SQLAlchemyError if the store is unavailable; the caller decides
    whether that is fatal.
    """
    existing = None
    if asker_id:
        existing = db.query(Question).filter(
            Question.text == text,
            Question.subject == subject,
            Question.asked_by == asker_id,
        ).first()

    now = datetime.utcnow()

    if existing is not None:
        existing.answer = answer
        existing.ai_response = answer
        existing.ask_count = (existing.ask_count or 0) + 1
        existing.asked_at = now
        db.commit()
        db.refresh(existing)
        logger.info("Updated existing question %s (ask_count=%d)", existing.id, existing.ask_count)
        return existing

    question = Question(
        text=text,
        subject=subject,
        topic=topic,
        answer=answer,
        ai_response=answer,
        asked_by=asker_id or None,
        asked_at=now,
        ask_count=1,
        upvotes=0,
        votes_map={},
    )
    db.add(question)
    db.commit()
    db.refresh(question)
    logger.info("Created question %s [%s] %r", question.id, subject, text[:50])
    return question


# =============================================================================
# FEEDS
# =============================================================================

def _has_answer():
    return or_(
        and_(Question.answer.isnot(None), Question.answer != ""),
        and_(Question.ai_response.isnot(None), Question.ai_response != ""),
    )


def _subject_filter(query, subject: Optional[str]):
    if subject and subject.lower() != "all":
        query = query.filter(Question.subject == subject)
    return query


def serialize_question(
    question: Question,
    viewer_id: Optional[str] = None,
    asked_by_label: Optional[str] = None,
    anonymize: bool = False,
) -> Dict[str, Any]:
    """
    Question as returned by the feeds, annotated with vote state.

    With `anonymize`, a non-null asker is replaced by `asked_by_label`.
    """
    ledger = VoteLedger.from_storage(question.votes_map)
    net_votes = display_net_votes(question)
    user_vote = ledger.vote_of(viewer_id)

    asked_by = question.asked_by
    if anonymize:
        asked_by = asked_by_label if question.asked_by else None

    return {
        "id": question.id,
        "text": question.text,
        "subject": question.subject,
        "topic": question.topic,
        "answer": question.answer_text,
        "askedAt": question.asked_at,
        "askCount": question.ask_count,
        "askedBy": asked_by,
        "netVotes": net_votes,
        "userVote": user_vote.value if user_vote else None,
        "upvotes": compat_upvotes(net_votes),
    }


def _run_feed(query, limit: int, skip: int) -> List[Question]:
    try:
        return query.offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error("Failed to load questions: %s", e)
        raise ServiceUnavailableError("Database not connected. Questions cannot be loaded.") from e


def get_my_questions(
    db: Session,
    user_id: Optional[str],
    subject: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    """The caller's own questions, newest first."""
    if not user_id:
        raise UnauthenticatedError("User ID required to fetch personal questions")

    query = db.query(Question).filter(Question.asked_by == user_id)
    query = _subject_filter(query, subject).order_by(Question.asked_at.desc())

    return [serialize_question(q, viewer_id=user_id) for q in _run_feed(query, limit, skip)]


def get_community_questions(
    db: Session,
    user_id: Optional[str],
    subject: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    """Answered questions from everyone else (seed and guest questions included)."""
    query = db.query(Question).filter(_has_answer())
    if user_id:
        query = query.filter(or_(Question.asked_by.is_(None), Question.asked_by != user_id))
    query = _subject_filter(query, subject).order_by(
        Question.asked_at.desc(),
        Question.ask_count.desc(),
        Question.upvotes.desc(),
    )

    return [
        serialize_question(q, viewer_id=user_id, asked_by_label="community", anonymize=True)
        for q in _run_feed(query, limit, skip)
    ]


def get_featured_questions(
    db: Session,
    user_id: Optional[str],
    subject: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    """Popular answered questions."""
    query = db.query(Question).filter(
        or_(
            Question.upvotes >= FEATURED_MIN_UPVOTES,
            Question.ask_count >= FEATURED_MIN_ASK_COUNT,
        ),
        _has_answer(),
    )
    query = _subject_filter(query, subject).order_by(
        Question.upvotes.desc(),
        Question.ask_count.desc(),
        Question.asked_at.desc(),
    )

    return [
        serialize_question(q, viewer_id=user_id, asked_by_label="anonymous", anonymize=True)
        for q in _run_feed(query, limit, skip)
    ]
