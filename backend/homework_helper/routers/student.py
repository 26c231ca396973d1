"""
Student Router

Asking questions, browsing question history and voting.

Authentication is optional on every route here: a missing or invalid token
means guest mode. Guests can ask and browse, but cannot vote or list "my"
questions.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homework_helper.config import Settings
from homework_helper.context import get_answer_service, get_settings
from homework_helper.database import get_db
from homework_helper.dependencies.auth import AuthenticatedUser, get_current_user_optional, user_id_of
from homework_helper.schemas.questions import (
    AskQuestionRequest,
    AskQuestionResponse,
    QuestionListResponse,
    VoteResponse,
)
from homework_helper.services import question_service
from homework_helper.services.answer_service import AnswerService
from homework_helper.services.votes import VoteDirection, cast_vote

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/student", tags=["student"])


@router.post("/question", response_model=AskQuestionResponse)
def ask_question(
    request: AskQuestionRequest,
    db: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
    answer_service: AnswerService = Depends(get_answer_service),
    settings: Settings = Depends(get_settings),
):
    """
    Generate an answer for a homework question and record it in the history.

    The answer is returned even if it could not be saved; questionId is then null.
    """
    text = question_service.normalize_question_text(request.question, settings.max_question_length)
    subject_given = bool(request.subject and request.subject.strip())
    subject = question_service.normalize_subject(request.subject)
    topic = question_service.normalize_topic(request.topic)

    answer = answer_service.generate_answer(
        text,
        subject=subject if subject_given else None,
        topic=topic,
    )

    question_id = None
    try:
        saved = question_service.record_answer(
            db,
            text=text,
            subject=subject,
            topic=topic,
            answer=answer,
            asker_id=user_id_of(user),
        )
        question_id = saved.id
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save question to database, returning answer unsaved: {e}")

    return AskQuestionResponse(
        question=text,
        answer=answer,
        subject=subject if subject_given else "General",
        topic=topic,
        questionId=question_id,
        timestamp=datetime.utcnow(),
    )


@router.get("/questions/my", response_model=QuestionListResponse)
def get_my_questions(
    subject: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
):
    questions = question_service.get_my_questions(db, user_id_of(user), subject, limit, skip)
    return QuestionListResponse(questions=questions, count=len(questions))


@router.get("/questions/community", response_model=QuestionListResponse)
def get_community_questions(
    subject: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
):
    """Answered questions from other students."""
    questions = question_service.get_community_questions(db, user_id_of(user), subject, limit, skip)
    return QuestionListResponse(questions=questions, count=len(questions))


@router.get("/questions/featured", response_model=QuestionListResponse)
def get_featured_questions(
    subject: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
):
    """Popular questions: at least 5 upvotes or asked 3+ times."""
    questions = question_service.get_featured_questions(db, user_id_of(user), subject, limit, skip)
    return QuestionListResponse(questions=questions, count=len(questions))


def _vote(db: Session, question_id: str, user: Optional[AuthenticatedUser], direction: VoteDirection, settings: Settings):
    result = cast_vote(
        db,
        question_id,
        user_id_of(user),
        direction,
        max_attempts=settings.vote_max_attempts,
    )
    return VoteResponse(**result.to_response())


@router.post("/questions/{question_id}/upvote", response_model=VoteResponse)
def upvote_question(
    question_id: str,
    db: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
    settings: Settings = Depends(get_settings),
):
    """Upvote, or remove an existing upvote."""
    return _vote(db, question_id, user, VoteDirection.UP, settings)


@router.post("/questions/{question_id}/downvote", response_model=VoteResponse)
def downvote_question(
    question_id: str,
    db: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
    settings: Settings = Depends(get_settings),
):
    """Downvote, or remove an existing downvote."""
    return _vote(db, question_id, user, VoteDirection.DOWN, settings)
