"""
Request and response models for the student question API.

Field names are camelCase to match the mobile client's JSON.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel


# =============================================================================
# ASK
# =============================================================================

class AskQuestionRequest(BaseModel):
    # Presence and length are checked by the question service so that an
    # empty question is a 400 VALIDATION_ERROR rather than a 422
    question: Optional[str] = None
    subject: Optional[str] = None
    topic: Optional[str] = None


class AskQuestionResponse(BaseModel):
    success: bool = True
    question: str
    answer: str
    subject: str
    topic: Optional[str] = None
    questionId: Optional[str] = None
    timestamp: datetime


# =============================================================================
# FEEDS
# =============================================================================

class QuestionItem(BaseModel):
    id: str
    text: str
    subject: str
    topic: Optional[str] = None
    answer: Optional[str] = None
    askedAt: Optional[datetime] = None
    askCount: int
    askedBy: Optional[str] = None
    netVotes: int
    userVote: Optional[Literal["up", "down"]] = None
    upvotes: int


class QuestionListResponse(BaseModel):
    success: bool = True
    questions: List[QuestionItem]
    count: int


# =============================================================================
# VOTES
# =============================================================================

class VoteResponse(BaseModel):
    success: bool = True
    message: str
    netVotes: int
    userVote: Optional[Literal["up", "down"]] = None
    upvotes: int
