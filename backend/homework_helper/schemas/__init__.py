from homework_helper.schemas.analytics import SystemDashboardResponse, UsageTrendsResponse
from homework_helper.schemas.questions import (
    AskQuestionRequest,
    AskQuestionResponse,
    QuestionItem,
    QuestionListResponse,
    VoteResponse,
)

__all__ = [
    "AskQuestionRequest",
    "AskQuestionResponse",
    "QuestionItem",
    "QuestionListResponse",
    "SystemDashboardResponse",
    "UsageTrendsResponse",
    "VoteResponse",
]
