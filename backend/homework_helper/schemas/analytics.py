from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class StruggleTopic(BaseModel):
    topic: str
    studentCount: int


class UsageTrendsResponse(BaseModel):
    activeStudents: int
    avgAccuracy: int
    commonStruggles: List[StruggleTopic]


class CategoryCount(BaseModel):
    name: str
    count: int


class TopQuestion(BaseModel):
    id: str
    text: str
    subject: Optional[str] = None  # fallback rows only carry id/text/counts
    topic: Optional[str] = None
    askCount: int
    upvotes: int
    netVotes: Optional[int] = None
    askedAt: Optional[datetime] = None


class SystemDashboardResponse(BaseModel):
    categoryDistribution: List[CategoryCount]
    topQuestions: List[TopQuestion]
