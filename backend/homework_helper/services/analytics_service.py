"""
Admin dashboard aggregations.

Both aggregators share the same filters:
    dateRange   7days | 30days | all (or an explicit startDate + endDate)
    category    a subject, or "all"
    search      case-insensitive substring

If the database fails mid-aggregation the dashboard still renders: the error
is logged and a fixed fallback payload is returned instead.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homework_helper.errors import ValidationError
from homework_helper.models.models import Question, Subject
from homework_helper.services.votes import display_net_votes

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
SEARCH_LIMIT = 20

DATE_RANGE_DAYS = {
    "7days": 7,
    "30days": 30,
}

FALLBACK_USAGE_TRENDS = {
    "activeStudents": 3,
    "avgAccuracy": 85,
    "commonStruggles": [
        {"topic": "Calculus Derivatives", "studentCount": 250},
        {"topic": "Biology", "studentCount": 200},
        {"topic": "Algebra", "studentCount": 150},
        {"topic": "World War I", "studentCount": 180},
        {"topic": "Grammar", "studentCount": 120},
    ],
}

FALLBACK_SYSTEM_DASHBOARD = {
    "categoryDistribution": [
        {"name": "Math", "count": 560},
        {"name": "Science", "count": 515},
        {"name": "English", "count": 250},
        {"name": "History", "count": 340},
    ],
    "topQuestions": [
        {"id": "1", "text": "What are Calculus Derivatives?", "askCount": 250, "upvotes": 75},
        {"id": "2", "text": "What is the powerhouse of the cell?", "askCount": 200, "upvotes": 60},
        {"id": "3", "text": "Explain the main causes of WWI", "askCount": 180, "upvotes": 55},
        {"id": "4", "text": "How do I solve quadratic equations?", "askCount": 150, "upvotes": 45},
        {"id": "5", "text": "What is a verb?", "askCount": 120, "upvotes": 35},
    ],
}


# =============================================================================
# FILTERS
# =============================================================================

def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


@dataclass
class DateWindow:
    """Half-open [start, end) window; None on either side means unbounded."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def from_query(
        cls,
        date_range: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "DateWindow":
        """
        Build the window from query parameters.

        An explicit startDate + endDate pair wins over dateRange; endDate is
        inclusive of the whole day. Unknown or missing dateRange means all time.
        """
        if start_date and end_date:
            start = _parse_date(start_date, "startDate")
            end = _parse_date(end_date, "endDate")
            if end < start:
                raise ValidationError("endDate must not be before startDate")
            return cls(
                start=datetime.combine(start, time.min),
                end=datetime.combine(end + timedelta(days=1), time.min),
            )

        days = DATE_RANGE_DAYS.get((date_range or "").lower())
        if days is None:
            return cls()
        now = now or datetime.utcnow()
        return cls(start=now - timedelta(days=days))

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None

    def _column_in_window(self, column):
        conditions = []
        if self.start is not None:
            conditions.append(column >= self.start)
        if self.end is not None:
            conditions.append(column < self.end)
        return and_(*conditions)

    def apply(self, query):
        """Keep questions created or (re-)asked inside the window."""
        if self.is_unbounded:
            return query
        return query.filter(or_(
            self._column_in_window(Question.created_at),
            self._column_in_window(Question.asked_at),
        ))


@dataclass
class DashboardFilters:
    window: DateWindow
    category: Optional[str] = None
    search: Optional[str] = None

    @classmethod
    def from_query(
        cls,
        date_range: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> "DashboardFilters":
        category = category.strip() if category else None
        if not category or category.lower() == "all":
            category = None
        else:
            # Match subjects the way the ask path stores them
            category = next(
                (value for value in Subject.values() if value.lower() == category.lower()),
                category,
            )
        search = search.strip() if search and search.strip() else None
        return cls(
            window=DateWindow.from_query(date_range, start_date, end_date),
            category=category,
            search=search,
        )

    @property
    def limit(self) -> int:
        return SEARCH_LIMIT if self.search else DEFAULT_LIMIT

    def apply_category(self, query):
        if self.category:
            query = query.filter(Question.subject == self.category)
        return query

    def search_pattern(self) -> str:
        escaped = self.search.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"


def _round_half_up(value) -> int:
    """Halves round up (84.5 -> 85), unlike round()."""
    return int(math.floor(float(value) + 0.5))


def _has_answer():
    return or_(
        and_(Question.answer.isnot(None), Question.answer != ""),
        and_(Question.ai_response.isnot(None), Question.ai_response != ""),
    )


# =============================================================================
# USAGE TRENDS
# =============================================================================

def get_usage_trends(db: Session, filters: DashboardFilters) -> Dict[str, Any]:
    """
    Active students, average accuracy and the most common struggle topics.

    Returns FALLBACK_USAGE_TRENDS if the database errors.
    """
    try:
        active_students = filters.window.apply(
            db.query(func.count(func.distinct(Question.asked_by)))
        ).filter(Question.asked_by.isnot(None)).scalar() or 0

        avg_accuracy = filters.window.apply(
            db.query(func.avg(Question.accuracy_rating))
        ).filter(Question.accuracy_rating.isnot(None)).scalar()

        struggles = filters.window.apply(
            db.query(Question.topic, func.count(Question.id).label("student_count"))
        ).filter(Question.topic.isnot(None), Question.topic != "")
        struggles = filters.apply_category(struggles)
        if filters.search:
            struggles = struggles.filter(
                func.lower(Question.topic).like(filters.search_pattern(), escape="\\")
            )
        struggles = (
            struggles.group_by(Question.topic)
            .order_by(func.count(Question.id).desc(), Question.topic)
            .limit(filters.limit)
            .all()
        )

        return {
            "activeStudents": int(active_students),
            "avgAccuracy": _round_half_up(avg_accuracy) if avg_accuracy is not None else 0,
            "commonStruggles": [
                {"topic": topic, "studentCount": count} for topic, count in struggles
            ],
        }
    except SQLAlchemyError as e:
        logger.error("Error fetching usage trends, serving fallback data: %s", e)
        _rollback_quietly(db)
        return _copy_payload(FALLBACK_USAGE_TRENDS)


# =============================================================================
# SYSTEM DASHBOARD
# =============================================================================

def serialize_top_question(question: Question) -> Dict[str, Any]:
    net_votes = display_net_votes(question)
    return {
        "id": question.id,
        "text": question.text,
        "subject": question.subject,
        "topic": question.topic,
        "askCount": question.ask_count,
        "upvotes": net_votes,
        "netVotes": net_votes,
        "askedAt": question.asked_at,
    }


def get_system_dashboard(db: Session, filters: DashboardFilters) -> Dict[str, Any]:
    """
    Answered-question counts per subject and the top questions.

    Top questions rank by ask count, then net votes, then recency. Net votes
    come from the ledger, so they can only break ties in Python: SQL narrows
    the rows to those whose ask count reaches the N-th highest, then the
    survivors are re-ranked.
    Returns FALLBACK_SYSTEM_DASHBOARD if the database errors.
    """
    try:
        distribution = filters.window.apply(
            db.query(Question.subject, func.count(Question.id))
        ).filter(_has_answer()).group_by(Question.subject).order_by(Question.subject).all()

        candidates = filters.window.apply(db.query(Question)).filter(_has_answer())
        candidates = filters.apply_category(candidates)
        if filters.search:
            candidates = candidates.filter(
                func.lower(Question.text).like(filters.search_pattern(), escape="\\")
            )
        cutoff = candidates.with_entities(Question.ask_count).order_by(
            Question.ask_count.desc()
        ).offset(filters.limit - 1).limit(1).scalar()
        if cutoff is not None:
            candidates = candidates.filter(Question.ask_count >= cutoff)
        candidates = candidates.all()

        # Two stable sorts: recency first, then (ask count, net votes)
        top_questions = sorted(
            (serialize_top_question(q) for q in candidates),
            key=lambda item: item["askedAt"] or datetime.min,
            reverse=True,
        )
        top_questions.sort(key=lambda item: (item["askCount"] or 0, item["netVotes"]), reverse=True)
        top_questions = top_questions[:filters.limit]

        return {
            "categoryDistribution": [
                {"name": subject, "count": count} for subject, count in distribution
            ],
            "topQuestions": top_questions,
        }
    except SQLAlchemyError as e:
        logger.error("Error fetching system dashboard, serving fallback data: %s", e)
        _rollback_quietly(db)
        return _copy_payload(FALLBACK_SYSTEM_DASHBOARD)


def _rollback_quietly(db: Session) -> None:
    try:
        db.rollback()
    except SQLAlchemyError as e:
        logger.warning("Rollback after dashboard failure also failed: %s", e)


def _copy_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: [dict(item) for item in value] if isinstance(value, list) else value
        for key, value in payload.items()
    }
