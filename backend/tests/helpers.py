"""
Shared test data builders.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from homework_helper.models.models import Question

STUDENT_ID = "student-uid-1"
OTHER_STUDENT_ID = "student-uid-2"
ADMIN_ID = "admin-uid-1"


def make_question(db: Session, **overrides) -> Question:
    """Insert a question with sensible defaults"""
    values = {
        "text": "What is the powerhouse of the cell?",
        "subject": "Science",
        "topic": "Biology",
        "answer": "The mitochondria.",
        "ai_response": "The mitochondria.",
        "asked_by": STUDENT_ID,
        "asked_at": datetime.utcnow(),
        "ask_count": 1,
        "upvotes": 0,
        "votes_map": {},
    }
    values.update(overrides)
    question = Question(**values)
    db.add(question)
    db.commit()
    db.refresh(question)
    return question
