#!/usr/bin/env python3
"""
Seed the database with demo homework questions.

Seed questions have no asker (asked_by IS NULL). Existing seed rows are
removed first; questions asked by real students are never touched.

Usage:
    cd backend
    python -m scripts.seed_questions
"""

import sys
from pathlib import Path
from typing import Dict

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homework_helper.database import SessionLocal, engine, init_db
from homework_helper.models.models import Question


SEED_QUESTIONS = [
    {
        "text": "How do I solve quadratic equations?",
        "subject": "Math",
        "topic": "Algebra",
        "ask_count": 150,
        "upvotes": 45,
        "accuracy_rating": 85,
        "answer": "To solve quadratic equations, use the quadratic formula: x = (-b ± √(b²-4ac)) / 2a",
    },
    {
        "text": "What is the powerhouse of the cell?",
        "subject": "Science",
        "topic": "Biology",
        "ask_count": 200,
        "upvotes": 60,
        "accuracy_rating": 92,
        "answer": "The powerhouse of the cell is the mitochondrion, which produces ATP energy.",
    },
    {
        "text": "Explain the main causes of WWI",
        "subject": "History",
        "topic": "World War I",
        "ask_count": 180,
        "upvotes": 55,
        "accuracy_rating": 88,
        "answer": "The main causes of WWI were militarism, alliances, imperialism, and nationalism (MAIN).",
    },
    {
        "text": "What is a verb?",
        "subject": "English",
        "topic": "Grammar",
        "ask_count": 120,
        "upvotes": 35,
        "accuracy_rating": 95,
        "answer": "A verb is a word that describes an action, occurrence, or state of being.",
    },
    {
        "text": "What are Calculus Derivatives?",
        "subject": "Math",
        "topic": "Calculus Derivatives",
        "ask_count": 250,
        "upvotes": 75,
        "accuracy_rating": 78,
        "answer": "A derivative represents the rate of change of a function with respect to its variable.",
    },
    {
        "text": "Define Organic Chemistry",
        "subject": "Science",
        "topic": "Organic Chemistry",
        "ask_count": 170,
        "upvotes": 50,
        "accuracy_rating": 82,
        "answer": "Organic chemistry is the study of carbon-containing compounds and their reactions.",
    },
    {
        "text": "How do I find the area of a circle?",
        "subject": "Math",
        "topic": "Geometry",
        "ask_count": 140,
        "upvotes": 40,
        "accuracy_rating": 90,
        "answer": "The area of a circle is calculated using the formula: A = πr², where r is the radius.",
    },
    {
        "text": "What is photosynthesis?",
        "subject": "Science",
        "topic": "Biology",
        "ask_count": 190,
        "upvotes": 58,
        "accuracy_rating": 87,
        "answer": "Photosynthesis is the process by which plants convert light energy into chemical energy.",
    },
    {
        "text": "Explain the structure of an essay",
        "subject": "English",
        "topic": "Writing",
        "ask_count": 130,
        "upvotes": 38,
        "accuracy_rating": 91,
        "answer": "An essay typically has an introduction, body paragraphs, and a conclusion.",
    },
    {
        "text": "What caused the American Civil War?",
        "subject": "History",
        "topic": "American History",
        "ask_count": 160,
        "upvotes": 48,
        "accuracy_rating": 86,
        "answer": "The American Civil War was primarily caused by disputes over slavery and states rights.",
    },
    {
        "text": "How do I integrate by parts?",
        "subject": "Math",
        "topic": "Calculus Derivatives",
        "ask_count": 220,
        "upvotes": 68,
        "accuracy_rating": 75,
        "answer": "Integration by parts uses the formula: ∫u dv = uv - ∫v du",
    },
    {
        "text": "What is the periodic table?",
        "subject": "Science",
        "topic": "Chemistry",
        "ask_count": 145,
        "upvotes": 42,
        "accuracy_rating": 93,
        "answer": "The periodic table organizes chemical elements by atomic number and properties.",
    },
]


def seed_questions(db: Session) -> Dict[str, int]:
    """
    Replace the seed questions and return counts for reporting.

    Seed rows carry upvotes but an empty votes_map, so their displayed net
    votes fall back to the stored upvotes.
    """
    removed = db.query(Question).filter(Question.asked_by.is_(None)).delete(synchronize_session=False)

    created = 0
    for data in SEED_QUESTIONS:
        exists = db.query(Question.id).filter(
            Question.text == data["text"],
            Question.subject == data["subject"],
            Question.asked_by.is_(None),
        ).first()
        if exists:
            continue
        db.add(Question(
            asked_by=None,
            ai_response=data["answer"],
            votes_map={},
            **data,
        ))
        created += 1
    db.commit()

    total = db.query(Question).count()
    user_questions = db.query(Question).filter(Question.asked_by.isnot(None)).count()
    return {
        "removed": removed,
        "created": created,
        "total": total,
        "user_questions": user_questions,
        "seed_questions": total - user_questions,
    }


def main():
    if not init_db(engine):
        print("Database is not reachable, check DATABASE_URL", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        counts = seed_questions(db)
    except SQLAlchemyError as e:
        db.rollback()
        print(f"Error seeding database: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    print(f"Removed {counts['removed']} seed questions (user questions preserved)")
    print(f"Created {counts['created']} new seed questions")
    print(
        f"Total questions in database: {counts['total']} "
        f"({counts['user_questions']} user-generated + {counts['seed_questions']} seed)"
    )


if __name__ == "__main__":
    main()
