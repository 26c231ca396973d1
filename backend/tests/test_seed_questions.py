"""
Tests for the demo seed script.
"""

import pytest
from sqlalchemy.orm import Session

from homework_helper.models.models import Question
from homework_helper.services.votes import display_net_votes
from scripts.seed_questions import SEED_QUESTIONS, seed_questions

from tests.helpers import STUDENT_ID, make_question


@pytest.mark.unit
def test_seed_replaces_seed_rows_and_keeps_student_questions(db: Session):
    make_question(db, text="Old seed row", asked_by=None)
    student_question = make_question(db, text="My own question", asked_by=STUDENT_ID)

    counts = seed_questions(db)

    assert counts["removed"] == 1
    assert counts["created"] == len(SEED_QUESTIONS)
    assert counts["user_questions"] == 1
    assert counts["seed_questions"] == len(SEED_QUESTIONS)
    assert db.get(Question, student_question.id) is not None
    assert db.query(Question).filter(Question.text == "Old seed row").count() == 0


@pytest.mark.unit
def test_seed_rows_show_stored_upvotes(db: Session):
    seed_questions(db)

    question = db.query(Question).filter(Question.text == "What are Calculus Derivatives?").one()

    assert question.asked_by is None
    assert question.answer == question.ai_response
    assert display_net_votes(question) == 75


@pytest.mark.unit
def test_reseeding_does_not_duplicate(db: Session):
    seed_questions(db)
    counts = seed_questions(db)

    assert counts["removed"] == len(SEED_QUESTIONS)
    assert counts["seed_questions"] == len(SEED_QUESTIONS)
