"""
Tests for the database helpers and per-test transaction isolation.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from homework_helper.database import engine, init_db, ping_database
from homework_helper.models.models import Question

from tests.helpers import make_question

ISOLATION_ID = "isolation-check-question"


class TestTestIsolation:
    """Commits made by code under test must not outlive the test"""

    @pytest.mark.unit
    def test_commit_inside_a_test(self, db: Session):
        make_question(db, id=ISOLATION_ID, text="Committed in one test")
        assert db.get(Question, ISOLATION_ID) is not None

    @pytest.mark.unit
    def test_commit_was_rolled_back(self, db: Session):
        assert db.get(Question, ISOLATION_ID) is None

    @pytest.mark.unit
    def test_rows_are_invisible_to_other_connections(self, db: Session):
        make_question(db, id=ISOLATION_ID, text="Not yet visible")

        with engine.connect() as other:
            count = other.exec_driver_sql(
                "SELECT COUNT(*) FROM questions WHERE id = ?", (ISOLATION_ID,)
            ).scalar()
        assert count == 0


class TestDatabaseHelpers:

    @pytest.mark.unit
    def test_ping(self):
        assert ping_database(engine) is True

    @pytest.mark.unit
    def test_unreachable_database(self, tmp_path):
        missing = create_engine(f"sqlite:///{tmp_path}/missing-dir/db.sqlite")
        assert ping_database(missing) is False
        assert init_db(missing) is False

    @pytest.mark.unit
    def test_init_creates_tables(self, tmp_path):
        fresh = create_engine(f"sqlite:///{tmp_path}/fresh.sqlite")

        assert init_db(fresh) is True
        with fresh.connect() as conn:
            tables = conn.exec_driver_sql(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).scalars().all()
        assert "questions" in tables
        fresh.dispose()
