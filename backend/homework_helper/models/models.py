from sqlalchemy import Column, String, Integer, DateTime, JSON, Text
from datetime import datetime
import enum
import uuid
from homework_helper.database import Base


def generate_uuid():
    return str(uuid.uuid4())


class Subject(str, enum.Enum):
    MATH = "Math"
    SCIENCE = "Science"
    ENGLISH = "English"
    HISTORY = "History"
    OTHER = "Other"

    @classmethod
    def values(cls):
        return [s.value for s in cls]


class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, default=generate_uuid)
    text = Column(Text, nullable=False)
    subject = Column(String, nullable=False, default=Subject.OTHER.value, index=True)
    topic = Column(String, nullable=True, index=True)  # e.g. "Calculus Derivatives"

    # Both columns hold the same generated answer; older rows may only have one
    answer = Column(Text, nullable=True)
    ai_response = Column(Text, nullable=True)

    ask_count = Column(Integer, nullable=False, default=1)  # Drives "Top Questions"
    upvotes = Column(Integer, nullable=False, default=0)  # max(0, net votes), kept for older clients
    votes_map = Column(JSON, nullable=False, default=dict)  # voter uid -> "up" | "down"

    asked_by = Column(String, nullable=True, index=True)  # Firebase uid; NULL marks a seed question
    asked_at = Column(DateTime, default=datetime.utcnow, index=True)
    accuracy_rating = Column(Integer, nullable=True)  # 0-100, feeds "Avg Accuracy"

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Optimistic concurrency token: UPDATEs are conditional on the version read
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def answer_text(self):
        return self.answer or self.ai_response

    def __repr__(self):
        return f'<Question {self.id} {self.subject}: {self.text[:40]!r}>'
