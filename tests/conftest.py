from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine

from mockexam.core.config import Settings
from mockexam.core.database import init_db, make_session_factory
from mockexam.models.domain import AnswerOption, Question, QuestionKind
from mockexam.repositories import QuestionRepository
from mockexam.services.attempts import AttemptService

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Returns a strictly increasing UTC time, one second per call."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def make_question(qid, correct, domain="Compute", options=("a", "b", "c", "d"), exam_id="pcd", exam_set_id="set1", kind=None):
    if kind is None:
        kind = QuestionKind.SINGLE_ANSWER if len(correct) == 1 else QuestionKind.MULTI_ANSWER
    return Question(
        id=qid, exam_id=exam_id, exam_set_id=exam_set_id, exam_code="PCD",
        question_text=f"Question {qid}", question_type=kind,
        options=[AnswerOption(id=o, text=f"Option {o}") for o in options],
        correct_answers=list(correct), domain=domain, created_at=T0,
    )


@pytest.fixture
def engine(tmp_path):
    # pooled connections are handed between threads in the race tests
    engine = create_engine(
        f"sqlite:///{tmp_path / 'mockexam.db'}", future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'mockexam.db'}",
        TX_MAX_ATTEMPTS=3,
        TX_RETRY_BACKOFF_SECONDS=0,
        TX_RETRY_MAX_BACKOFF_SECONDS=0,
    )


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def service(session_factory, settings, clock):
    return AttemptService(session_factory, settings, clock=clock)


@pytest.fixture
def seed(session_factory):
    def _seed(*questions):
        with session_factory() as db:
            QuestionRepository(db).bulk_create(list(questions))
            db.commit()
        return list(questions)
    return _seed


@pytest.fixture
def exam_set(seed):
    """q1: single answer [a] in Compute, q2: multi answer [b, c] in Security."""
    return seed(
        make_question("q1", ["a"], domain="Compute"),
        make_question("q2", ["b", "c"], domain="Security"),
    )
