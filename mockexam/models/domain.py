"""
Domain types for questions, attempts and cumulative per-exam statistics.

These are plain pydantic models: the services operate on them without a
session, and the repositories translate them to and from ORM records.
"""
import enum
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

Answers = Dict[str, List[str]]


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestionKind(str, enum.Enum):
    SINGLE_ANSWER = "single-answer"
    MULTI_ANSWER = "multi-answer"


class AnswerOption(BaseModel):
    id: str = Field(min_length=1)
    text: str
    explanation: str = ""


class Question(BaseModel):
    """A single canonical question. Immutable once stored."""

    id: str = Field(min_length=1)
    exam_id: str = Field(min_length=1)
    exam_set_id: str = Field(min_length=1)
    exam_code: str = ""
    question_text: str = ""
    question_type: QuestionKind
    options: List[AnswerOption]
    correct_answers: List[str]
    overall_explanation: str = ""
    domain: str
    image_url: Optional[str] = None
    reference_urls: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_correct_answers(self) -> "Question":
        option_ids = [o.id for o in self.options]
        if len(set(option_ids)) != len(option_ids):
            raise ValueError(f"question {self.id}: option ids must be unique")
        if len(set(self.correct_answers)) != len(self.correct_answers):
            raise ValueError(f"question {self.id}: correct answers must not repeat")
        unknown = sorted(set(self.correct_answers) - set(option_ids))
        if unknown:
            raise ValueError(f"question {self.id}: correct answers {unknown} are not options")
        if self.question_type is QuestionKind.SINGLE_ANSWER and len(self.correct_answers) != 1:
            raise ValueError(f"question {self.id}: single-answer questions need exactly one correct answer")
        return self


class Attempt(BaseModel):
    id: str
    user_id: str
    exam_id: str
    exam_set_id: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    # number of correct answers; meaningful only once completed
    score: int = 0
    total_questions: int
    # UI bookmark only, never used for scoring
    current_index: int = 0
    answers: Answers = Field(default_factory=dict)
    started_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED


def rate_percent(correct: int, total: int) -> int:
    """Percentage of ``correct`` over ``total``, rounded half up; 0 when nothing was scored."""
    if total <= 0:
        return 0
    # integer form of floor(100 * correct / total + 0.5)
    return (200 * correct + total) // (2 * total)


class DomainScore(BaseModel):
    domain_name: str
    correct_count: int = 0
    total_count: int = 0

    @computed_field
    @property
    def accuracy_rate(self) -> int:
        return rate_percent(self.correct_count, self.total_count)


class UserExamStats(BaseModel):
    user_id: str
    exam_id: str
    total_attempts: int = 0
    total_correct: int = 0
    total_questions_answered: int = 0
    domain_stats: Dict[str, DomainScore] = Field(default_factory=dict)
    last_taken_at: Optional[datetime] = None

    @computed_field
    @property
    def average_score(self) -> float:
        if self.total_questions_answered <= 0:
            return 0.0
        return round(self.total_correct / self.total_questions_answered * 100, 2)


class DomainTally(BaseModel):
    correct: int = 0
    total: int = 0


class ScoreResult(BaseModel):
    total_correct: int = 0
    per_domain: Dict[str, DomainTally] = Field(default_factory=dict)
    # question id -> correct?, for every scored question
    correctness: Dict[str, bool] = Field(default_factory=dict)
