"""
Attempt lifecycle: ``in_progress`` -> ``completed``, exactly once.

Answers are merged key by key: a question id present in a new submission
replaces the stored selection, ids absent from it keep their earlier value.
"""
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Tuple

from mockexam.core.errors import FailedPrecondition, InvalidArgument, Unauthenticated
from mockexam.models.domain import Answers, Attempt, AttemptStatus, Question, ScoreResult
from mockexam.services.scoring import score_questions


def normalize_answers(answers: Optional[Mapping[str, Any]]) -> Answers:
    """Validate an answer map coming from outside; ``None`` means no answers."""
    if answers is None:
        return {}
    if not isinstance(answers, Mapping):
        raise InvalidArgument("answers must be a mapping of question id to option ids")
    normalized: Answers = {}
    for question_id, selected in answers.items():
        if not isinstance(question_id, str) or not question_id:
            raise InvalidArgument("answer keys must be non-empty question ids")
        if not isinstance(selected, (list, tuple)) or not all(isinstance(o, str) for o in selected):
            raise InvalidArgument(f"answer for {question_id} must be a list of option ids")
        normalized[question_id] = list(selected)
    return normalized


def merge_answers(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> Answers:
    merged = {k: list(v) for k, v in existing.items()}
    for question_id, selected in incoming.items():
        merged[question_id] = list(selected)
    return merged


def create(attempt_id: str, user_id: str, exam_id: str, exam_set_id: str, total_questions: int, now: datetime) -> Attempt:
    if not user_id:
        raise Unauthenticated("user id is required")
    if not attempt_id or not exam_id or not exam_set_id:
        raise InvalidArgument("attempt id, exam id and exam set id are required")
    if total_questions < 0:
        raise InvalidArgument("total question count cannot be negative")
    return Attempt(
        id=attempt_id, user_id=user_id, exam_id=exam_id, exam_set_id=exam_set_id,
        status=AttemptStatus.IN_PROGRESS, score=0, total_questions=total_questions,
        current_index=0, answers={}, started_at=now, updated_at=now,
    )


def _ensure_in_progress(attempt: Attempt) -> None:
    if attempt.is_completed:
        raise FailedPrecondition(f"attempt {attempt.id} is already completed")


def save_progress(attempt: Attempt, current_index: int, partial_answers: Mapping[str, Any], now: datetime) -> Attempt:
    _ensure_in_progress(attempt)
    if isinstance(current_index, bool) or not isinstance(current_index, int) or current_index < 0:
        raise InvalidArgument("current index must be a non-negative integer")
    return attempt.model_copy(update={
        "current_index": current_index,
        "answers": merge_answers(attempt.answers, normalize_answers(partial_answers)),
        "updated_at": now,
    })


def complete(attempt: Attempt, final_answers: Mapping[str, Any], questions: Iterable[Question], now: datetime) -> Tuple[Attempt, ScoreResult]:
    """Merge the final answers, score everything answered so far and freeze the attempt."""
    _ensure_in_progress(attempt)
    answers = merge_answers(attempt.answers, normalize_answers(final_answers))
    result = score_questions(questions, answers)
    completed = attempt.model_copy(update={
        "answers": answers,
        "score": result.total_correct,
        "status": AttemptStatus.COMPLETED,
        "completed_at": now,
        "updated_at": now,
    })
    return completed, result
