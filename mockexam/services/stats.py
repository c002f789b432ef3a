"""
Stats aggregator: folds one completed attempt into the user's per-exam record.

Everything is kept as counts. The overall average and each domain's
accuracy are derived from the cumulative counts on read, never stored and
never averaged, so repeated folds cannot drift.
"""
from typing import Mapping, Optional

from mockexam.core.errors import FailedPrecondition, InvalidArgument
from mockexam.models.domain import Attempt, DomainScore, DomainTally, UserExamStats


def empty_stats(user_id: str, exam_id: str) -> UserExamStats:
    if not user_id or not exam_id:
        raise InvalidArgument("user id and exam id are required for stats")
    return UserExamStats(user_id=user_id, exam_id=exam_id)


def fold_stats(stats: Optional[UserExamStats], attempt: Attempt, per_domain: Mapping[str, DomainTally]) -> UserExamStats:
    if not attempt.is_completed or attempt.completed_at is None:
        raise FailedPrecondition(f"attempt {attempt.id} must be completed before it is counted")
    if stats is None:
        stats = empty_stats(attempt.user_id, attempt.exam_id)
    elif (stats.user_id, stats.exam_id) != (attempt.user_id, attempt.exam_id):
        raise InvalidArgument("stats record does not belong to the attempt's user and exam")

    domain_stats = {name: score.model_copy() for name, score in stats.domain_stats.items()}
    for name, tally in per_domain.items():
        current = domain_stats.get(name) or DomainScore(domain_name=name)
        domain_stats[name] = DomainScore(
            domain_name=name,
            correct_count=current.correct_count + tally.correct,
            total_count=current.total_count + tally.total,
        )

    return UserExamStats(
        user_id=stats.user_id,
        exam_id=stats.exam_id,
        total_attempts=stats.total_attempts + 1,
        total_correct=stats.total_correct + attempt.score,
        # full set size, not the answered count: a skipped question still counts against the overall score
        total_questions_answered=stats.total_questions_answered + attempt.total_questions,
        domain_stats=domain_stats,
        last_taken_at=attempt.completed_at,
    )
