"""
Attempt operations, including the completion orchestrator.

``complete_attempt`` reads the attempt, the canonical question set and the
user's stats, scores, transitions the attempt and folds the result into the
stats, then writes both records in one transaction. A write conflict with a
concurrent transaction re-runs the whole sequence from a fresh read; an
attempt that is already completed fails with ``FailedPrecondition`` and
writes nothing, which is what makes client retries safe.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.orm import Session, sessionmaker

from mockexam.core.config import Settings
from mockexam.core.errors import FailedPrecondition, InvalidArgument, NotFound, Unauthenticated
from mockexam.core.transaction import run_in_transaction, run_read
from mockexam.models.domain import Attempt, UserExamStats
from mockexam.repositories import AttemptRepository, QuestionRepository, UserStatsRepository
from mockexam.services import lifecycle
from mockexam.services.lifecycle import normalize_answers
from mockexam.services.stats import empty_stats, fold_stats

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptService:
    def __init__(self, session_factory: sessionmaker, settings: Settings, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.settings = settings
        self.clock = clock

    def _transaction(self, work: Callable[[Session], Any], deadline: Optional[float] = None):
        return run_in_transaction(
            self.session_factory, work,
            max_attempts=self.settings.TX_MAX_ATTEMPTS,
            deadline=deadline if deadline is not None else self.settings.TX_DEADLINE_SECONDS,
            backoff=self.settings.TX_RETRY_BACKOFF_SECONDS,
            max_backoff=self.settings.TX_RETRY_MAX_BACKOFF_SECONDS,
        )

    def start_attempt(self, user_id: str, exam_id: str, exam_set_id: str) -> Attempt:
        if not user_id:
            raise Unauthenticated("user id is required")
        if not exam_id or not exam_set_id:
            raise InvalidArgument("exam id and exam set id are required")

        def work(db: Session) -> Attempt:
            questions = QuestionRepository(db).find_by_set_id(exam_set_id)
            if not questions:
                raise NotFound(f"no questions found for exam set {exam_set_id}")
            if any(q.exam_id != exam_id for q in questions):
                raise InvalidArgument(f"exam set {exam_set_id} does not belong to exam {exam_id}")
            attempt = lifecycle.create(str(uuid.uuid4()), user_id, exam_id, exam_set_id, len(questions), self.clock())
            AttemptRepository(db).save(attempt)
            return attempt

        attempt = self._transaction(work)
        logger.info("Attempt %s started by %s on %s/%s", attempt.id, user_id, exam_id, exam_set_id)
        return attempt

    def save_progress(self, user_id: str, attempt_id: str, current_index: int, answers: Optional[Mapping[str, Any]]) -> Attempt:
        if not user_id:
            raise Unauthenticated("user id is required")
        if not attempt_id:
            raise InvalidArgument("attempt id is required")
        partial = normalize_answers(answers)

        def work(db: Session) -> Attempt:
            repo = AttemptRepository(db)
            updated = lifecycle.save_progress(repo.find(user_id, attempt_id), current_index, partial, self.clock())
            repo.save(updated)
            return updated

        return self._transaction(work)

    def complete_attempt(self, user_id: str, attempt_id: str, final_answers: Optional[Mapping[str, Any]], *, deadline: Optional[float] = None) -> Attempt:
        if not user_id:
            raise Unauthenticated("user id is required")
        if not attempt_id:
            raise InvalidArgument("attempt id is required")
        answers = normalize_answers(final_answers)

        def work(db: Session) -> Attempt:
            attempts = AttemptRepository(db)
            stats_repo = UserStatsRepository(db)

            attempt = attempts.find(user_id, attempt_id)
            if attempt.is_completed:
                raise FailedPrecondition(f"attempt {attempt_id} is already completed")

            questions = QuestionRepository(db).find_by_set_id(attempt.exam_set_id)
            completed, result = lifecycle.complete(attempt, answers, questions, self.clock())

            stats = fold_stats(stats_repo.find(user_id, completed.exam_id), completed, result.per_domain)

            attempts.save(completed)
            stats_repo.save(stats)
            return completed

        try:
            completed = self._transaction(work, deadline)
        except FailedPrecondition:
            logger.info("Attempt %s for %s was already completed", attempt_id, user_id)
            raise
        logger.info("Attempt %s completed by %s: %d/%d", completed.id, user_id, completed.score, completed.total_questions)
        return completed

    def get_user_exam_stats(self, user_id: str, exam_id: str) -> UserExamStats:
        if not user_id:
            raise Unauthenticated("user id is required")
        if not exam_id:
            raise InvalidArgument("exam id is required")
        stats = run_read(self.session_factory, lambda db: UserStatsRepository(db).find(user_id, exam_id))
        return stats if stats is not None else empty_stats(user_id, exam_id)
