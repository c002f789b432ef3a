from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from mockexam.core.errors import InvalidArgument
from mockexam.models.domain import DomainScore, UserExamStats
from mockexam.models.orm import UserExamStatsRecord
from mockexam.repositories._time import as_utc


class UserStatsRepository:
    def __init__(self, db: Session):
        self.db = db
        # rows as observed by find(); None records an observed absence
        self._seen: Dict[Tuple[str, str], Optional[UserExamStatsRecord]] = {}

    def find(self, user_id: str, exam_id: str) -> Optional[UserExamStats]:
        """Return the stored record or ``None``; absence is not an error."""
        if not user_id or not exam_id:
            raise InvalidArgument("user id and exam id are required")
        row = self.db.get(UserExamStatsRecord, (user_id, exam_id))
        self._seen[(user_id, exam_id)] = row
        if row is None:
            return None
        return UserExamStats(
            user_id=row.user_id, exam_id=row.exam_id, total_attempts=row.total_attempts,
            total_correct=row.total_correct, total_questions_answered=row.total_questions_answered,
            domain_stats={name: DomainScore.model_validate(score) for name, score in (row.domain_stats or {}).items()},
            last_taken_at=as_utc(row.last_taken_at),
        )

    def save(self, stats: UserExamStats) -> None:
        """Write against what ``find`` saw: an existing row is updated under its
        version check, an observed absence is always an INSERT, so a record
        created concurrently in between fails at flush instead of being
        overwritten."""
        if not stats.user_id or not stats.exam_id:
            raise InvalidArgument("user id and exam id are required")
        key = (stats.user_id, stats.exam_id)
        row = self._seen[key] if key in self._seen else self.db.get(UserExamStatsRecord, key)
        if row is None:
            row = UserExamStatsRecord(user_id=stats.user_id, exam_id=stats.exam_id)
            self.db.add(row)
            self._seen[key] = row
        row.total_attempts = stats.total_attempts
        row.total_correct = stats.total_correct
        row.total_questions_answered = stats.total_questions_answered
        row.domain_stats = {name: score.model_dump() for name, score in stats.domain_stats.items()}
        row.last_taken_at = stats.last_taken_at
        self.db.flush()
