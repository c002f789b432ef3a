from typing import Dict

from sqlalchemy.orm import Session

from mockexam.core.errors import InvalidArgument, NotFound
from mockexam.models.domain import Attempt
from mockexam.models.orm import AttemptRecord
from mockexam.repositories._time import as_utc


class AttemptRepository:
    def __init__(self, db: Session):
        self.db = db
        # rows as read by find(); the session only holds them weakly, and the
        # version they carry is what save() must check against
        self._seen: Dict[str, AttemptRecord] = {}

    def find(self, user_id: str, attempt_id: str) -> Attempt:
        if not user_id or not attempt_id:
            raise InvalidArgument("user id and attempt id are required")
        row = self.db.get(AttemptRecord, attempt_id)
        # another user's attempt is indistinguishable from a missing one
        if row is None or row.user_id != user_id:
            raise NotFound(f"attempt {attempt_id} not found")
        self._seen[attempt_id] = row
        return Attempt(
            id=row.id, user_id=row.user_id, exam_id=row.exam_id, exam_set_id=row.exam_set_id,
            status=row.status, score=row.score, total_questions=row.total_questions,
            current_index=row.current_index, answers={k: list(v) for k, v in (row.answers or {}).items()},
            started_at=as_utc(row.started_at), updated_at=as_utc(row.updated_at),
            completed_at=as_utc(row.completed_at),
        )

    def save(self, attempt: Attempt) -> None:
        """Insert or update. An update is checked against the version read by
        ``find`` in this session and fails at flush if it changed since."""
        if not attempt.user_id or not attempt.id:
            raise InvalidArgument("user id and attempt id are required")
        row = self._seen.get(attempt.id)
        if row is None:
            row = self.db.get(AttemptRecord, attempt.id)
        if row is None:
            row = AttemptRecord(id=attempt.id, user_id=attempt.user_id)
            self.db.add(row)
            self._seen[attempt.id] = row
        row.exam_id = attempt.exam_id
        row.exam_set_id = attempt.exam_set_id
        row.status = attempt.status.value
        row.score = attempt.score
        row.total_questions = attempt.total_questions
        row.current_index = attempt.current_index
        row.answers = {k: list(v) for k, v in attempt.answers.items()}
        row.started_at = attempt.started_at
        row.updated_at = attempt.updated_at
        row.completed_at = attempt.completed_at
        self.db.flush()
