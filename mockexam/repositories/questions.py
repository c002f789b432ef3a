from typing import Iterable, List, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from mockexam.models.domain import Question
from mockexam.models.orm import QuestionRecord
from mockexam.repositories._time import as_utc


def _to_domain(row: QuestionRecord) -> Question:
    return Question(
        id=row.id, exam_id=row.exam_id, exam_set_id=row.exam_set_id, exam_code=row.exam_code,
        question_text=row.question_text, question_type=row.question_type, options=row.options,
        correct_answers=row.correct_answers, overall_explanation=row.overall_explanation or "",
        domain=row.domain, image_url=row.image_url, reference_urls=row.reference_urls or [],
        created_at=as_utc(row.created_at),
    )


class QuestionRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_set_id(self, exam_set_id: str) -> List[Question]:
        rows = self.db.scalars(
            select(QuestionRecord).where(QuestionRecord.exam_set_id == exam_set_id).order_by(QuestionRecord.id)
        ).all()
        return [_to_domain(r) for r in rows]

    def existing_ids(self, ids: Iterable[str]) -> Set[str]:
        ids = list(ids)
        if not ids:
            return set()
        return set(self.db.scalars(select(QuestionRecord.id).where(QuestionRecord.id.in_(ids))).all())

    def bulk_create(self, questions: List[Question]) -> None:
        for q in questions:
            self.db.add(QuestionRecord(
                id=q.id, exam_id=q.exam_id, exam_set_id=q.exam_set_id, exam_code=q.exam_code,
                question_text=q.question_text, question_type=q.question_type.value,
                options=[o.model_dump() for o in q.options], correct_answers=list(q.correct_answers),
                overall_explanation=q.overall_explanation, domain=q.domain, image_url=q.image_url,
                reference_urls=list(q.reference_urls), created_at=q.created_at,
            ))
        self.db.flush()
