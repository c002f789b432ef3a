import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import sessionmaker

from mockexam.core.errors import AlreadyExists, InvalidArgument, NotFound
from mockexam.core.transaction import run_in_transaction, run_read
from mockexam.models.domain import AnswerOption, Question, QuestionKind
from mockexam.repositories import QuestionRepository

logger = logging.getLogger(__name__)


class QuestionIn(BaseModel):
    index: int = Field(ge=0)
    question_text: str
    question_type: QuestionKind
    options: List[AnswerOption]
    correct_answers: List[str]
    overall_explanation: str = ""
    domain: str = Field(min_length=1)
    image_url: Optional[str] = None
    reference_urls: List[str] = Field(default_factory=list)


class QuestionSetUpload(BaseModel):
    exam_id: str = Field(min_length=1)
    exam_set_id: str = Field(min_length=1)
    exam_code: str = Field(min_length=1)
    questions: List[QuestionIn]


def question_id(exam_code: str, exam_set_id: str, index: int) -> str:
    # e.g. PCD_practice_exam_1_001
    return f"{exam_code}_{exam_set_id}_{index:03d}"


class QuestionService:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def upload_questions(self, upload: QuestionSetUpload) -> List[Question]:
        if not upload.questions:
            raise InvalidArgument("no questions provided")
        now = datetime.now(timezone.utc)
        questions: List[Question] = []
        for item in upload.questions:
            try:
                questions.append(Question(
                    id=question_id(upload.exam_code, upload.exam_set_id, item.index),
                    exam_id=upload.exam_id, exam_set_id=upload.exam_set_id, exam_code=upload.exam_code,
                    created_at=now, **item.model_dump(exclude={"index"}),
                ))
            except ValidationError as exc:
                raise InvalidArgument(f"question {item.index} is invalid: {exc.errors()[0]['msg']}") from exc

        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise AlreadyExists("question indexes must be unique within a set")

        def work(db):
            repo = QuestionRepository(db)
            taken = repo.existing_ids(ids)
            if taken:
                raise AlreadyExists(f"questions already exist: {', '.join(sorted(taken))}")
            repo.bulk_create(questions)
            return questions

        # a racing upload of the same ids fails on insert and is re-read as AlreadyExists
        created = run_in_transaction(self.session_factory, work, max_attempts=2)
        logger.info("Uploaded %d questions to %s/%s", len(created), upload.exam_id, upload.exam_set_id)
        return created

    def get_set_questions(self, exam_id: str, exam_set_id: str) -> List[Question]:
        if not exam_id or not exam_set_id:
            raise InvalidArgument("exam id and exam set id are required")
        questions = run_read(self.session_factory, lambda db: QuestionRepository(db).find_by_set_id(exam_set_id))
        if not questions:
            raise NotFound(f"no questions found for exam set {exam_set_id}")
        if questions[0].exam_id != exam_id:
            raise InvalidArgument(f"exam set {exam_set_id} does not belong to exam {exam_id}")
        return questions
