from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List
from mockexam.api.deps import get_question_service
from mockexam.core.auth import require_roles
from mockexam.services.questions import QuestionService, QuestionSetUpload

router = APIRouter()

class UploadResult(BaseModel):
    exam_id: str
    exam_set_id: str
    question_ids: List[str]

@router.post("/question-sets", response_model=UploadResult, status_code=201, dependencies=[Depends(require_roles("author","admin"))])
def upload_question_set(payload: QuestionSetUpload, service: QuestionService = Depends(get_question_service)):
    created = service.upload_questions(payload)
    return UploadResult(exam_id=payload.exam_id, exam_set_id=payload.exam_set_id, question_ids=[q.id for q in created])
