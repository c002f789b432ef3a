from fastapi import APIRouter, Depends
from typing import List
from mockexam.api.deps import get_question_service
from mockexam.core.auth import require_roles
from mockexam.models.domain import Question
from mockexam.services.questions import QuestionService

router = APIRouter()

@router.get("/{exam_id}/sets/{exam_set_id}/questions", response_model=List[Question], dependencies=[Depends(require_roles("student","admin"))])
def get_set_questions(exam_id: str, exam_set_id: str, service: QuestionService = Depends(get_question_service)):
    return service.get_set_questions(exam_id, exam_set_id)
