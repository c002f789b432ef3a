from fastapi import APIRouter, Depends
from mockexam.api.deps import get_attempt_service
from mockexam.core.auth import require_roles, TokenData
from mockexam.models.domain import UserExamStats
from mockexam.services.attempts import AttemptService

router = APIRouter()

@router.get("/{exam_id}", response_model=UserExamStats)
def get_stats(exam_id: str, user: TokenData = Depends(require_roles("student","admin")), service: AttemptService = Depends(get_attempt_service)):
    return service.get_user_exam_stats(user.sub, exam_id)
