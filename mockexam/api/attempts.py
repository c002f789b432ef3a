from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Dict, List
from mockexam.api.deps import get_attempt_service
from mockexam.core.auth import require_roles, TokenData
from mockexam.models.domain import Attempt
from mockexam.services.attempts import AttemptService

router = APIRouter()

class AttemptCreate(BaseModel):
    exam_id: str = Field(min_length=1)
    exam_set_id: str = Field(min_length=1)

class AttemptUpdate(BaseModel):
    current_index: int = Field(ge=0)
    answers: Dict[str, List[str]] = Field(default_factory=dict)

class AttemptComplete(BaseModel):
    answers: Dict[str, List[str]] = Field(default_factory=dict)

@router.post("", response_model=Attempt, status_code=201)
def start_attempt(payload: AttemptCreate, user: TokenData = Depends(require_roles("student","admin")), service: AttemptService = Depends(get_attempt_service)):
    return service.start_attempt(user.sub, payload.exam_id, payload.exam_set_id)

@router.patch("/{attempt_id}", response_model=Attempt)
def save_progress(attempt_id: str, payload: AttemptUpdate, user: TokenData = Depends(require_roles("student","admin")), service: AttemptService = Depends(get_attempt_service)):
    return service.save_progress(user.sub, attempt_id, payload.current_index, payload.answers)

@router.post("/{attempt_id}/complete", response_model=Attempt)
def complete_attempt(attempt_id: str, payload: AttemptComplete, user: TokenData = Depends(require_roles("student","admin")), service: AttemptService = Depends(get_attempt_service)):
    return service.complete_attempt(user.sub, attempt_id, payload.answers)
