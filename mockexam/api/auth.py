from fastapi import APIRouter
from pydantic import BaseModel, Field
from typing import List
from mockexam.core.auth import create_token

router = APIRouter()

class MockLogin(BaseModel):
    user_id: str = Field(min_length=1)
    roles: List[str]

@router.post("/mock-login")
def mock_login(payload: MockLogin):
    token = create_token(payload.user_id, payload.roles)
    return {"access_token": token, "token_type": "bearer", "roles": payload.roles}
