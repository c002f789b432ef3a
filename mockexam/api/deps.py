from fastapi import Depends

from mockexam.core.config import Settings, get_settings
from mockexam.core.database import get_session_factory
from mockexam.services.attempts import AttemptService
from mockexam.services.questions import QuestionService


def get_attempt_service(settings: Settings = Depends(get_settings)) -> AttemptService:
    return AttemptService(get_session_factory(), settings)


def get_question_service() -> QuestionService:
    return QuestionService(get_session_factory())
