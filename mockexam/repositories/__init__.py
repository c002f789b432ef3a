"""Session-bound repositories. Every instance shares the caller's session, so
reads and writes made through them belong to the same transaction."""
from mockexam.repositories.attempts import AttemptRepository
from mockexam.repositories.questions import QuestionRepository
from mockexam.repositories.stats import UserStatsRepository

__all__ = ["AttemptRepository", "QuestionRepository", "UserStatsRepository"]
