from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase): pass


class QuestionRecord(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_q_exam_set", "exam_set_id"),
        Index("idx_q_exam", "exam_id"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    exam_id: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_set_id: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_code: Mapped[str] = mapped_column(String(50), nullable=False)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)
    options: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    correct_answers: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    overall_explanation: Mapped[str] = mapped_column(Text, default="")
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))
    reference_urls: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AttemptRecord(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        Index("idx_att_user", "user_id"),
        Index("idx_att_user_exam", "user_id", "exam_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_id: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_set_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    current_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    answers: Mapped[Dict[str, List[str]]] = mapped_column(JSON, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # optimistic lock: UPDATE ... WHERE version = <read version>
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class UserExamStatsRecord(Base):
    __tablename__ = "user_exam_stats"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    exam_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_correct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_questions_answered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    domain_stats: Mapped[Dict[str, Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    last_taken_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
