"""Assessment and AssessmentAttempt models: stored question sets and learner attempts."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from edbilling.utils import now_utc
from .base import Base


class Assessment(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    tool_id: Mapped[int | None] = mapped_column(ForeignKey("assessment_tools.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    # Question dicts including the answer key; never returned to learners
    questions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    passing_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_attempts: Mapped[int | None] = mapped_column(Integer, default=3, nullable=True)
    time_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    show_feedback: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    show_results: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    attempts: Mapped[list["AssessmentAttempt"]] = relationship(back_populates="assessment")


class AssessmentAttempt(Base):
    __tablename__ = "assessment_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    assessment_id: Mapped[int] = mapped_column(ForeignKey("assessments.id"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="in_progress", nullable=False)
    answers: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    assessment: Mapped["Assessment"] = relationship(back_populates="attempts")
