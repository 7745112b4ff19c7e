"""Assessment tool Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, HttpUrl

from edbilling.constants import ASSESSMENT_SEARCH_DEFAULT_LIMIT, ASSESSMENT_SEARCH_MAX_LIMIT


class ToolRegistration(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    type: str = Field(min_length=1, max_length=32)
    base_url: HttpUrl
    description: str = ""
    api_key: str | None = None
    api_secret: str | None = None
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = None
    oauth_token_url: str | None = None
    supported_question_types: list[str] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)


class ToolInfo(BaseModel):
    id: int
    tenant_id: str
    name: str
    type: str
    base_url: str
    status: str
    supported_question_types: list[str] = []

    model_config = {"from_attributes": True}


class AssessmentSearchQuery(BaseModel):
    query: str = ""
    type: str | None = None
    tools: list[int] | None = None
    limit: int = Field(ASSESSMENT_SEARCH_DEFAULT_LIMIT, ge=1, le=ASSESSMENT_SEARCH_MAX_LIMIT)
    offset: int = Field(0, ge=0)


class AssessmentSearchResult(BaseModel):
    items: list[dict[str, Any]]
    total: int
    limit: int
    offset: int


# bool first so a JSON true stays a bool instead of validating as a string
AnswerValue = bool | str | list[str] | None


class Question(BaseModel):
    id: str
    type: str
    text: str = ""
    correct_answer: AnswerValue = None
    points: int | None = 1


class PublicQuestion(BaseModel):
    """A question as shown to a learner: no answer key."""

    id: str
    type: str
    text: str = ""
    points: int | None = 1


class Answer(BaseModel):
    question_id: str
    answer: AnswerValue = None


class GradedAnswer(Answer):
    is_correct: bool
    points: int


class GradeResult(BaseModel):
    score: float
    passed: bool
    feedback: str | None = None
    results: list[GradedAnswer] | None = None


class AssessmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    tool_id: int | None = None
    questions: list[Question] = Field(min_length=1)
    passing_score: float | None = Field(None, ge=0, le=100)
    max_attempts: int | None = Field(3, ge=1)
    time_limit: int | None = Field(None, ge=1)
    show_feedback: bool = True
    show_results: bool = True


class AssessmentInfo(BaseModel):
    id: int
    tenant_id: str
    tool_id: int | None
    title: str
    description: str
    passing_score: float | None
    max_attempts: int | None
    time_limit: int | None
    show_feedback: bool
    show_results: bool
    questions: list[PublicQuestion]

    model_config = {"from_attributes": True}


class AttemptStarted(BaseModel):
    attempt_id: int
    assessment_id: int
    started_at: datetime


class AttemptSubmission(BaseModel):
    answers: list[Answer]


class AttemptResult(GradeResult):
    attempt_id: int
    time_spent: int


class AttemptSummary(BaseModel):
    id: int
    assessment_id: int
    assessment_title: str | None = None
    status: str
    score: float | None
    passed: bool | None
    time_spent: int | None
    started_at: datetime
    completed_at: datetime | None


class AttemptPage(BaseModel):
    items: list[AttemptSummary]
    total: int
    limit: int
    offset: int
