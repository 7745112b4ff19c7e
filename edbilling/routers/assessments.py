"""Assessment routes: tool registry, cross-tool search, stored assessments and attempts."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.constants import ASSESSMENT_SEARCH_DEFAULT_LIMIT, ASSESSMENT_SEARCH_MAX_LIMIT
from edbilling.db.session import get_db
from edbilling.errors import AssessmentAttemptError, AssessmentToolError
from edbilling.models.user import User
from edbilling.schemas.assessment import (
    AssessmentCreate,
    AssessmentInfo,
    AssessmentSearchQuery,
    AssessmentSearchResult,
    AttemptPage,
    AttemptResult,
    AttemptStarted,
    AttemptSubmission,
    ToolInfo,
    ToolRegistration,
)
from edbilling.services.assessment_attempts import AssessmentAttemptService
from edbilling.services.assessment_tools import AssessmentToolService
from edbilling.services.auth_service import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/assessments", tags=["assessments"])


def get_tool_service(request: Request, db: AsyncSession = Depends(get_db)) -> AssessmentToolService:
    return AssessmentToolService(db, client_factory=request.app.state.assessment_client_factory)


def get_attempt_service(db: AsyncSession = Depends(get_db)) -> AssessmentAttemptService:
    return AssessmentAttemptService(db)


def get_tenant_id(x_tenant_id: str = Header(alias="X-Tenant-ID")) -> str:
    return x_tenant_id


@router.post("/tools", response_model=ToolInfo, status_code=201)
async def register_tool(
    body: ToolRegistration,
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentToolService = Depends(get_tool_service),
):
    try:
        return await service.register_tool(tenant_id, body)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/tools", response_model=list[ToolInfo])
async def list_active_tools(
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentToolService = Depends(get_tool_service),
):
    return await service.get_active_tools(tenant_id)


@router.post("/tools/{tool_id}/activate", response_model=ToolInfo)
async def activate_tool(
    tool_id: int,
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentToolService = Depends(get_tool_service),
):
    try:
        return await service.set_tool_status(tenant_id, tool_id, "active")
    except AssessmentToolError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/tools/{tool_id}/disable", response_model=ToolInfo)
async def disable_tool(
    tool_id: int,
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentToolService = Depends(get_tool_service),
):
    try:
        return await service.set_tool_status(tenant_id, tool_id, "disabled")
    except AssessmentToolError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/search", response_model=AssessmentSearchResult)
async def search_assessments(
    body: AssessmentSearchQuery,
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentToolService = Depends(get_tool_service),
):
    return await service.search_assessments(tenant_id, body)


# --- Stored assessments and attempts ---


@router.post("/assessments", response_model=AssessmentInfo, status_code=201)
async def create_assessment(
    body: AssessmentCreate,
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentAttemptService = Depends(get_attempt_service),
):
    try:
        return await service.create_assessment(tenant_id, body)
    except AssessmentToolError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/assessments/{assessment_id}", response_model=AssessmentInfo)
async def get_assessment(
    assessment_id: int,
    tenant_id: str = Depends(get_tenant_id),
    _user: User = Depends(get_current_user),
    service: AssessmentAttemptService = Depends(get_attempt_service),
):
    try:
        return await service.get_assessment(tenant_id, assessment_id)
    except AssessmentToolError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/assessments/{assessment_id}/attempts", response_model=AttemptStarted, status_code=201)
async def start_attempt(
    assessment_id: int,
    tenant_id: str = Depends(get_tenant_id),
    user: User = Depends(get_current_user),
    service: AssessmentAttemptService = Depends(get_attempt_service),
):
    try:
        attempt = await service.start_attempt(tenant_id, assessment_id, user.id)
    except AssessmentToolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AssessmentAttemptError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return AttemptStarted(
        attempt_id=attempt.id, assessment_id=attempt.assessment_id, started_at=attempt.started_at
    )


@router.post("/attempts/{attempt_id}/submit", response_model=AttemptResult)
async def submit_attempt(
    attempt_id: int,
    body: AttemptSubmission,
    tenant_id: str = Depends(get_tenant_id),
    user: User = Depends(get_current_user),
    service: AssessmentAttemptService = Depends(get_attempt_service),
):
    try:
        return await service.submit_attempt(tenant_id, attempt_id, user.id, body.answers)
    except AssessmentToolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AssessmentAttemptError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/results", response_model=AttemptPage)
async def list_results(
    assessment_id: int | None = None,
    limit: int = Query(ASSESSMENT_SEARCH_DEFAULT_LIMIT, ge=1, le=ASSESSMENT_SEARCH_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    user: User = Depends(get_current_user),
    service: AssessmentAttemptService = Depends(get_attempt_service),
):
    return await service.get_user_results(tenant_id, user.id, assessment_id, limit, offset)
