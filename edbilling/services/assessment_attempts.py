"""Stored assessments and the learner attempt lifecycle.

Attempts are graded against the questions stored with the assessment, never
against an answer key sent by the caller.
"""

import logging
from datetime import UTC
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.constants import ASSESSMENT_SEARCH_DEFAULT_LIMIT
from edbilling.errors import AssessmentAttemptError, AssessmentToolError
from edbilling.models.assessment import Assessment, AssessmentAttempt
from edbilling.models.assessment_tool import AssessmentTool
from edbilling.schemas.assessment import Answer, AssessmentCreate, AttemptResult, Question
from edbilling.services.assessment_grading import score_attempt
from edbilling.utils import now_utc

logger = logging.getLogger(__name__)


class AssessmentAttemptService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_assessment(self, tenant_id: str, data: AssessmentCreate) -> Assessment:
        if data.tool_id is not None:
            result = await self.db.execute(
                select(AssessmentTool.id).where(
                    AssessmentTool.id == data.tool_id, AssessmentTool.tenant_id == tenant_id
                )
            )
            if result.scalar_one_or_none() is None:
                raise AssessmentToolError(f"Assessment tool {data.tool_id} not found")

        assessment = Assessment(
            tenant_id=tenant_id,
            tool_id=data.tool_id,
            title=data.title,
            description=data.description,
            questions=[q.model_dump() for q in data.questions],
            passing_score=data.passing_score,
            max_attempts=data.max_attempts,
            time_limit=data.time_limit,
            show_feedback=data.show_feedback,
            show_results=data.show_results,
        )
        self.db.add(assessment)
        await self.db.commit()
        await self.db.refresh(assessment)
        logger.info(f"Created assessment {assessment.id} ({assessment.title}) for tenant {tenant_id}")
        return assessment

    async def get_assessment(self, tenant_id: str, assessment_id: int) -> Assessment:
        result = await self.db.execute(
            select(Assessment).where(Assessment.id == assessment_id, Assessment.tenant_id == tenant_id)
        )
        assessment = result.scalar_one_or_none()
        if not assessment:
            raise AssessmentToolError(f"Assessment {assessment_id} not found")
        return assessment

    async def count_attempts(self, assessment_id: int, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(AssessmentAttempt.id)).where(
                AssessmentAttempt.assessment_id == assessment_id,
                AssessmentAttempt.user_id == user_id,
            )
        )
        return result.scalar_one()

    async def start_attempt(self, tenant_id: str, assessment_id: int, user_id: int) -> AssessmentAttempt:
        """Open a new attempt. Every started attempt counts towards ``max_attempts``."""
        assessment = await self.get_assessment(tenant_id, assessment_id)

        if assessment.max_attempts:
            attempts = await self.count_attempts(assessment.id, user_id)
            if attempts >= assessment.max_attempts:
                raise AssessmentAttemptError("Maximum attempts reached")

        attempt = AssessmentAttempt(
            tenant_id=tenant_id,
            assessment_id=assessment.id,
            user_id=user_id,
            status="in_progress",
            started_at=now_utc(),
        )
        self.db.add(attempt)
        await self.db.commit()
        await self.db.refresh(attempt)
        logger.info(f"User {user_id} started attempt {attempt.id} on assessment {assessment.id}")
        return attempt

    async def get_attempt(self, tenant_id: str, attempt_id: int, user_id: int) -> AssessmentAttempt:
        result = await self.db.execute(
            select(AssessmentAttempt).where(
                AssessmentAttempt.id == attempt_id,
                AssessmentAttempt.tenant_id == tenant_id,
                AssessmentAttempt.user_id == user_id,
            )
        )
        attempt = result.scalar_one_or_none()
        if not attempt:
            raise AssessmentToolError(f"Assessment attempt {attempt_id} not found")
        return attempt

    async def submit_attempt(
        self, tenant_id: str, attempt_id: int, user_id: int, answers: list[Answer]
    ) -> AttemptResult:
        """Grade and close an attempt.

        The assessment's ``show_feedback`` / ``show_results`` flags decide what
        the learner sees; the graded answers are stored either way.
        """
        attempt = await self.get_attempt(tenant_id, attempt_id, user_id)
        if attempt.status == "completed":
            raise AssessmentAttemptError("Assessment attempt already completed")

        assessment = await self.get_assessment(tenant_id, attempt.assessment_id)
        questions = [Question.model_validate(q) for q in assessment.questions]
        graded = score_attempt(questions, answers, assessment.passing_score)

        completed_at = now_utc()
        started_at = attempt.started_at
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=UTC)
        time_spent = max(int((completed_at - started_at).total_seconds()), 0)

        # Conditional on in_progress so two concurrent submissions cannot both complete
        result = await self.db.execute(
            update(AssessmentAttempt)
            .where(AssessmentAttempt.id == attempt.id, AssessmentAttempt.status == "in_progress")
            .values(
                status="completed",
                answers=[a.model_dump() for a in graded.results],
                score=graded.score,
                passed=graded.passed,
                time_spent=time_spent,
                completed_at=completed_at,
            )
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise AssessmentAttemptError("Assessment attempt already completed")
        await self.db.commit()
        logger.info(f"Attempt {attempt.id} completed by user {user_id}: score {graded.score:.1f}")

        return AttemptResult(
            attempt_id=attempt.id,
            score=graded.score,
            passed=graded.passed,
            time_spent=time_spent,
            feedback=graded.feedback if assessment.show_feedback else None,
            results=graded.results if assessment.show_results else None,
        )

    async def get_user_results(
        self,
        tenant_id: str,
        user_id: int,
        assessment_id: int | None = None,
        limit: int = ASSESSMENT_SEARCH_DEFAULT_LIMIT,
        offset: int = 0,
    ) -> dict[str, Any]:
        """A page of the user's attempts, newest first, with the assessment title."""
        filters = [AssessmentAttempt.tenant_id == tenant_id, AssessmentAttempt.user_id == user_id]
        if assessment_id is not None:
            filters.append(AssessmentAttempt.assessment_id == assessment_id)

        total = (
            await self.db.execute(select(func.count(AssessmentAttempt.id)).where(*filters))
        ).scalar_one()
        rows = await self.db.execute(
            select(AssessmentAttempt, Assessment.title)
            .join(Assessment, Assessment.id == AssessmentAttempt.assessment_id)
            .where(*filters)
            .order_by(AssessmentAttempt.started_at.desc(), AssessmentAttempt.id.desc())
            .limit(limit)
            .offset(offset)
        )

        items = [
            {
                "id": attempt.id,
                "assessment_id": attempt.assessment_id,
                "assessment_title": title,
                "status": attempt.status,
                "score": attempt.score,
                "passed": attempt.passed,
                "time_spent": attempt.time_spent,
                "started_at": attempt.started_at,
                "completed_at": attempt.completed_at,
            }
            for attempt, title in rows.all()
        ]
        return {"items": items, "total": total, "limit": limit, "offset": offset}
