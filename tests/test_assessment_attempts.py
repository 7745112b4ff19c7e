from datetime import timedelta

import pytest
from sqlalchemy import update

from conftest import auth_headers, create_user
from edbilling.errors import AssessmentAttemptError, AssessmentToolError
from edbilling.models import AssessmentAttempt
from edbilling.schemas.assessment import Answer, AssessmentCreate
from edbilling.services.assessment_attempts import AssessmentAttemptService
from edbilling.utils import now_utc

TENANT = "school-1"

QUESTIONS = [
    {"id": "1", "type": "multiple_choice", "text": "2 + 2?", "correct_answer": "b", "points": 3},
    {"id": "2", "type": "true_false", "text": "The Earth is flat.", "correct_answer": False},
]


def assessment_data(**fields) -> AssessmentCreate:
    return AssessmentCreate(title="Number sense", questions=QUESTIONS, **fields)


@pytest.mark.asyncio
async def test_submit_grades_against_stored_questions(session_maker, db):
    user = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(TENANT, assessment_data(passing_score=70))
    attempt = await service.start_attempt(TENANT, assessment.id, user.id)

    result = await service.submit_attempt(
        TENANT, attempt.id, user.id,
        [Answer(question_id="1", answer="b"), Answer(question_id="2", answer=True)],
    )

    assert result.attempt_id == attempt.id
    assert result.score == 75
    assert result.passed is True
    assert result.feedback == "You answered 1 out of 2 questions correctly (50%)."
    assert [(r.question_id, r.is_correct) for r in result.results] == [("1", True), ("2", False)]


@pytest.mark.asyncio
async def test_max_attempts_limit(session_maker, db):
    user = await create_user(session_maker)
    other = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(TENANT, assessment_data(max_attempts=2))

    await service.start_attempt(TENANT, assessment.id, user.id)
    await service.start_attempt(TENANT, assessment.id, user.id)
    with pytest.raises(AssessmentAttemptError, match="Maximum attempts reached"):
        await service.start_attempt(TENANT, assessment.id, user.id)

    # The limit is per learner
    await service.start_attempt(TENANT, assessment.id, other.id)
    assert await service.count_attempts(assessment.id, user.id) == 2


@pytest.mark.asyncio
async def test_unlimited_attempts_when_max_is_unset(session_maker, db):
    user = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(TENANT, assessment_data(max_attempts=None))

    for _ in range(5):
        await service.start_attempt(TENANT, assessment.id, user.id)

    assert await service.count_attempts(assessment.id, user.id) == 5


@pytest.mark.asyncio
async def test_completed_attempt_cannot_be_resubmitted(session_maker, db):
    user = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(TENANT, assessment_data())
    attempt = await service.start_attempt(TENANT, assessment.id, user.id)
    await service.submit_attempt(TENANT, attempt.id, user.id, [Answer(question_id="1", answer="a")])

    with pytest.raises(AssessmentAttemptError, match="already completed"):
        await service.submit_attempt(TENANT, attempt.id, user.id, [Answer(question_id="1", answer="b")])

    async with session_maker() as session:
        stored = await session.get(AssessmentAttempt, attempt.id)
    assert stored.status == "completed"
    assert stored.score == 0


@pytest.mark.asyncio
async def test_hidden_results_and_feedback_are_still_recorded(session_maker, db):
    user = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(
        TENANT, assessment_data(show_results=False, show_feedback=False)
    )
    attempt = await service.start_attempt(TENANT, assessment.id, user.id)

    result = await service.submit_attempt(TENANT, attempt.id, user.id, [Answer(question_id="2", answer=False)])

    assert result.score == 25
    assert result.results is None
    assert result.feedback is None
    async with session_maker() as session:
        stored = await session.get(AssessmentAttempt, attempt.id)
    assert stored.answers == [{"question_id": "2", "answer": False, "is_correct": True, "points": 1}]


@pytest.mark.asyncio
async def test_time_spent_is_whole_seconds_since_start(session_maker, db):
    user = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(TENANT, assessment_data())
    attempt = await service.start_attempt(TENANT, assessment.id, user.id)
    async with session_maker() as session:
        await session.execute(
            update(AssessmentAttempt)
            .where(AssessmentAttempt.id == attempt.id)
            .values(started_at=now_utc() - timedelta(minutes=10, milliseconds=400))
        )
        await session.commit()

    async with session_maker() as session:
        result = await AssessmentAttemptService(session).submit_attempt(TENANT, attempt.id, user.id, [])

    assert 600 <= result.time_spent <= 602


@pytest.mark.asyncio
async def test_attempts_are_scoped_to_tenant_and_owner(session_maker, db):
    user = await create_user(session_maker)
    intruder = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    assessment = await service.create_assessment(TENANT, assessment_data())
    attempt = await service.start_attempt(TENANT, assessment.id, user.id)

    with pytest.raises(AssessmentToolError):
        await service.get_assessment("school-2", assessment.id)
    with pytest.raises(AssessmentToolError):
        await service.submit_attempt(TENANT, attempt.id, intruder.id, [])
    with pytest.raises(AssessmentToolError):
        await service.submit_attempt("school-2", attempt.id, user.id, [])


@pytest.mark.asyncio
async def test_assessment_linked_to_unknown_tool_is_rejected(db):
    service = AssessmentAttemptService(db)

    with pytest.raises(AssessmentToolError):
        await service.create_assessment(TENANT, assessment_data(tool_id=999))


@pytest.mark.asyncio
async def test_user_results_are_paginated_newest_first(session_maker, db):
    user = await create_user(session_maker)
    other = await create_user(session_maker)
    service = AssessmentAttemptService(db)
    first = await service.create_assessment(TENANT, assessment_data(max_attempts=None))
    second = await service.create_assessment(
        TENANT, AssessmentCreate(title="Reading", questions=QUESTIONS[:1])
    )
    attempts = [await service.start_attempt(TENANT, first.id, user.id) for _ in range(3)]
    await service.start_attempt(TENANT, second.id, user.id)
    await service.start_attempt(TENANT, first.id, other.id)
    await service.submit_attempt(TENANT, attempts[0].id, user.id, [Answer(question_id="1", answer="b")])

    page = await service.get_user_results(TENANT, user.id, limit=2, offset=1)

    assert page["total"] == 4
    assert (page["limit"], page["offset"]) == (2, 1)
    assert len(page["items"]) == 2

    filtered = await service.get_user_results(TENANT, user.id, assessment_id=first.id)
    assert filtered["total"] == 3
    assert {item["assessment_title"] for item in filtered["items"]} == {"Number sense"}
    completed = [item for item in filtered["items"] if item["status"] == "completed"]
    assert [(c["id"], c["score"], c["passed"]) for c in completed] == [(attempts[0].id, 75, True)]


# --- HTTP surface ---


@pytest.mark.asyncio
async def test_attempt_lifecycle_over_http(client, session_maker):
    user = await create_user(session_maker)
    headers = {**auth_headers(user.id), "X-Tenant-ID": TENANT}

    response = await client.post(
        "/api/assessments/assessments",
        json={"title": "Science", "questions": QUESTIONS, "max_attempts": 1, "passing_score": 100},
        headers=headers,
    )
    assert response.status_code == 201
    assessment_id = response.json()["id"]

    response = await client.get(f"/api/assessments/assessments/{assessment_id}", headers=headers)
    assert response.status_code == 200
    assert [question["id"] for question in response.json()["questions"]] == ["1", "2"]
    assert all("correct_answer" not in question for question in response.json()["questions"])

    response = await client.post(f"/api/assessments/assessments/{assessment_id}/attempts", headers=headers)
    assert response.status_code == 201
    attempt_id = response.json()["attempt_id"]

    response = await client.post(
        f"/api/assessments/attempts/{attempt_id}/submit",
        json={"answers": [{"question_id": "1", "answer": "b"}, {"question_id": "2", "answer": False}]},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["score"] == 100
    assert body["passed"] is True
    assert [r["answer"] for r in body["results"]] == ["b", False]

    response = await client.post(
        f"/api/assessments/attempts/{attempt_id}/submit", json={"answers": []}, headers=headers
    )
    assert response.status_code == 409

    response = await client.post(f"/api/assessments/assessments/{assessment_id}/attempts", headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "Maximum attempts reached"

    response = await client.get("/api/assessments/results", headers=headers)
    assert response.json()["total"] == 1
    assert response.json()["items"][0]["status"] == "completed"


@pytest.mark.asyncio
async def test_unknown_assessment_returns_404(client, session_maker):
    user = await create_user(session_maker)
    headers = {**auth_headers(user.id), "X-Tenant-ID": TENANT}

    response = await client.post("/api/assessments/assessments/999/attempts", headers=headers)

    assert response.status_code == 404
