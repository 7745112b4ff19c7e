"""Answer checking and scoring for assessment attempts.

All-or-nothing per question: no partial credit, no fuzzy matching.
"""

import math
from typing import Any

from edbilling.schemas.assessment import Answer, GradedAnswer, GradeResult, Question


def check_answer(answer: Any, question: Question) -> bool:
    correct = question.correct_answer

    if question.type in ("multiple_choice", "true_false"):
        return answer == correct

    if question.type == "multiple_answer":
        if not isinstance(answer, list) or not isinstance(correct, list):
            return False
        return len(answer) == len(correct) and all(a in correct for a in answer)

    if question.type == "short_answer":
        if not isinstance(answer, str) or not isinstance(correct, str):
            return False
        return answer.lower() == correct.lower()

    return False


def _question_points(question: Question) -> int:
    return question.points or 1


def grade_answers(questions: list[Question], answers: list[Answer]) -> list[GradedAnswer]:
    """Mark each answer; answers to unknown questions score nothing."""
    by_id = {q.id: q for q in questions}
    graded = []
    for answer in answers:
        question = by_id.get(answer.question_id)
        is_correct = question is not None and check_answer(answer.answer, question)
        graded.append(
            GradedAnswer(
                question_id=answer.question_id,
                answer=answer.answer,
                is_correct=is_correct,
                points=_question_points(question) if is_correct else 0,
            )
        )
    return graded


def generate_feedback(graded: list[GradedAnswer], questions: list[Question]) -> str:
    correct_count = sum(1 for a in graded if a.is_correct)
    total_count = len(questions)
    percentage = math.floor(correct_count / total_count * 100 + 0.5) if total_count else 0
    return f"You answered {correct_count} out of {total_count} questions correctly ({percentage}%)."


def score_attempt(
    questions: list[Question],
    answers: list[Answer],
    passing_score: float | None = None,
    show_feedback: bool = True,
    show_results: bool = True,
) -> GradeResult:
    graded = grade_answers(questions, answers)
    total_points = sum(_question_points(q) for q in questions)
    earned_points = sum(a.points for a in graded)
    score = earned_points / total_points * 100 if total_points > 0 else 0.0
    passed = score >= passing_score if passing_score else True
    return GradeResult(
        score=score,
        passed=passed,
        feedback=generate_feedback(graded, questions) if show_feedback else None,
        results=graded if show_results else None,
    )
