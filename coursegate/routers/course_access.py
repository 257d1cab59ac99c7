"""
Course Access Router

Answers whether the calling student may open a course's content.
"""

from uuid import UUID

from fastapi import APIRouter

from coursegate.core.auth import CurrentActor, require_student
from coursegate.core.database import DbSession
from coursegate.models.contracts.access import AccessCheckResponse
from coursegate.services.access_evaluator import AccessEvaluator

router = APIRouter(prefix="/api/courses", tags=["course-access"])


@router.get(
    "/{course_id}/access",
    response_model=AccessCheckResponse,
    summary="Check course access",
    description="Evaluate enrollment, expiry, revocation and device binding for the caller.",
)
async def check_course_access(
    course_id: UUID,
    actor: CurrentActor,
    db: DbSession,
) -> AccessCheckResponse:
    student = require_student(actor)
    evaluator = AccessEvaluator(db)
    decision = await evaluator.evaluate(
        course_id, student_id=student.student_id, device_id=student.device_id
    )
    return AccessCheckResponse(
        course_id=course_id,
        granted=decision.granted,
        reason=decision.reason.value,
        passkey_id=decision.passkey_id,
        expires_at=decision.expires_at,
    )
