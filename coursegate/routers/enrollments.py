"""
Enrollments Router

Students list their enrollments and request refunds; institute members list
the enrollments of a course.
"""

from uuid import UUID

from fastapi import APIRouter, Query

from coursegate.core.auth import CurrentActor, require_student
from coursegate.core.database import DbSession
from coursegate.models.contracts.enrollments import (
    CourseEnrollmentList,
    EnrollmentPublic,
    RefundRequest,
)
from coursegate.services.enrollment_ledger import EnrollmentLedger

router = APIRouter(prefix="/api/enrollments", tags=["enrollments"])


@router.get(
    "/me",
    response_model=list[EnrollmentPublic],
    summary="List my enrollments",
)
async def list_my_enrollments(
    actor: CurrentActor,
    db: DbSession,
    active_only: bool = Query(default=False),
) -> list[EnrollmentPublic]:
    student = require_student(actor)
    ledger = EnrollmentLedger(db)
    enrollments = await ledger.list_for_student(student.student_id, active_only=active_only)
    return [EnrollmentPublic.model_validate(e) for e in enrollments]


@router.post(
    "/{enrollment_id}/refund",
    response_model=EnrollmentPublic,
    summary="Request a refund",
    description="Deactivate an enrollment within the refund window and record the request.",
)
async def request_refund(
    enrollment_id: UUID,
    request: RefundRequest,
    actor: CurrentActor,
    db: DbSession,
) -> EnrollmentPublic:
    student = require_student(actor)
    ledger = EnrollmentLedger(db)
    enrollment = await ledger.request_refund(student.student_id, enrollment_id, request.reason)
    return EnrollmentPublic.model_validate(enrollment)


@router.get(
    "/courses/{course_id}",
    response_model=CourseEnrollmentList,
    summary="List enrollments of a course",
)
async def list_course_enrollments(
    course_id: UUID,
    actor: CurrentActor,
    db: DbSession,
    active_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> CourseEnrollmentList:
    ledger = EnrollmentLedger(db)
    items, total, active = await ledger.list_for_course(
        actor, course_id, active_only=active_only, limit=limit, offset=offset
    )
    return CourseEnrollmentList(
        items=[EnrollmentPublic.model_validate(e) for e in items],
        total=total,
        limit=limit,
        offset=offset,
        active_count=active,
    )
