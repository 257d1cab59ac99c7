"""
Students Router

Device registration, passkey claiming and student login, plus the
student's owned-passkey list.
"""

from fastapi import APIRouter

from coursegate.config import get_settings
from coursegate.core.auth import CurrentActor, require_student
from coursegate.core.database import DbSession
from coursegate.core.timeutils import utcnow
from coursegate.models.contracts.passkeys import PasskeyPublic
from coursegate.models.contracts.students import (
    ClaimPasskeyRequest,
    ClaimPasskeyResponse,
    DeviceRegisterRequest,
    LoginRequest,
    LoginResponse,
    OwnedPasskeyList,
    OwnedPasskeyPublic,
    StudentPublic,
    SwitchPasskeyRequest,
)
from coursegate.services.student_binder import StudentBinder

router = APIRouter(prefix="/api/students", tags=["students"])


@router.post(
    "/devices",
    response_model=StudentPublic,
    summary="Register a device",
    description="Get or create the student record of a device.",
)
async def register_device(request: DeviceRegisterRequest, db: DbSession) -> StudentPublic:
    binder = StudentBinder(db)
    student = await binder.register_device(
        request.device_id, request.name, request.email, request.phone_number
    )
    return StudentPublic.model_validate(student)


@router.post(
    "/claim",
    response_model=ClaimPasskeyResponse,
    summary="Claim a passkey",
    description="Bind an unclaimed passkey to the calling device and log in with it.",
)
async def claim_passkey(request: ClaimPasskeyRequest, db: DbSession) -> ClaimPasskeyResponse:
    settings = get_settings()
    binder = StudentBinder(db, settings=settings)
    claimed = await binder.claim_passkey(
        request.passkey_id,
        request.device_id,
        name=request.name,
        email=request.email,
        phone_number=request.phone_number,
    )
    session = await binder.login(claimed.passkey.passkey_id, claimed.student.device_id)
    return ClaimPasskeyResponse(
        access_token=session.access_token,
        student=StudentPublic.model_validate(session.student),
        passkey=PasskeyPublic.from_passkey(session.passkey, utcnow(), settings.renewal_grace_days),
        entry=OwnedPasskeyPublic.model_validate(claimed.entry),
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Log in with a passkey",
)
async def login(request: LoginRequest, db: DbSession) -> LoginResponse:
    """Log a student in with an owned passkey from its bound device."""
    settings = get_settings()
    binder = StudentBinder(db, settings=settings)
    session = await binder.login(request.passkey_id, request.device_id)
    return LoginResponse(
        access_token=session.access_token,
        student=StudentPublic.model_validate(session.student),
        passkey=PasskeyPublic.from_passkey(session.passkey, utcnow(), settings.renewal_grace_days),
    )


@router.get(
    "/me/passkeys",
    response_model=OwnedPasskeyList,
    summary="List owned passkeys",
)
async def list_owned_passkeys(actor: CurrentActor, db: DbSession) -> OwnedPasskeyList:
    student = require_student(actor)
    binder = StudentBinder(db)
    entries = await binder.list_owned(student.student_id)
    active = next((e.passkey_id for e in entries if e.is_active), None)
    return OwnedPasskeyList(
        items=[OwnedPasskeyPublic.model_validate(e) for e in entries],
        active_passkey_id=active,
    )


@router.post(
    "/me/passkeys/switch",
    response_model=OwnedPasskeyPublic,
    summary="Switch the active passkey",
)
async def switch_active_passkey(
    request: SwitchPasskeyRequest,
    actor: CurrentActor,
    db: DbSession,
) -> OwnedPasskeyPublic:
    student = require_student(actor)
    binder = StudentBinder(db)
    entry = await binder.switch_active_passkey(student.student_id, request.passkey_id)
    return OwnedPasskeyPublic.model_validate(entry)
