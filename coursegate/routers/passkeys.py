"""
Passkeys Router

Institute-side passkey management:
- Generation of passkey batches for a course (principal)
- Listing and detail with status history (principal or teacher)
- Revocation (principal)

Plus a public check of a passkey against the presenting device.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from coursegate.config import get_settings
from coursegate.core.auth import CurrentActor
from coursegate.core.database import DbSession
from coursegate.core.timeutils import utcnow
from coursegate.models.contracts.common import PaginatedResponse
from coursegate.models.contracts.passkeys import (
    PasskeyDetail,
    PasskeyGenerateRequest,
    PasskeyGenerateResponse,
    PasskeyPublic,
    PasskeyRevokeRequest,
    PasskeyValidateRequest,
)
from coursegate.models.enums import PasskeyStatus
from coursegate.services.passkey_registry import PasskeyRegistry

router = APIRouter(prefix="/api/passkeys", tags=["passkeys"])


@router.post(
    "/generate",
    response_model=PasskeyGenerateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate passkeys",
    description="Generate a batch of unclaimed passkeys for a course of the principal's institute.",
)
async def generate_passkeys(
    request: PasskeyGenerateRequest,
    actor: CurrentActor,
    db: DbSession,
) -> PasskeyGenerateResponse:
    settings = get_settings()
    registry = PasskeyRegistry(db, settings)
    passkeys = await registry.generate(
        actor, request.course_id, request.count, request.duration_months
    )
    now = utcnow()
    return PasskeyGenerateResponse(
        count=len(passkeys),
        passkeys=[PasskeyPublic.from_passkey(p, now, settings.renewal_grace_days) for p in passkeys],
    )


@router.get(
    "",
    response_model=PaginatedResponse[PasskeyPublic],
    summary="List passkeys",
)
async def list_passkeys(
    actor: CurrentActor,
    db: DbSession,
    status_filter: PasskeyStatus | None = Query(default=None, alias="status"),
    course_id: UUID | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse[PasskeyPublic]:
    """List passkeys of the caller's institute."""
    settings = get_settings()
    registry = PasskeyRegistry(db, settings)
    items, total = await registry.list_for_institute(
        actor, status=status_filter, course_id=course_id, limit=limit, offset=offset
    )
    now = utcnow()
    return PaginatedResponse(
        items=[PasskeyPublic.from_passkey(p, now, settings.renewal_grace_days) for p in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post(
    "/validate",
    response_model=PasskeyPublic,
    summary="Validate a passkey for a device",
    description="Succeeds only when the passkey is active with time left and bound to the device.",
)
async def validate_passkey(request: PasskeyValidateRequest, db: DbSession) -> PasskeyPublic:
    settings = get_settings()
    registry = PasskeyRegistry(db, settings)
    passkey = await registry.validate_for_device(request.passkey_id, request.device_id)
    return PasskeyPublic.from_passkey(passkey, utcnow(), settings.renewal_grace_days)


@router.get(
    "/{passkey_id}",
    response_model=PasskeyDetail,
    summary="Get passkey detail",
)
async def get_passkey(passkey_id: str, actor: CurrentActor, db: DbSession) -> PasskeyDetail:
    """Get a passkey of the caller's institute with its status history."""
    settings = get_settings()
    registry = PasskeyRegistry(db, settings)
    passkey = await registry.get_for_institute(actor, passkey_id)
    history = await registry.history(passkey)
    return PasskeyDetail.from_passkey_with_history(
        passkey, history, utcnow(), settings.renewal_grace_days
    )


@router.post(
    "/{passkey_id}/revoke",
    response_model=PasskeyPublic,
    summary="Revoke a passkey",
    description="Irreversibly revoke a passkey of the principal's institute.",
)
async def revoke_passkey(
    passkey_id: str,
    request: PasskeyRevokeRequest,
    actor: CurrentActor,
    db: DbSession,
) -> PasskeyPublic:
    settings = get_settings()
    registry = PasskeyRegistry(db, settings)
    passkey = await registry.revoke(actor, passkey_id, request.reason)
    return PasskeyPublic.from_passkey(passkey, utcnow(), settings.renewal_grace_days)
