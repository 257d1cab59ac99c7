"""
Authentication and Authorization

Provides the Actor union, the bearer-token verifier and the FastAPI
dependencies that resolve a request into an Actor.

Role dispatch is a closed union: every function that branches on the kind of
actor handles all four cases and ends in assert_never, so adding a role is a
type error until each branch handles it.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated, assert_never
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from coursegate.core.errors import AuthorizationError, Unauthenticated
from coursegate.core.security import ACCESS_TOKEN_TYPE, create_access_token, decode_token
from coursegate.models.enums import ActorRole

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# Actors
# =============================================================================


@dataclass(frozen=True)
class SuperAdmin:
    """Platform operator."""

    user_id: UUID


@dataclass(frozen=True)
class InstitutePrincipal:
    """Owner/administrator of one institute."""

    user_id: UUID
    institute_id: UUID


@dataclass(frozen=True)
class Teacher:
    """Teacher hired by one institute."""

    user_id: UUID
    institute_id: UUID


@dataclass(frozen=True)
class Student:
    """Student logged in from a device with one of their passkeys."""

    student_id: UUID
    device_id: str | None = None
    passkey_id: str | None = None


Actor = SuperAdmin | InstitutePrincipal | Teacher | Student


def actor_role(actor: Actor) -> ActorRole:
    if isinstance(actor, SuperAdmin):
        return ActorRole.SUPER_ADMIN
    elif isinstance(actor, InstitutePrincipal):
        return ActorRole.PRINCIPAL
    elif isinstance(actor, Teacher):
        return ActorRole.TEACHER
    elif isinstance(actor, Student):
        return ActorRole.STUDENT
    else:
        assert_never(actor)


def actor_id(actor: Actor) -> UUID:
    if isinstance(actor, SuperAdmin | InstitutePrincipal | Teacher):
        return actor.user_id
    elif isinstance(actor, Student):
        return actor.student_id
    else:
        assert_never(actor)


def require_principal(actor: Actor) -> InstitutePrincipal:
    """
    Narrow an actor to an institute principal.

    Raises:
        AuthorizationError: For any other kind of actor
    """
    if isinstance(actor, InstitutePrincipal):
        return actor
    elif isinstance(actor, SuperAdmin | Teacher | Student):
        raise AuthorizationError("Institute principal access required")
    else:
        assert_never(actor)


def require_institute_member(actor: Actor) -> UUID:
    """
    Institute scope of a principal or teacher.

    Raises:
        AuthorizationError: For super admins and students
    """
    if isinstance(actor, InstitutePrincipal | Teacher):
        return actor.institute_id
    elif isinstance(actor, SuperAdmin | Student):
        raise AuthorizationError("Institute access required")
    else:
        assert_never(actor)


def require_student(actor: Actor) -> Student:
    """
    Narrow an actor to a student.

    Raises:
        AuthorizationError: For any other kind of actor
    """
    if isinstance(actor, Student):
        return actor
    elif isinstance(actor, SuperAdmin | InstitutePrincipal | Teacher):
        raise AuthorizationError("Student access required")
    else:
        assert_never(actor)


# =============================================================================
# Tokens
# =============================================================================


@dataclass(frozen=True)
class TokenClaims:
    """Claims carried by a verified access token."""

    subject_id: UUID
    role: ActorRole
    institute_id: UUID | None = None
    passkey_id: str | None = None
    device_id: str | None = None


class TokenVerifier:
    """Verifies bearer tokens and turns their claims into actors."""

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and validate an access token.

        Raises:
            Unauthenticated: If the token is invalid, expired or incomplete
        """
        payload = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)
        if payload is None:
            raise Unauthenticated("Invalid or expired token")

        try:
            subject_id = UUID(payload["sub"])
            role = ActorRole(payload["role"])
            institute_id = UUID(payload["institute_id"]) if payload.get("institute_id") else None
        except (KeyError, ValueError) as e:
            logger.warning(f"Rejected token with malformed claims: {e}")
            raise Unauthenticated("Invalid or expired token") from e

        return TokenClaims(
            subject_id=subject_id,
            role=role,
            institute_id=institute_id,
            passkey_id=payload.get("passkey_id"),
            device_id=payload.get("device_id"),
        )

    def to_actor(self, claims: TokenClaims) -> Actor:
        """
        Build the actor for verified claims.

        Raises:
            Unauthenticated: If an institute role carries no institute
        """
        match claims.role:
            case ActorRole.SUPER_ADMIN:
                return SuperAdmin(user_id=claims.subject_id)
            case ActorRole.PRINCIPAL | ActorRole.TEACHER:
                if claims.institute_id is None:
                    raise Unauthenticated("Token is missing institute scope")
                if claims.role is ActorRole.PRINCIPAL:
                    return InstitutePrincipal(
                        user_id=claims.subject_id, institute_id=claims.institute_id
                    )
                return Teacher(user_id=claims.subject_id, institute_id=claims.institute_id)
            case ActorRole.STUDENT:
                return Student(
                    student_id=claims.subject_id,
                    device_id=claims.device_id,
                    passkey_id=claims.passkey_id,
                )
            case _:
                assert_never(claims.role)


def issue_token(claims: TokenClaims, expires_delta: timedelta | None = None) -> str:
    """Encode claims into a signed access token."""
    data: dict[str, str] = {"sub": str(claims.subject_id), "role": claims.role.value}
    if claims.institute_id is not None:
        data["institute_id"] = str(claims.institute_id)
    if claims.passkey_id is not None:
        data["passkey_id"] = claims.passkey_id
    if claims.device_id is not None:
        data["device_id"] = claims.device_id
    return create_access_token(data, expires_delta)


def get_token_verifier() -> TokenVerifier:
    return TokenVerifier()


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> Actor:
    """
    Resolve the bearer token of the request into an Actor.

    Raises:
        Unauthenticated: If no token is sent or it fails verification
    """
    if credentials is None:
        raise Unauthenticated("Not authenticated")
    return verifier.to_actor(verifier.verify(credentials.credentials))


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
