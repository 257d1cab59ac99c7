"""
Fixtures for HTTP-level tests.

Requests go through the real application with ASGITransport. Each request
gets its own session on the per-test SQLite database and commits on
success, so test data has to be committed before a request can see it.
"""

from collections.abc import AsyncGenerator, Callable
from uuid import UUID

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.core.auth import InstitutePrincipal, TokenClaims, issue_token
from coursegate.core.database import get_db
from coursegate.core.providers import get_notifier, get_payment_gateway
from coursegate.main import create_app
from coursegate.models.enums import ActorRole


@pytest.fixture
def app(session_factory, gateway, notifier) -> FastAPI:
    app = create_app()

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers() -> Callable[..., dict[str, str]]:
    """Authorization headers for a principal or teacher."""

    def _headers(user_id: UUID, institute_id: UUID, role: ActorRole = ActorRole.PRINCIPAL):
        token = issue_token(TokenClaims(subject_id=user_id, role=role, institute_id=institute_id))
        return bearer(token)

    return _headers


@pytest.fixture
def principal_headers(staff_headers, principal: InstitutePrincipal) -> dict[str, str]:
    return staff_headers(principal.user_id, principal.institute_id)


@pytest_asyncio.fixture
async def stored_course(db_session, course):
    """Default course, committed so requests can see it."""
    await db_session.commit()
    return course


@pytest_asyncio.fixture
async def stored_passkeys(client, principal_headers, stored_course) -> list[str]:
    """Two PENDING passkey codes generated over HTTP."""
    response = await client.post(
        "/api/passkeys/generate",
        json={"course_id": str(stored_course.id), "count": 2},
        headers=principal_headers,
    )
    assert response.status_code == 201
    return [p["passkey_id"] for p in response.json()["passkeys"]]


@pytest_asyncio.fixture
async def student_login(client, stored_passkeys) -> dict:
    """Claim the first passkey from device-A; returns the claim response body."""
    response = await client.post(
        "/api/students/claim",
        json={
            "passkey_id": stored_passkeys[0],
            "device_id": "device-A",
            "name": "Asha",
            "phone_number": "9876543210",
        },
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def student_headers(student_login) -> dict[str, str]:
    return bearer(student_login["access_token"])
