"""
Unit tests for the Student Identity Binder.
"""

import pytest

from coursegate.core.auth import TokenVerifier
from coursegate.core.errors import ConflictError, NotFoundError, Unauthenticated, ValidationError
from coursegate.models.enums import PasskeyStatus


# =============================================================================
# Test: device registration
# =============================================================================


@pytest.mark.unit
class TestRegisterDevice:
    """Tests for get-or-create of the student behind a device."""

    @pytest.mark.asyncio
    async def test_creates_student(self, binder):
        student = await binder.register_device("device-A", name="Asha", email="asha@example.com")

        assert student.device_id == "device-A"
        assert student.name == "Asha"
        assert student.email == "asha@example.com"
        assert student.phone_number is None

    @pytest.mark.asyncio
    async def test_same_device_same_student(self, binder):
        first = await binder.register_device("device-A")
        second = await binder.register_device(" device-A ")

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_fills_only_missing_fields(self, binder):
        await binder.register_device("device-A", name="Asha")

        student = await binder.register_device("device-A", name="Someone Else", phone_number="9876543210")

        assert student.name == "Asha"
        assert student.phone_number == "9876543210"

    @pytest.mark.asyncio
    async def test_device_required(self, binder):
        with pytest.raises(ValidationError):
            await binder.register_device("   ")


# =============================================================================
# Test: owned passkeys
# =============================================================================


@pytest.mark.unit
class TestOwnedPasskeys:
    """Tests for claiming, listing and switching owned passkeys."""

    @pytest.mark.asyncio
    async def test_claim_makes_passkey_active(self, binder, claimed):
        assert claimed.entry.is_active is True
        assert claimed.entry.passkey_id == claimed.passkey.passkey_id
        assert claimed.entry.student_id == claimed.student.id
        assert claimed.student.phone_number == "9876543210"

    @pytest.mark.asyncio
    async def test_reclaim_keeps_one_entry(self, binder, claimed):
        again = await binder.claim_passkey(claimed.passkey.passkey_id.lower(), "device-A")

        owned = await binder.list_owned(claimed.student.id)
        assert [e.passkey_id for e in owned] == [claimed.passkey.passkey_id]
        assert again.entry.id == claimed.entry.id

    @pytest.mark.asyncio
    async def test_switch_leaves_exactly_one_active(self, binder, registry, principal, course, claimed):
        [second] = await registry.generate(principal, course.id, 1)
        await binder.claim_passkey(second.passkey_id, "device-A")

        owned = await binder.list_owned(claimed.student.id)
        assert [e.is_active for e in owned] == [False, True]

        entry = await binder.switch_active_passkey(claimed.student.id, claimed.passkey.passkey_id)

        assert entry.passkey_id == claimed.passkey.passkey_id
        owned = await binder.list_owned(claimed.student.id)
        assert [e.passkey_id for e in owned if e.is_active] == [claimed.passkey.passkey_id]
        active = await binder.get_active_passkey(claimed.student.id)
        assert active.passkey_id == claimed.passkey.passkey_id

    @pytest.mark.asyncio
    async def test_switch_to_unowned_passkey(self, binder, registry, principal, course, claimed):
        [other] = await registry.generate(principal, course.id, 1)

        with pytest.raises(NotFoundError):
            await binder.switch_active_passkey(claimed.student.id, other.passkey_id)

        active = await binder.get_active_passkey(claimed.student.id)
        assert active.passkey_id == claimed.passkey.passkey_id

    @pytest.mark.asyncio
    async def test_claim_from_second_device_fails(self, binder, claimed):
        with pytest.raises(ConflictError):
            await binder.claim_passkey(claimed.passkey.passkey_id, "device-B")

    @pytest.mark.asyncio
    async def test_sync_entry_copies_window(self, binder, pay, student_actor):
        paid = await pay(student_actor)

        entry = await binder.sync_entry(paid.passkey)

        assert entry.activated_at == paid.passkey.activated_at
        assert entry.expires_at == paid.passkey.expires_at

    @pytest.mark.asyncio
    async def test_sync_entry_unclaimed(self, binder, passkey):
        assert await binder.sync_entry(passkey) is None


# =============================================================================
# Test: login
# =============================================================================


@pytest.mark.unit
class TestLogin:
    """Tests for passkey login from a device."""

    @pytest.mark.asyncio
    async def test_login_issues_student_token(self, binder, registry, claimed):
        result = await binder.login(claimed.passkey.passkey_id, "device-A")

        verifier = TokenVerifier()
        actor = verifier.to_actor(verifier.verify(result.access_token))
        assert actor.student_id == claimed.student.id
        assert actor.device_id == "device-A"
        assert actor.passkey_id == claimed.passkey.passkey_id
        stored = await registry.passkeys.get_by_code(claimed.passkey.passkey_id, fresh=True)
        assert stored.access_count == 1

    @pytest.mark.asyncio
    async def test_login_switches_active_passkey(self, binder, registry, principal, course, claimed):
        [second] = await registry.generate(principal, course.id, 1)
        await binder.claim_passkey(second.passkey_id, "device-A")

        await binder.login(claimed.passkey.passkey_id, "device-A")

        active = await binder.get_active_passkey(claimed.student.id)
        assert active.passkey_id == claimed.passkey.passkey_id

    @pytest.mark.asyncio
    async def test_unknown_device(self, binder, claimed):
        with pytest.raises(Unauthenticated):
            await binder.login(claimed.passkey.passkey_id, "device-B")

    @pytest.mark.asyncio
    async def test_passkey_owned_by_someone_else(self, binder, registry, principal, course, claimed):
        [other] = await registry.generate(principal, course.id, 1)
        await binder.claim_passkey(other.passkey_id, "device-B")

        with pytest.raises(Unauthenticated):
            await binder.login(other.passkey_id, "device-A")

    @pytest.mark.asyncio
    async def test_revoked_passkey(self, binder, registry, principal, claimed):
        await registry.revoke(principal, claimed.passkey.passkey_id)

        with pytest.raises(ConflictError) as exc_info:
            await binder.login(claimed.passkey.passkey_id, "device-A")
        assert exc_info.value.current_state == PasskeyStatus.REVOKED.value

    @pytest.mark.asyncio
    async def test_malformed_code(self, binder, claimed):
        with pytest.raises(ValidationError):
            await binder.login("nope", "device-A")
