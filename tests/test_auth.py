"""Tests for the authentication broker.

Tests cover:
- Registration (key fingerprint, encrypted TOTP secret, duplicates)
- Password login, sender sessions and logout
- Recipient TOTP verification and failure accounting
- Auth-token binding to a transfer URL
"""

from __future__ import annotations

import base64
import hashlib
from datetime import timedelta

import pyotp
import pytest

from tests.conftest import PASSWORD, random_public_key_b64
from zerosend.core.errors import (
    AuthFailedError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    GoneError,
    InternalError,
    LockedError,
    NotFoundError,
    UnauthorizedError,
)
from zerosend.core.hashing import hash_email, hash_token
from zerosend.db.models import AuditEventType, AuditResult, UserRole
from zerosend.services.auth import AuthSessionBinding
from zerosend.services.secret_cache import CacheKeys


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    """Tests for AuthBroker.register."""

    @pytest.mark.asyncio
    async def test_register_stores_user_and_key(self, services, store):
        public_key = random_public_key_b64()

        result = await services.auth.register(
            email="Carol@Example.COM ",
            display_name="Carol",
            password=PASSWORD,
            public_key_b64=public_key,
        )

        user = store.users[result.user_id]
        key = next(k for k in store.keys.values() if k.user_id == user.id)
        assert user.email_hash == hash_email("carol@example.com")
        assert user.role is UserRole.USER
        assert user.password_hash != PASSWORD
        assert key.is_primary
        assert key.fingerprint == hashlib.sha3_256(base64.b64decode(public_key)).hexdigest()
        assert result.key_fingerprint == key.fingerprint

    @pytest.mark.asyncio
    async def test_totp_secret_encrypted_at_rest(self, services, store):
        result = await services.auth.register(
            email="carol@example.com",
            display_name="Carol",
            password=PASSWORD,
            public_key_b64=random_public_key_b64(),
        )

        secret = pyotp.parse_uri(result.totp_provisioning_uri).secret
        stored = store.users[result.user_id].totp_secret_enc
        assert secret not in stored
        assert len(stored.split(":")) == 3

    @pytest.mark.asyncio
    async def test_provisioning_uri_uses_issuer(self, services):
        result = await services.auth.register(
            email="carol@example.com",
            display_name="Carol",
            password=PASSWORD,
            public_key_b64=random_public_key_b64(),
        )

        parsed = pyotp.parse_uri(result.totp_provisioning_uri)
        assert parsed.issuer == "ZeroSend"
        assert parsed.name == "carol@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email_is_conflict(self, services, bob):
        with pytest.raises(ConflictError):
            await services.auth.register(
                email="BOB@example.com",
                display_name="Bob again",
                password=PASSWORD,
                public_key_b64=random_public_key_b64(),
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("public_key", ["", "***not base64***"])
    async def test_invalid_public_key(self, services, public_key):
        with pytest.raises(BadRequestError):
            await services.auth.register(
                email="carol@example.com",
                display_name="Carol",
                password=PASSWORD,
                public_key_b64=public_key,
            )


# ---------------------------------------------------------------------------
# Sender sessions
# ---------------------------------------------------------------------------


class TestSenderLogin:
    """Tests for login, authenticate_sender and logout."""

    @pytest.mark.asyncio
    async def test_login_issues_session(self, services, store, clock, alice):
        result = await services.auth.login(alice.email, PASSWORD, ip_address="198.51.100.7")

        sender_session = store.sender_sessions[hash_token(result.token)]
        assert sender_session.user_id == alice.user_id
        assert sender_session.ip_address == "198.51.100.7"
        assert result.expires_at == clock() + timedelta(hours=8)
        assert result.expires_in == 8 * 3600
        assert result.display_name == "Alice"
        assert store.users[alice.user_id].last_login_at == clock()

    @pytest.mark.asyncio
    async def test_login_with_unparsable_ip(self, services, store, alice):
        result = await services.auth.login(alice.email, PASSWORD, ip_address="not-an-ip")

        assert store.sender_sessions[hash_token(result.token)].ip_address is None
        assert store.audit_entries[-1].ip_address is None

    @pytest.mark.asyncio
    async def test_token_is_not_stored_in_clear(self, services, store, alice):
        result = await services.auth.login(alice.email, PASSWORD)

        assert result.token not in store.sender_sessions

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("email", "password"),
        [
            ("alice@example.com", "wrong password entirely"),
            ("nobody@example.com", PASSWORD),
        ],
    )
    async def test_bad_credentials(self, services, store, alice, email, password):
        with pytest.raises(UnauthorizedError) as exc_info:
            await services.auth.login(email, password)

        assert exc_info.value.message == "Invalid email or password"
        entry = store.audit_entries[-1]
        assert entry.event_type is AuditEventType.AUTH_FAIL
        assert entry.result is AuditResult.FAILURE

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_login(self, services, store, alice):
        store.users[alice.user_id].is_active = False

        with pytest.raises(UnauthorizedError):
            await services.auth.login(alice.email, PASSWORD)

    @pytest.mark.asyncio
    async def test_authenticate_sender(self, services, alice):
        result = await services.auth.login(alice.email, PASSWORD)

        principal = await services.auth.authenticate_sender(result.token)

        assert principal.user_id == alice.user_id
        assert principal.email == alice.email
        assert not principal.is_admin

    @pytest.mark.asyncio
    async def test_expired_session(self, services, clock, alice):
        result = await services.auth.login(alice.email, PASSWORD)
        clock.advance(hours=8)

        with pytest.raises(UnauthorizedError):
            await services.auth.authenticate_sender(result.token)

    @pytest.mark.asyncio
    async def test_deactivated_user_session_stops_resolving(self, services, store, alice):
        result = await services.auth.login(alice.email, PASSWORD)
        store.users[alice.user_id].is_active = False

        with pytest.raises(UnauthorizedError):
            await services.auth.authenticate_sender(result.token)

    @pytest.mark.asyncio
    async def test_logout_revokes(self, services, alice):
        result = await services.auth.login(alice.email, PASSWORD)

        assert await services.auth.logout(result.token) is True
        assert await services.auth.logout(result.token) is False
        with pytest.raises(UnauthorizedError):
            await services.auth.authenticate_sender(result.token)

    @pytest.mark.asyncio
    async def test_unknown_token(self, services):
        with pytest.raises(UnauthorizedError):
            await services.auth.authenticate_sender("not-a-session")

    @pytest.mark.asyncio
    async def test_require_admin(self, alice, admin):
        principal = admin.principal
        assert principal.require_admin() is principal
        assert admin.principal.require_admin() == admin.principal
        with pytest.raises(ForbiddenError):
            alice.principal.require_admin()


# ---------------------------------------------------------------------------
# Recipient TOTP
# ---------------------------------------------------------------------------


class TestVerifyTotp:
    """Tests for AuthBroker.verify_totp."""

    @pytest.mark.asyncio
    async def test_success_binds_token_to_url(self, world, services, cache, settings, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)

        grant = await services.auth.verify_totp(initiated.url_token, bob.email, world.code(bob))

        raw = await cache.get(CacheKeys.auth_session(grant.auth_token))
        binding = AuthSessionBinding.from_bytes(raw)
        assert binding == AuthSessionBinding(user_id=bob.user_id, url_token=initiated.url_token)
        assert grant.expires_in == settings.security.auth_session_ttl_seconds
        assert await cache.ttl(CacheKeys.auth_session(grant.auth_token)) == grant.expires_in

    @pytest.mark.asyncio
    async def test_adjacent_time_step_accepted(self, world, services, clock, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        code = world.code(bob)
        clock.advance(seconds=30)

        grant = await services.auth.verify_totp(initiated.url_token, bob.email, code)

        assert grant.auth_token

    @pytest.mark.asyncio
    async def test_stale_code_rejected(self, world, services, clock, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        code = world.code(bob)
        clock.advance(minutes=5)

        with pytest.raises(AuthFailedError):
            await services.auth.verify_totp(initiated.url_token, bob.email, code)

    @pytest.mark.asyncio
    async def test_wrong_code_counts_failure(self, world, services, store, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)

        with pytest.raises(AuthFailedError) as exc_info:
            await services.auth.verify_totp(initiated.url_token, bob.email, world.wrong_code(bob))

        assert exc_info.value.remaining_attempts == 4
        assert await services.lockout.failures(initiated.url_token) == 1
        entry = store.audit_entries[-1]
        assert entry.event_type is AuditEventType.AUTH_FAIL
        assert entry.event_metadata["reason"] == "code"

    @pytest.mark.asyncio
    async def test_wrong_recipient_counts_failure(self, world, services, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)

        # Alice holds a valid code for her own secret but is not the recipient.
        with pytest.raises(AuthFailedError):
            await services.auth.verify_totp(initiated.url_token, alice.email, world.code(alice))

        assert await services.lockout.failures(initiated.url_token) == 1

    @pytest.mark.asyncio
    async def test_unknown_email_counts_failure(self, world, services, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)

        with pytest.raises(AuthFailedError):
            await services.auth.verify_totp(initiated.url_token, "mallory@example.com", "123456")

        assert await services.lockout.failures(initiated.url_token) == 1

    @pytest.mark.asyncio
    async def test_threshold_failure_audits_lock(self, world, services, store, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)

        for _ in range(5):
            with pytest.raises(AuthFailedError):
                await services.auth.verify_totp(
                    initiated.url_token, bob.email, world.wrong_code(bob)
                )

        assert store.events(initiated.session_id)[-2:] == ["auth_fail", "lock"]

    @pytest.mark.asyncio
    async def test_unknown_url(self, services, bob):
        with pytest.raises(NotFoundError):
            await services.auth.verify_totp("missing", bob.email, "123456")

    @pytest.mark.asyncio
    async def test_not_finalized_url(self, world, services, alice, bob):
        initiated = await world.initiate(alice, bob)

        with pytest.raises(NotFoundError):
            await services.auth.verify_totp(initiated.url_token, bob.email, world.code(bob))

    @pytest.mark.asyncio
    async def test_expired_url(self, world, services, clock, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob, ttl_hours=1)
        clock.advance(hours=1)

        with pytest.raises(GoneError):
            await services.auth.verify_totp(initiated.url_token, bob.email, world.code(bob))

    @pytest.mark.asyncio
    async def test_locked_url_skips_code_check(self, world, services, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        for _ in range(5):
            await services.lockout.register_failure(initiated.url_token)

        with pytest.raises(LockedError):
            await services.auth.verify_totp(initiated.url_token, bob.email, world.code(bob))

    @pytest.mark.asyncio
    async def test_missing_secret(self, world, services, store, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        store.users[bob.user_id].totp_secret_enc = None

        with pytest.raises(BadRequestError):
            await services.auth.verify_totp(initiated.url_token, bob.email, "123456")

    @pytest.mark.asyncio
    async def test_corrupt_secret_is_internal(self, world, services, store, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        store.users[bob.user_id].totp_secret_enc = "00:11:22"

        with pytest.raises(InternalError):
            await services.auth.verify_totp(initiated.url_token, bob.email, "123456")


class TestRequireBinding:
    """Tests for AuthBroker.require_binding."""

    @pytest.mark.asyncio
    async def test_matching_binding(self, world, services, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        token = await world.authenticate(initiated.url_token, bob)

        binding = await services.auth.require_binding(token, initiated.url_token)

        assert binding.user_id == bob.user_id

    @pytest.mark.asyncio
    async def test_malformed_cached_value(self, services, cache):
        await cache.set_with_ttl(CacheKeys.auth_session("tok"), b"{not json", 60)

        with pytest.raises(UnauthorizedError):
            await services.auth.require_binding("tok", "url")

    @pytest.mark.asyncio
    async def test_mismatched_url(self, world, services, alice, bob):
        initiated, _ = await world.ready_transfer(alice, bob)
        token = await world.authenticate(initiated.url_token, bob)

        with pytest.raises(UnauthorizedError, match="not valid for this transfer"):
            await services.auth.require_binding(token, "another-url-token")
