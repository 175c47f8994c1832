"""Authentication broker.

Two unrelated credentials meet here:

- Senders log in with email and password and receive a database-backed
  bearer session (only its SHA-256 hash is stored).
- Recipients prove possession of their TOTP device for one transfer URL and
  receive a short-lived auth token bound to exactly that URL. Failed codes
  drive the LockoutGuard for the URL.

TOTP verification order for a urlToken:

    fetch transfer -> not found / expired / budget exhausted
    -> locked (code not even checked)
    -> resolve recipient by email -> decrypt secret -> check code (+/-1 step)
    -> success: issue auth token, audit auth_success
    -> failure: count failure, audit auth_fail (+ lock when threshold reached)
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, NoReturn

from zerosend.core.errors import (
    AuthFailedError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InternalError,
    LockedError,
    UnauthorizedError,
)
from zerosend.core.hashing import (
    compare_digests,
    generate_token,
    hash_email,
    hash_password,
    hash_token,
    hash_user_agent,
    public_key_fingerprint,
    verify_password,
)
from zerosend.core.net import parse_ip
from zerosend.db.models import (
    AuditEventType,
    AuditResult,
    KeyType,
    SenderSession,
    User,
    UserPublicKey,
    UserRole,
)
from zerosend.services import totp
from zerosend.services.availability import ensure_finalized, ensure_transfer_available
from zerosend.services.secret_cache import CacheKeys

if TYPE_CHECKING:
    from zerosend.db.models import TransferSession
    from zerosend.services.audit import AuditRecorder
    from zerosend.services.lockout import LockoutGuard
    from zerosend.services.secret_cache import SecretCache
    from zerosend.services.store import TransferStore
    from zerosend.services.totp import TotpSecretCipher

logger = logging.getLogger(__name__)

TWO_FACTOR_TYPE = "totp"


def utc_now() -> datetime:
    return datetime.now(UTC)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Sender session issued by a successful password login.

    Attributes:
        token: Bearer token (returned once, never stored in clear).
        expires_at: Session expiry.
        expires_in: Session lifetime in seconds.
        user_id: Authenticated user.
        role: User role.
        display_name: Name shown in the client.
    """

    token: str
    expires_at: datetime
    expires_in: int
    user_id: uuid.UUID
    role: UserRole
    display_name: str


@dataclass(frozen=True, slots=True)
class SenderPrincipal:
    """Authenticated sender resolved from a bearer token."""

    user_id: uuid.UUID
    role: UserRole
    display_name: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    def require_admin(self) -> SenderPrincipal:
        """Return self if admin.

        Raises:
            ForbiddenError: If the principal is not an administrator.
        """
        if not self.is_admin:
            raise ForbiddenError("Administrator role required")
        return self


@dataclass(frozen=True, slots=True)
class AuthGrant:
    """Recipient auth token bound to one transfer URL."""

    auth_token: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class AuthSessionBinding:
    """Cached value behind an auth token."""

    user_id: uuid.UUID
    url_token: str

    def to_bytes(self) -> bytes:
        return json.dumps({"user_id": str(self.user_id), "url_token": self.url_token}).encode(
            "utf-8"
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> AuthSessionBinding:
        """Parse a cached binding.

        Raises:
            ValueError: If the payload is not a valid binding.
        """
        payload = json.loads(raw)
        return cls(user_id=uuid.UUID(payload["user_id"]), url_token=str(payload["url_token"]))


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    """Outcome of account registration.

    Attributes:
        user_id: New user id.
        key_fingerprint: SHA3-256 fingerprint of the registered public key.
        totp_provisioning_uri: otpauth:// URI to enrol an authenticator app.
            Returned exactly once.
    """

    user_id: uuid.UUID
    key_fingerprint: str
    totp_provisioning_uri: str


# -----------------------------------------------------------------------------
# Broker
# -----------------------------------------------------------------------------


class AuthBroker:
    """Verifies passwords and TOTP codes and issues bearer tokens."""

    def __init__(
        self,
        store: TransferStore,
        cache: SecretCache,
        lockout: LockoutGuard,
        audit: AuditRecorder,
        cipher: TotpSecretCipher,
        *,
        auth_session_ttl_seconds: int = 600,
        sender_session_hours: int = 8,
        totp_issuer: str = "ZeroSend",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the broker.

        Args:
            store: Durable store.
            cache: Secret cache for recipient auth sessions.
            lockout: Per-URL TOTP failure guard.
            audit: Best-effort audit recorder.
            cipher: Cipher for stored TOTP secrets.
            auth_session_ttl_seconds: Lifetime of recipient auth tokens.
            sender_session_hours: Lifetime of sender login sessions.
            totp_issuer: Issuer label for provisioning URIs.
            clock: Source of the current UTC time.
        """
        self._store = store
        self._cache = cache
        self._lockout = lockout
        self._audit = audit
        self._cipher = cipher
        self._auth_session_ttl_seconds = auth_session_ttl_seconds
        self._sender_session_duration = timedelta(hours=sender_session_hours)
        self._totp_issuer = totp_issuer
        self._clock = clock

    # -------------------------------------------------------------------------
    # Sender credentials
    # -------------------------------------------------------------------------

    async def register(
        self,
        email: str,
        display_name: str,
        password: str,
        public_key_b64: str,
        key_type: KeyType = KeyType.KYBER768,
    ) -> RegistrationResult:
        """Create an account with its primary public key and a TOTP secret.

        Raises:
            BadRequestError: If the public key is not valid base64.
            ConflictError: If the email is already registered.
        """
        email = email.strip()
        email_hash = hash_email(email)
        try:
            fingerprint = public_key_fingerprint(public_key_b64)
        except ValueError as e:
            raise BadRequestError(str(e)) from e

        if await self._store.find_user_by_email_hash(email_hash) is not None:
            raise ConflictError("Email already registered")

        secret = totp.generate_secret()
        user = User(
            id=uuid.uuid4(),
            email=email,
            email_hash=email_hash,
            display_name=display_name,
            role=UserRole.USER,
            password_hash=await asyncio.to_thread(hash_password, password),
            totp_secret_enc=self._cipher.encrypt(secret),
            is_active=True,
        )
        key = UserPublicKey(
            id=uuid.uuid4(),
            user_id=user.id,
            key_type=key_type,
            public_key_b64=public_key_b64,
            fingerprint=fingerprint,
            is_primary=True,
            is_revoked=False,
        )
        user, key = await self._store.create_user_with_key(user, key)

        logger.info("Registered user %s", user.id, extra={"key_fingerprint": fingerprint[:16]})
        return RegistrationResult(
            user_id=user.id,
            key_fingerprint=fingerprint,
            totp_provisioning_uri=totp.provisioning_uri(secret, email, self._totp_issuer),
        )

    async def login(
        self,
        email: str,
        password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Verify a password and open a sender session.

        Unknown accounts still pay for a full argon2 verification so their
        rejection takes as long as a wrong password.

        Raises:
            UnauthorizedError: On any credential failure (no detail given).
        """
        user = await self._store.find_user_by_email_hash(hash_email(email))
        password_ok = await asyncio.to_thread(
            verify_password, user.password_hash if user else None, password
        )

        if user is None or not user.is_active or not password_ok:
            await self._audit.record(
                AuditEventType.AUTH_FAIL,
                AuditResult.FAILURE,
                actor_id=user.id if user else None,
                ip_address=ip_address,
                user_agent=user_agent,
                error_code="unauthorized",
                metadata={"method": "password"},
            )
            raise UnauthorizedError("Invalid email or password")

        now = self._clock()
        token = generate_token()
        expires_at = now + self._sender_session_duration
        await self._store.create_sender_session(
            SenderSession(
                id=uuid.uuid4(),
                token_hash=hash_token(token),
                user_id=user.id,
                is_active=True,
                expires_at=expires_at,
                ip_address=parse_ip(ip_address),
                user_agent_hash=hash_user_agent(user_agent),
            )
        )
        await self._store.touch_last_login(user.id, now)
        await self._audit.record(
            AuditEventType.AUTH_SUCCESS,
            AuditResult.SUCCESS,
            actor_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"method": "password"},
        )

        return LoginResult(
            token=token,
            expires_at=expires_at,
            expires_in=int(self._sender_session_duration.total_seconds()),
            user_id=user.id,
            role=user.role,
            display_name=user.display_name,
        )

    async def authenticate_sender(self, token: str) -> SenderPrincipal:
        """Resolve a sender bearer token.

        Raises:
            UnauthorizedError: If the token is unknown, revoked or expired,
                or the account is inactive.
        """
        token_hash = hash_token(token)
        sender_session = await self._store.find_sender_session(token_hash)
        if sender_session is None or not compare_digests(sender_session.token_hash, token_hash):
            raise UnauthorizedError("Invalid or expired session")
        if not sender_session.is_active or sender_session.expires_at <= self._clock():
            raise UnauthorizedError("Invalid or expired session")

        user = await self._store.find_user_by_id(sender_session.user_id)
        if user is None or not user.is_active:
            raise UnauthorizedError("Invalid or expired session")

        return SenderPrincipal(
            user_id=user.id,
            role=user.role,
            display_name=user.display_name,
            email=user.email,
        )

    async def logout(self, token: str) -> bool:
        """Revoke a sender session. Returns False if it was not active."""
        return await self._store.revoke_sender_session(hash_token(token), self._clock())

    # -------------------------------------------------------------------------
    # Recipient second factor
    # -------------------------------------------------------------------------

    async def verify_totp(
        self,
        url_token: str,
        email: str,
        code: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthGrant:
        """Check a recipient's TOTP code for one transfer URL.

        Args:
            url_token: Transfer URL token.
            email: Recipient email address.
            code: Six-digit TOTP code.
            ip_address: Client address for the audit trail.
            user_agent: Client User-Agent for the audit trail.

        Returns:
            AuthGrant with an auth token bound to ``url_token``.

        Raises:
            NotFoundError: Unknown, deleted or not yet finalized transfer.
            GoneError: Expired transfer or exhausted budget.
            LockedError: Too many failures; the code is not checked.
            AuthFailedError: Wrong code or wrong recipient (counts as failure).
            BadRequestError: Recipient has no TOTP secret configured.
            InternalError: Stored TOTP secret cannot be decrypted.
        """
        now = self._clock()
        transfer = ensure_transfer_available(await self._store.get_session_by_token(url_token), now)

        if await self._lockout.is_locked(url_token):
            await self._audit.record(
                AuditEventType.LOCK,
                AuditResult.FAILURE,
                session_id=transfer.id,
                ip_address=ip_address,
                user_agent=user_agent,
                error_code="locked",
                metadata={"reason": "already_locked"},
            )
            raise LockedError("Too many failed attempts. This transfer is locked.")

        ensure_finalized(transfer)

        user = await self._store.find_user_by_email_hash(hash_email(email))
        if user is None or not user.is_active or user.email_hash != transfer.recipient_email_hash:
            await self._register_failure(
                transfer, None, ip_address=ip_address, user_agent=user_agent, reason="recipient"
            )

        if not user.totp_secret_enc:
            raise BadRequestError("Second factor is not configured for this account")

        try:
            secret = self._cipher.decrypt(user.totp_secret_enc)
        except totp.TotpSecretError as e:
            logger.error("Stored TOTP secret unusable for user %s", user.id)
            raise InternalError("Second factor configuration error") from e

        if not totp.verify_code(secret, code, at=now):
            await self._register_failure(
                transfer, user.id, ip_address=ip_address, user_agent=user_agent, reason="code"
            )

        auth_token = generate_token()
        binding = AuthSessionBinding(user_id=user.id, url_token=url_token)
        await self._cache.set_with_ttl(
            CacheKeys.auth_session(auth_token),
            binding.to_bytes(),
            self._auth_session_ttl_seconds,
        )
        await self._audit.record(
            AuditEventType.AUTH_SUCCESS,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            actor_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"method": TWO_FACTOR_TYPE},
        )
        return AuthGrant(auth_token=auth_token, expires_in=self._auth_session_ttl_seconds)

    async def _register_failure(
        self,
        transfer: TransferSession,
        actor_id: uuid.UUID | None,
        *,
        ip_address: str | None,
        user_agent: str | None,
        reason: str,
    ) -> NoReturn:
        """Count a failed attempt, audit it, and raise AuthFailedError."""
        state = await self._lockout.register_failure(transfer.url_token)
        await self._audit.record(
            AuditEventType.AUTH_FAIL,
            AuditResult.FAILURE,
            session_id=transfer.id,
            actor_id=actor_id,
            ip_address=ip_address,
            user_agent=user_agent,
            error_code="auth-failed",
            metadata={"method": TWO_FACTOR_TYPE, "reason": reason, "failures": state.failures},
        )
        if state.just_locked:
            await self._audit.record(
                AuditEventType.LOCK,
                AuditResult.SUCCESS,
                session_id=transfer.id,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"failures": state.failures, "threshold": self._lockout.threshold},
            )
        raise AuthFailedError(
            "Invalid one-time code",
            remaining_attempts=state.remaining_attempts,
        )

    async def require_binding(self, auth_token: str | None, url_token: str) -> AuthSessionBinding:
        """Resolve an auth token and check it was minted for ``url_token``.

        Raises:
            UnauthorizedError: Missing, expired, malformed or mis-bound token.
        """
        if not auth_token:
            raise UnauthorizedError("Authentication required")
        raw = await self._cache.get(CacheKeys.auth_session(auth_token))
        if raw is None:
            raise UnauthorizedError("Authentication session expired or invalid")
        try:
            binding = AuthSessionBinding.from_bytes(raw)
        except (ValueError, KeyError, TypeError) as e:
            raise UnauthorizedError("Authentication session expired or invalid") from e
        if binding.url_token != url_token:
            raise UnauthorizedError("Token is not valid for this transfer")
        return binding
