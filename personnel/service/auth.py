from __future__ import annotations

import asyncio
import secrets
from typing import Iterable, NamedTuple, Optional, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from personnel.config import Settings
from personnel.logging import get_logger
from personnel.service.errors import (
    AuthErrorKind,
    AuthenticationError,
    ForbiddenError,
    InfrastructureError,
    InvalidCredentialsError,
    InvalidTokenError,
    TokenRevokedError,
)
from personnel.service.sessions import SessionCache, TokenType
from personnel.service.tokens import TokenCodec
from personnel.storage.errors import CacheUnavailable, DataIntegrityError, StoreUnavailable
from personnel.storage.models import CredentialRecord, Principal, Role

logger = get_logger(__name__)

BEARER_PREFIX = "bearer "


class CredentialStore(Protocol):
    def find_credential_by_email(self, email: str) -> Optional[CredentialRecord]: ...


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def build_password_hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost_kib,
        parallelism=settings.argon2_parallelism,
        type=Type.ID,
    )


class Authenticator:
    """Verifies credentials and issues a live access/refresh token pair."""

    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionCache,
        codec: TokenCodec,
        settings: Settings,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.codec = codec
        self.settings = settings
        self.logger = logger
        self._pwd_hasher = build_password_hasher(settings)
        # Verified against on unknown emails so both rejections cost the same
        self._decoy_hash = self._pwd_hasher.hash(secrets.token_urlsafe(16))

    def hash_password(self, password: str) -> str:
        return self._pwd_hasher.hash(password)

    def verify_password(self, password_hash: str, password: str) -> bool:
        try:
            return self._pwd_hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHash, VerificationError):
            self.logger.warning("password_hash_unreadable")
            return False

    async def login(self, email: str, password: str) -> TokenPair:
        """Return a fresh token pair for valid credentials.

        Unknown email and wrong password both raise InvalidCredentialsError.
        Store or cache failures raise InfrastructureError and no token is
        handed out.
        """
        normalized = normalize_email(email)
        # Store queries and argon2 block; run them in worker threads
        try:
            record = await asyncio.to_thread(self.store.find_credential_by_email, normalized)
        except (StoreUnavailable, DataIntegrityError) as exc:
            self.logger.error(
                "credential_lookup_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise InfrastructureError("credential store unavailable") from exc

        if record is None:
            await asyncio.to_thread(self.verify_password, self._decoy_hash, password)
            self.logger.warning("login_rejected", reason="unknown_email")
            raise InvalidCredentialsError()
        if not await asyncio.to_thread(self.verify_password, record.password_hash, password):
            self.logger.warning(
                "login_rejected", reason="password_mismatch", employee_id=record.id
            )
            raise InvalidCredentialsError()

        access_token = self.codec.issue(
            record.id, record.email, record.role, self.settings.access_token_ttl
        )
        refresh_token = self.codec.issue(
            record.id, record.email, record.role, self.settings.refresh_token_ttl
        )
        await self._register_pair(record, access_token, refresh_token)
        self.logger.info("login_succeeded", employee_id=record.id, role=record.role.value)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def _register_pair(
        self, record: CredentialRecord, access_token: str, refresh_token: str
    ) -> None:
        marker = str(record.id)
        access_registered = False
        try:
            await self.sessions.register(
                TokenType.ACCESS, access_token, self.settings.access_token_ttl, marker
            )
            access_registered = True
            await self.sessions.register(
                TokenType.REFRESH, refresh_token, self.settings.refresh_token_ttl, marker
            )
        except CacheUnavailable as exc:
            self.logger.error(
                "token_registration_failed",
                employee_id=record.id,
                access_registered=access_registered,
            )
            if access_registered:
                try:
                    await self.sessions.revoke(TokenType.ACCESS, access_token)
                except CacheUnavailable:
                    # entry still expires with the access TTL
                    self.logger.warning("orphan_access_entry_cleanup_failed", employee_id=record.id)
            raise InfrastructureError("session cache unavailable") from exc


class AuthorizationGate:
    """Per-request authentication, role checks and logout."""

    def __init__(self, sessions: SessionCache, codec: TokenCodec, settings: Settings) -> None:
        self.sessions = sessions
        self.codec = codec
        self.settings = settings
        self.logger = logger

    async def authenticate(self, authorization: Optional[str]) -> Principal:
        """Resolve the ``Authorization`` header to a Principal.

        Checks run in order: header present, bearer prefix, live cache entry,
        signature and expiry. A missing cache entry wins over a valid
        signature.
        """
        try:
            return await self._authenticate(authorization)
        except AuthenticationError as exc:
            self.logger.warning(
                "authentication_rejected", kind=exc.kind.value, reason=exc.message
            )
            raise

    async def _authenticate(self, authorization: Optional[str]) -> Principal:
        if not authorization:
            raise AuthenticationError(
                "authorization header missing", kind=AuthErrorKind.MISSING_AUTHORIZATION
            )
        if authorization.strip().lower() == BEARER_PREFIX.strip():
            # "Bearer " arrives without its trailing space once proxies strip it
            raise InvalidTokenError("empty bearer token")
        if not authorization.lower().startswith(BEARER_PREFIX):
            raise AuthenticationError(
                "invalid bearer token", kind=AuthErrorKind.MALFORMED_AUTHORIZATION
            )
        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            raise InvalidTokenError("empty bearer token")

        try:
            live = await self.sessions.is_live(TokenType.ACCESS, token)
        except CacheUnavailable as exc:
            self.logger.error("session_cache_unavailable", operation="authenticate")
            raise InfrastructureError("session cache unavailable") from exc
        if not live:
            raise TokenRevokedError()

        return self.codec.parse(token).principal

    def authorize(self, principal: Principal, allowed_roles: Iterable[Role]) -> None:
        allowed = frozenset(Role(role) for role in allowed_roles)
        if principal.role not in allowed:
            self.logger.warning(
                "authorization_denied",
                employee_id=principal.id,
                role=principal.role.value,
                allowed=sorted(role.value for role in allowed),
            )
            raise ForbiddenError("insufficient permissions")

    @staticmethod
    def _loose_bearer(authorization: Optional[str]) -> str:
        value = (authorization or "").strip()
        scheme, _, rest = value.partition(" ")
        if scheme.lower() == "bearer":
            return rest.strip()
        return value

    async def logout(self, authorization: Optional[str]) -> None:
        """Revoke the presented access token.

        The header is not validated: a missing or non-bearer value is used
        as-is and an empty one revokes nothing.
        """
        token = self._loose_bearer(authorization)
        if token:
            try:
                removed = await self.sessions.revoke(TokenType.ACCESS, token)
            except CacheUnavailable as exc:
                self.logger.error("session_cache_unavailable", operation="logout")
                raise InfrastructureError("session cache unavailable") from exc
            self.logger.info("access_token_revoked", removed=removed)
        else:
            self.logger.info("logout_without_token")

        if not self.settings.logout_revokes_all_refresh_tokens:
            return
        # HAZARD: clears refresh_token:* for every principal, not only the
        # caller. Disable with LOGOUT_REVOKES_ALL_REFRESH_TOKENS=false.
        try:
            cleared = await self.sessions.revoke_all(TokenType.REFRESH)
        except CacheUnavailable as exc:
            self.logger.warning("refresh_token_sweep_failed", error=str(exc))
            return
        self.logger.warning("refresh_tokens_revoked_globally", count=cleared)


__all__ = [
    "Authenticator",
    "AuthorizationGate",
    "CredentialStore",
    "TokenPair",
    "build_password_hasher",
    "normalize_email",
]
