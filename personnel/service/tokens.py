"""HS256 JWT issuance and verification.

Tokens are ``header.payload.signature`` with base64url segments (no padding).
The payload carries ``id``, ``email``, ``role``, ``token_id``, ``iat`` and
``exp``; times are integer epoch seconds.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict

from personnel.logging import get_logger
from personnel.service.errors import InvalidTokenError
from personnel.storage.errors import DataIntegrityError
from personnel.storage.models import Principal, Role

logger = get_logger(__name__)

# 16 random bytes, hex encoded
TOKEN_ID_BYTES = 16

_HEADER = {"alg": "HS256", "typ": "JWT"}


@dataclass(frozen=True)
class Claims:
    principal_id: int
    email: str
    role: Role
    token_id: str
    issued_at: int
    expires_at: int

    @property
    def principal(self) -> Principal:
        return Principal(
            id=self.principal_id,
            email=self.email,
            role=self.role,
            token_id=self.token_id,
        )


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class TokenCodec:
    """Builds and verifies signed tokens with a shared secret."""

    def __init__(self, secret: str, *, clock: Callable[[], float] = time.time) -> None:
        if not secret:
            raise ValueError("token signing secret must be non-empty")
        self._key = secret.encode("utf-8")
        self._clock = clock

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._key, signing_input.encode("ascii"), hashlib.sha256).digest()
        return _encode_segment(digest)

    def issue(self, principal_id: int, email: str, role: Role, ttl: timedelta) -> str:
        """Return a freshly signed token with a new random token id."""
        now = int(self._clock())
        payload = {
            "id": principal_id,
            "email": email,
            "role": Role(role).value,
            "token_id": secrets.token_hex(TOKEN_ID_BYTES),
            "iat": now,
            "exp": now + int(ttl.total_seconds()),
        }
        header_enc = _encode_segment(json.dumps(_HEADER, separators=(",", ":")).encode())
        payload_enc = _encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def parse(self, token: str) -> Claims:
        """Verify signature and expiry and return the embedded claims.

        Raises InvalidTokenError for anything that is not a well-formed,
        correctly signed, unexpired token. Cache liveness is not checked here.
        """
        parts = token.split(".") if token else []
        if len(parts) != 3:
            raise InvalidTokenError("malformed token")
        header_b64, payload_b64, sig_b64 = parts

        # Pin the algorithm before looking at the signature
        try:
            header = json.loads(_decode_segment(header_b64))
        except (ValueError, UnicodeDecodeError):
            raise InvalidTokenError("undecodable token header") from None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning(
                "jwt_invalid_algorithm",
                alg=header.get("alg") if isinstance(header, dict) else None,
            )
            raise InvalidTokenError("unsupported token algorithm")

        try:
            expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        except UnicodeEncodeError:
            raise InvalidTokenError("malformed token") from None
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode("utf-8", "replace")):
            raise InvalidTokenError("bad token signature")

        try:
            payload = json.loads(_decode_segment(payload_b64))
        except (ValueError, UnicodeDecodeError):
            raise InvalidTokenError("undecodable token payload") from None
        claims = self._claims_from_payload(payload)
        if claims.expires_at <= self._clock():
            raise InvalidTokenError("token expired")
        return claims

    @staticmethod
    def _claims_from_payload(payload: Any) -> Claims:
        if not isinstance(payload, dict):
            raise InvalidTokenError("token payload is not an object")
        principal_id = payload.get("id")
        email = payload.get("email")
        token_id = payload.get("token_id")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not (
            _is_int(principal_id)
            and isinstance(email, str)
            and isinstance(token_id, str)
            and token_id
            and _is_int(issued_at)
            and _is_int(expires_at)
        ):
            raise InvalidTokenError("token payload has missing or mistyped claims")
        try:
            role = Role.parse(payload.get("role"))
        except DataIntegrityError:
            raise InvalidTokenError("token carries an unknown role") from None
        return Claims(
            principal_id=principal_id,
            email=email,
            role=role,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


__all__ = ["Claims", "TokenCodec", "TOKEN_ID_BYTES"]
