"""
Security Utilities
==================

Access-token providers. Exactly one provider is active per process,
chosen from ``AUTH_PROVIDER`` when first requested:

- ``alpha``: RS512 tokens signed with a local RSA key pair
- ``local``: HS256 tokens signed with ``SECRET_KEY``

Both issue the same claim set: ``sub`` (user id), ``aco`` (organization
id), ``id`` (token id), ``iat`` and ``exp``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Protocol

from jose import jwt, JWTError
from pydantic import BaseModel

from bulk_export.core.config import settings
from bulk_export.core.exceptions import AuthenticationError


REQUIRED_CLAIMS = ("sub", "aco", "id", "iat", "exp")


class TokenData(BaseModel):
    """Decoded token data for request context."""
    user_id: str
    org_id: str
    token_id: str


class TokenProvider(Protocol):
    name: str

    def issue(self, user_id: str, org_id: str, expires_delta: Optional[timedelta] = None) -> str: ...

    def decode(self, token: str) -> dict[str, Any]: ...

    def validate(self, token: str) -> TokenData: ...


class _JWTTokenProvider:
    name = ""
    algorithm = ""

    def __init__(self, signing_key: str, verify_key: str):
        self._signing_key = signing_key
        self._verify_key = verify_key

    def issue(
        self,
        user_id: str,
        org_id: str,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Create an access token for a user acting on behalf of an organization.

        Args:
            user_id: User's UUID
            org_id: Organization's UUID
            expires_delta: Optional custom lifetime

        Returns:
            str: Encoded JWT
        """
        now = datetime.now(timezone.utc)
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

        payload = {
            "sub": user_id,
            "aco": org_id,
            "id": str(uuid.uuid4()),
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
        }
        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify the signature and expiry and return the raw claims."""
        try:
            return jwt.decode(token, self._verify_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise AuthenticationError(f"Could not decode token: {e}") from e

    def validate(self, token: str) -> TokenData:
        claims = self.decode(token)
        missing = [c for c in REQUIRED_CLAIMS if not claims.get(c)]
        if missing:
            raise AuthenticationError(f"Token is missing required claims: {', '.join(missing)}")
        return TokenData(
            user_id=str(claims["sub"]),
            org_id=str(claims["aco"]),
            token_id=str(claims["id"]),
        )


class AlphaTokenProvider(_JWTTokenProvider):
    """RS512 tokens signed with a locally held RSA key pair."""

    name = "alpha"
    algorithm = "RS512"

    @classmethod
    def from_files(cls, private_key_file: str | None, public_key_file: str | None) -> "AlphaTokenProvider":
        if not private_key_file or not public_key_file:
            raise RuntimeError("JWT_PRIVATE_KEY_FILE and JWT_PUBLIC_KEY_FILE must be set for the alpha auth provider")
        return cls(
            signing_key=Path(private_key_file).read_text(encoding="utf-8"),
            verify_key=Path(public_key_file).read_text(encoding="utf-8"),
        )


class LocalTokenProvider(_JWTTokenProvider):
    """HS256 tokens signed with the shared ``SECRET_KEY``."""

    name = "local"
    algorithm = "HS256"

    def __init__(self, secret: str):
        if not secret:
            raise RuntimeError("SECRET_KEY must be set for the local auth provider")
        super().__init__(signing_key=secret, verify_key=secret)


@lru_cache
def get_token_provider() -> TokenProvider:
    """Build the configured provider once per process."""
    name = (settings.AUTH_PROVIDER or "").strip().lower()
    if name == "alpha":
        return AlphaTokenProvider.from_files(settings.JWT_PRIVATE_KEY_FILE, settings.JWT_PUBLIC_KEY_FILE)
    elif name == "local":
        return LocalTokenProvider(settings.SECRET_KEY or "")
    raise RuntimeError(f"Unknown AUTH_PROVIDER: {settings.AUTH_PROVIDER!r}")
