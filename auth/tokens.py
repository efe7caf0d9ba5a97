"""
auth/tokens.py -- JWT issuance/verification and secret digests.

Security design decisions:
  JWT: python-jose with HS256. Two categories, two keys. Access tokens are
       signed with JWT_SECRET and carry account id, organization id, role, and
       email. Refresh tokens are signed with JWT_REFRESH_SECRET and carry only
       the account id, the session id, and a random nonce, so a leaked refresh
       token reveals as little as possible. Each token also carries a "typ"
       claim; verify() rejects a token presented as the wrong category even if
       the two secrets were ever configured alike.

  verify() raises InvalidTokenError on any failure (bad signature, malformed
       structure, expiry, wrong category, missing claims). The request layer
       turns that into a 401.

  Digests: refresh tokens and password-reset tokens are high-entropy, so the
       server stores HMAC-SHA256(category secret, raw) rather than a bcrypt
       hash. The digest is deterministic, which the session compare-and-swap
       needs, and an attacker holding the DB still cannot forge a match
       without the secret.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidTokenError
from core.config import Settings

ACCESS = "access"
REFRESH = "refresh"

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS = {
    ACCESS: ("sub", "org", "role", "email"),
    REFRESH: ("sub", "sid", "jti"),
}


class TokenIssuer:
    """Signs and verifies the two bearer-token categories.

    Usage:
        issuer = TokenIssuer(settings)
        token = issuer.issue({"sub": "...", "sid": "...", "jti": new_nonce()}, REFRESH, timedelta(days=7))
        claims = issuer.verify(token, REFRESH)
    """

    def __init__(self, settings: Settings) -> None:
        self._keys = {
            ACCESS: settings.jwt_secret,
            REFRESH: settings.jwt_refresh_secret,
        }
        self.access_ttl = timedelta(seconds=settings.access_token_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=settings.refresh_token_ttl_seconds)

    def _key(self, category: str) -> str:
        try:
            return self._keys[category]
        except KeyError:
            raise ValueError(f"Unknown token category: {category!r}") from None

    def issue(self, claims: dict, category: str, ttl: timedelta, now: datetime | None = None) -> str:
        """Encode a signed JWT that expires ttl after now.

        jose stores exp as whole seconds (truncated), so a token never outlives
        now + ttl.
        """
        key = self._key(category)
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            **claims,
            "typ": category,
            "iat": issued_at,
            "exp": issued_at + ttl,
        }
        return jwt.encode(payload, key, algorithm=_ALGORITHM)

    def verify(self, token: str, category: str, *, verify_exp: bool = True) -> dict:
        """Decode and verify a token of the given category. Returns its claims.

        verify_exp=False still checks signature, category, and required claims,
        and still requires an exp claim; the caller then owns the expiry
        decision (AuthEngine.refresh checks the session ceiling first).
        """
        key = self._key(category)
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": verify_exp, "require_exp": True},
            )
        except JWTError as exc:
            raise InvalidTokenError() from exc
        if payload.get("typ") != category:
            raise InvalidTokenError()
        if any(not payload.get(claim) for claim in _REQUIRED_CLAIMS[category]):
            raise InvalidTokenError()
        return payload

    def digest(self, raw: str, category: str) -> str:
        """Return HMAC-SHA256(category secret, raw) as hex."""
        return hmac.new(self._key(category).encode(), raw.encode(), hashlib.sha256).hexdigest()


def expires_at(token_claims: dict) -> datetime:
    """Return the exp claim of verified claims as an aware datetime."""
    return datetime.fromtimestamp(token_claims["exp"], tz=timezone.utc)


def new_nonce() -> str:
    """Random per-token nonce. Makes two refresh tokens issued in the same second differ."""
    return secrets.token_urlsafe(16)


def generate_reset_token() -> str:
    """Generate a one-time password-reset token.

    secrets.token_hex(32) gives 256 bits of entropy as 64 hex characters.
    """
    return secrets.token_hex(32)
