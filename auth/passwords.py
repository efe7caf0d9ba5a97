"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly, without a passlib wrapper: passlib's wrap-bug probe
builds a password longer than 72 bytes, which bcrypt 4.x rejects outright.

The cost factor is the point. Hashing is CPU-bound on purpose and is never
batched or parallelised per call; the request layer runs it in a worker
thread so it does not block the event loop.

dummy_hash exists for timing equalization: login runs a verify against it
when the email is unknown, so response time does not reveal which emails
exist.
"""

from __future__ import annotations

import bcrypt

from auth.errors import InfrastructureError


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self.dummy_hash: str = self.hash("tenantauth_timing_dummy")

    def hash(self, secret: str) -> str:
        """Return a salted bcrypt hash. Two calls never return the same value.

        Secrets longer than 72 bytes are rejected by bcrypt and surface as
        InfrastructureError. api/models.py rejects them at the request edge.
        """
        try:
            return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except ValueError as exc:
            raise InfrastructureError("Password hashing failed.") from exc

    def verify(self, secret: str, hashed: str) -> bool:
        """Return True if secret matches hashed. A malformed hash never matches."""
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
