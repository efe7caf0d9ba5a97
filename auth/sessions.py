"""
auth/sessions.py -- Server-side registry of refresh lineages.

Each login or registration opens one session. The session holds the digest of
the only refresh token currently trusted for it, an absolute expiry ceiling,
revocation state, and last-use metadata.

Rotation is a compare-and-swap: rotate() only writes the new digest if the
stored digest still equals the one the caller verified against and the
session is not revoked. If two refreshes race with the same token, exactly one
UPDATE matches a row; the loser gets None and the engine treats it as replay.

The ceiling never moves later. rotate() receives the ceiling the caller
believes in and keeps whichever of that and the stored value is earlier.

Sessions are never deleted. Revocation stamps revoked_at and is idempotent.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.schema import from_iso, sessions, to_iso

logger = logging.getLogger("tenantauth.sessions")

# Stored at creation before the first token is bound. No HMAC hex digest can
# equal it, so a session is unusable until the engine binds a real token.
PLACEHOLDER_HASH = "!unbound"


class SessionState(str, Enum):
    ACTIVE = "ACTIVE"
    ROTATED = "ROTATED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


def state_of(session: Session, now: datetime) -> SessionState:
    """Classify a lineage. REVOKED and EXPIRED are terminal."""
    if session.revoked_at is not None:
        return SessionState.REVOKED
    if now >= session.expires_at:
        return SessionState.EXPIRED
    if session.generation > 1:
        return SessionState.ROTATED
    return SessionState.ACTIVE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry:
    """Repository for Session records on the shared auth Engine.

    Usage:
        registry = SessionRegistry(store.engine)
        session = registry.create(account_id, ceiling, ip, user_agent)
        registry.rotate(session.id, digest, ceiling, ip, user_agent, expected_hash=PLACEHOLDER_HASH)
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = _utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def create(
        self,
        account_id: str,
        absolute_expiry: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        session_id = str(uuid.uuid4())
        now = to_iso(self._clock())
        with self.engine.begin() as conn:
            conn.execute(
                sessions.insert().values(
                    id=session_id,
                    account_id=account_id,
                    refresh_token_hash=PLACEHOLDER_HASH,
                    generation=0,
                    expires_at=to_iso(absolute_expiry),
                    last_ip=ip,
                    last_user_agent=user_agent,
                    last_used_at=now,
                    created_at=now,
                )
            )
        return self.find(session_id)

    def rotate(
        self,
        session_id: str,
        new_hash: str,
        absolute_expiry: datetime,
        ip: str | None,
        user_agent: str | None,
        *,
        expected_hash: str,
    ) -> Session | None:
        """Swap expected_hash for new_hash. Returns the updated session, or None if the swap lost.

        None means the session is unknown, revoked, or no longer trusts
        expected_hash (another request rotated it first).
        """
        with self.engine.begin() as conn:
            row = conn.execute(select(sessions.c.expires_at).where(sessions.c.id == session_id)).fetchone()
            if row is None:
                return None
            ceiling = min(from_iso(row.expires_at), absolute_expiry)
            result = conn.execute(
                update(sessions)
                .where(sessions.c.id == session_id)
                .where(sessions.c.refresh_token_hash == expected_hash)
                .where(sessions.c.revoked_at.is_(None))
                .values(
                    refresh_token_hash=new_hash,
                    generation=sessions.c.generation + 1,
                    expires_at=to_iso(ceiling),
                    last_ip=ip,
                    last_user_agent=user_agent,
                    last_used_at=to_iso(self._clock()),
                )
            )
            if result.rowcount != 1:
                return None
        return self.find(session_id)

    def find(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(sessions).where(sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_for_account(self, account_id: str) -> list[Session]:
        """All sessions of an account, revoked ones included, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(sessions).where(sessions.c.account_id == account_id).order_by(sessions.c.created_at)
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def revoke(self, session_id: str) -> bool:
        """Revoke one session. Returns False if it was already revoked or does not exist."""
        with self.engine.begin() as conn:
            result = conn.execute(
                update(sessions)
                .where(sessions.c.id == session_id)
                .where(sessions.c.revoked_at.is_(None))
                .values(revoked_at=to_iso(self._clock()))
            )
        return result.rowcount > 0

    def revoke_all_for_account(self, account_id: str) -> int:
        """Revoke every outstanding session of an account. Returns how many were open."""
        with self.engine.begin() as conn:
            result = conn.execute(
                update(sessions)
                .where(sessions.c.account_id == account_id)
                .where(sessions.c.revoked_at.is_(None))
                .values(revoked_at=to_iso(self._clock()))
            )
        if result.rowcount:
            logger.info("Revoked %d session(s) for account %s", result.rowcount, account_id)
        return result.rowcount


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        account_id=row.account_id,
        refresh_token_hash=row.refresh_token_hash,
        generation=row.generation,
        expires_at=from_iso(row.expires_at),
        revoked_at=from_iso(row.revoked_at),
        last_ip=row.last_ip,
        last_user_agent=row.last_user_agent,
        last_used_at=from_iso(row.last_used_at),
        created_at=from_iso(row.created_at),
    )
