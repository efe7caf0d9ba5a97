"""
auth/schema.py -- SQLAlchemy Core table definitions shared by the auth stores.

CredentialStore (auth/store.py) and SessionRegistry (auth/sessions.py) both
work against these tables on the same Engine. Keeping the Table objects in one
place lets both create_all() the full schema and lets foreign keys resolve.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
string order equals time order in every backend.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, String, Table, Text, UniqueConstraint

metadata = MetaData()

organizations = Table(
    "organizations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("ice", String(64)),
    Column("phone", String(64)),
    Column("email", String(255)),
    Column("address", Text),
    Column("city", String(128)),
    Column("logo_url", Text),
    Column("legal_mentions", Text),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("deleted_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("organization_id", String(36), ForeignKey("organizations.id"), nullable=False, index=True),
    Column("email", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(255), nullable=False),
    Column("role", String(16), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("deleted_at", String(32)),
    Column("password_reset_token_hash", String(64), index=True),
    Column("password_reset_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    # System-wide, not per organization. Closes the race between the
    # registration fast-path check and the insert.
    UniqueConstraint("email", name="uq_accounts_email"),
)

subscriptions = Table(
    "subscriptions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("organization_id", String(36), ForeignKey("organizations.id"), nullable=False, unique=True),
    Column("plan", String(32), nullable=False),
    Column("status", String(32), nullable=False),
    Column("current_period_end", String(32)),
    Column("created_at", String(32), nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), ForeignKey("accounts.id"), nullable=False, index=True),
    Column("refresh_token_hash", String(64), nullable=False),
    Column("generation", Integer, nullable=False, default=0),
    Column("expires_at", String(32), nullable=False),
    Column("revoked_at", String(32)),
    Column("last_ip", String(64)),
    Column("last_user_agent", Text),
    Column("last_used_at", String(32)),
    Column("created_at", String(32), nullable=False),
)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))
