"""
auth/models.py -- Domain dataclasses for tenants, accounts, and sessions.

Pattern: Data class. Stores and the engine do the work; these own the shape.
The one exception is is_live(), the single predicate every authentication
boundary uses to decide whether an account may authenticate.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    AGENT = "AGENT"


@dataclass
class Organization:
    """A tenant. Every account belongs to exactly one.

    id is None before the record is written to the database.
    """

    name: str
    id: str | None = None
    ice: str | None = None  # company registration identifier
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    city: str | None = None
    logo_url: str | None = None
    legal_mentions: str | None = None
    is_active: bool = True
    deleted_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Account:
    """A login identity scoped to one organization.

    email is unique across the whole system, not per organization. The reset
    token is never stored in clear: password_reset_token_hash holds an HMAC
    digest of it.
    """

    organization_id: str
    email: str
    full_name: str
    role: str  # Role value
    id: str | None = None
    password_hash: str | None = None
    is_active: bool = True
    deleted_at: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Subscription:
    """Billing record created alongside a new organization."""

    organization_id: str
    plan: str
    status: str = "ACTIVE"
    id: str | None = None
    current_period_end: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Session:
    """One refresh lineage.

    expires_at is the absolute ceiling fixed at creation. generation counts
    successful secret rotations: 1 after the first token pair is bound.
    """

    account_id: str
    expires_at: datetime
    id: str | None = None
    refresh_token_hash: str = ""
    generation: int = 0
    revoked_at: datetime | None = None
    last_ip: str | None = None
    last_user_agent: str | None = None
    last_used_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class AccountView:
    """Sanitized account returned to callers. Never carries secrets."""

    id: str
    organization_id: str
    email: str
    full_name: str
    role: str
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_account(cls, account: Account) -> AccountView:
        return cls(
            id=account.id,
            organization_id=account.organization_id,
            email=account.email,
            full_name=account.full_name,
            role=account.role,
            is_active=account.is_active,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds
    refresh_expires_at: datetime
    token_type: str = "bearer"


@dataclass
class AuthResult:
    """What register/login/refresh hand back to the request layer."""

    account: AccountView
    tokens: TokenPair
    session_id: str
    organization: Organization | None = None


def is_live(account: Account) -> bool:
    """Return True if the account may authenticate.

    Soft-deleted and inactive accounts never authenticate, whatever the
    credential presented.
    """
    return account.deleted_at is None and account.is_active
