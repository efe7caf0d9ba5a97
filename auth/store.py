"""
auth/store.py -- SQLAlchemy Core persistence for organizations and accounts.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_* are the mappers. The engine and the request layer never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE constraint (uq_accounts_email). The engine's
  "does this email exist" check is only a fast path; an IntegrityError on
  the email column is translated to DuplicateEmailError here.

  Tenant liveness: every account lookup joins its organization and filters
  out soft-deleted organizations, so an account of a deleted tenant is
  invisible to authentication.

Transactions:
  create_tenant() writes organization, owner account, and starter
  subscription inside one engine.begin() block. Any failure rolls the whole
  unit back; no orphan organization or account survives.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateEmailError, InfrastructureError
from auth.models import Account, Organization, Subscription
from auth.schema import accounts, from_iso, metadata, now_iso, organizations, subscriptions, to_iso

logger = logging.getLogger("tenantauth.store")


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys.

    Set per connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    metadata.create_all(engine)
    return engine


def _new_id() -> str:
    return str(uuid.uuid4())


def _is_email_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "uq_accounts_email" in message or "accounts.email" in message


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Organization, Account, and Subscription records.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        org, owner, sub = store.create_tenant(Organization(name="Acme"), owner_account, starter_sub)
        account = store.get_account_by_email("owner@acme.test")
        store.close()
    """

    # Columns update_account() may write. Checked before building the UPDATE.
    _UPDATABLE: frozenset = frozenset({"full_name", "role", "is_active", "password_hash", "deleted_at"})

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = build_engine(db_url)

    # ------------------------------------------------------------------
    # Tenant creation
    # ------------------------------------------------------------------

    def create_tenant(
        self, organization: Organization, owner: Account, subscription: Subscription
    ) -> tuple[Organization, Account, Subscription]:
        """Insert organization, owner account, and subscription atomically.

        The owner's and subscription's organization_id are overwritten with
        the new organization's id. Returns the three stored records.

        Raises DuplicateEmailError if the owner's email is taken, including
        when a concurrent registration inserted it after the caller's check.
        """
        org_id = _new_id()
        account_id = _new_id()
        sub_id = _new_id()
        now = now_iso()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    organizations.insert().values(
                        id=org_id,
                        name=organization.name,
                        ice=organization.ice,
                        phone=organization.phone,
                        email=organization.email,
                        address=organization.address,
                        city=organization.city,
                        logo_url=organization.logo_url,
                        legal_mentions=organization.legal_mentions,
                        is_active=organization.is_active,
                        created_at=now,
                    )
                )
                conn.execute(
                    accounts.insert().values(
                        id=account_id,
                        organization_id=org_id,
                        email=owner.email,
                        password_hash=owner.password_hash,
                        full_name=owner.full_name,
                        role=owner.role,
                        is_active=owner.is_active,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.execute(
                    subscriptions.insert().values(
                        id=sub_id,
                        organization_id=org_id,
                        plan=subscription.plan,
                        status=subscription.status,
                        current_period_end=to_iso(subscription.current_period_end),
                        created_at=now,
                    )
                )
        except IntegrityError as exc:
            if _is_email_conflict(exc):
                raise DuplicateEmailError() from exc
            raise InfrastructureError("Tenant creation failed.") from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Tenant creation failed.") from exc

        logger.info("Created organization %s with owner account %s", org_id, account_id)
        return self.get_organization(org_id), self.get_account(account_id), self.get_subscription(org_id)

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def _live_accounts(self):
        """SELECT accounts whose organization is not soft-deleted."""
        return (
            select(accounts)
            .join(organizations, organizations.c.id == accounts.c.organization_id)
            .where(organizations.c.deleted_at.is_(None))
        )

    def email_exists(self, email: str) -> bool:
        """Return True if any account, deleted or not, is bound to email."""
        with self.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(accounts).where(accounts.c.email == email)).scalar()
        return (count or 0) > 0

    def get_account(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(self._live_accounts().where(accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_email(self, email: str) -> Account | None:
        """Exact match on the normalized email. Soft-deleted accounts are returned; callers apply is_live()."""
        with self.engine.connect() as conn:
            row = conn.execute(self._live_accounts().where(accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_reset_digest(self, digest: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(self._live_accounts().where(accounts.c.password_reset_token_hash == digest)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, organization_id: str) -> list[Account]:
        """Return the organization's non-deleted accounts, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                self._live_accounts()
                .where(accounts.c.organization_id == organization_id)
                .where(accounts.c.deleted_at.is_(None))
                .order_by(accounts.c.created_at.desc())
            ).fetchall()
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Account mutations
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        """Insert an account into an existing organization.

        Raises DuplicateEmailError if the email is already bound.
        """
        account_id = _new_id()
        now = now_iso()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    accounts.insert().values(
                        id=account_id,
                        organization_id=account.organization_id,
                        email=account.email,
                        password_hash=account.password_hash,
                        full_name=account.full_name,
                        role=account.role,
                        is_active=account.is_active,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            if _is_email_conflict(exc):
                raise DuplicateEmailError() from exc
            raise InfrastructureError("Account creation failed.") from exc
        return self.get_account(account_id)

    def update_account(self, account_id: str, **fields) -> Account | None:
        """Update whitelisted columns and bump updated_at. Returns the fresh record."""
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update account fields: {sorted(unknown)}")
        values = {k: to_iso(v) if isinstance(v, datetime) else v for k, v in fields.items()}
        values["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            conn.execute(accounts.update().where(accounts.c.id == account_id).values(**values))
        return self.get_account(account_id)

    def set_password_reset(self, account_id: str, token_digest: str, expires_at: datetime) -> None:
        """Store a reset-token digest, replacing any earlier outstanding one."""
        with self.engine.begin() as conn:
            conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .values(
                    password_reset_token_hash=token_digest,
                    password_reset_expires_at=to_iso(expires_at),
                    updated_at=now_iso(),
                )
            )

    def complete_password_reset(self, account_id: str, token_digest: str, password_hash: str) -> bool:
        """Replace the password hash and clear the reset token.

        Conditional on the digest still being stored, so a token is consumed
        at most once even if two resets race. Returns False if it was not.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .where(accounts.c.password_reset_token_hash == token_digest)
                .values(
                    password_hash=password_hash,
                    password_reset_token_hash=None,
                    password_reset_expires_at=None,
                    updated_at=now_iso(),
                )
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Organization / subscription queries
    # ------------------------------------------------------------------

    def get_organization(self, organization_id: str) -> Organization | None:
        """Return the organization, or None if absent or soft-deleted."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(organizations)
                .where(organizations.c.id == organization_id)
                .where(organizations.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_organization(row) if row is not None else None

    def get_subscription(self, organization_id: str) -> Subscription | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(subscriptions).where(subscriptions.c.organization_id == organization_id)
            ).fetchone()
        return _row_to_subscription(row) if row is not None else None

    def soft_delete_organization(self, organization_id: str, deleted_at: datetime) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                organizations.update()
                .where(organizations.c.id == organization_id)
                .where(organizations.c.deleted_at.is_(None))
                .values(deleted_at=to_iso(deleted_at), is_active=False)
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        organization_id=row.organization_id,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        role=row.role,
        is_active=bool(row.is_active),
        deleted_at=from_iso(row.deleted_at),
        password_reset_token_hash=row.password_reset_token_hash,
        password_reset_expires_at=from_iso(row.password_reset_expires_at),
        created_at=from_iso(row.created_at),
        updated_at=from_iso(row.updated_at),
    )


def _row_to_organization(row) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        ice=row.ice,
        phone=row.phone,
        email=row.email,
        address=row.address,
        city=row.city,
        logo_url=row.logo_url,
        legal_mentions=row.legal_mentions,
        is_active=bool(row.is_active),
        deleted_at=from_iso(row.deleted_at),
        created_at=from_iso(row.created_at),
    )


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        organization_id=row.organization_id,
        plan=row.plan,
        status=row.status,
        current_period_end=from_iso(row.current_period_end),
        created_at=from_iso(row.created_at),
    )
