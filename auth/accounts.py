"""
auth/accounts.py -- Organization-scoped account administration.

Owners and admins add members of any role, change their name, role, activity,
or password, and soft-delete them. Every operation is scoped to the caller's
organization: an account of another tenant is reported as not found, never as
forbidden, so ids of other tenants cannot be probed.

Deactivation and removal revoke the member's sessions immediately. A revoked
lineage cannot be refreshed, and the access token stops resolving through
AuthEngine.authenticate() because the account is no longer live.
"""

from __future__ import annotations

from datetime import datetime, timezone

from auth.engine import normalize_email
from auth.errors import AccountNotFoundError, DuplicateEmailError, InvalidCredentialsError
from auth.models import Account, AccountView, Role
from auth.passwords import PasswordHasher
from auth.sessions import SessionRegistry
from auth.store import CredentialStore
from core.config import Settings


class AccountService:
    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionRegistry,
        settings: Settings,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.settings = settings
        self.hasher = hasher or PasswordHasher(settings.bcrypt_rounds)

    def _get_member(self, organization_id: str, account_id: str) -> Account:
        account = self.store.get_account(account_id)
        if account is None or account.deleted_at is not None or account.organization_id != organization_id:
            raise AccountNotFoundError()
        return account

    def list_members(self, organization_id: str) -> list[AccountView]:
        return [AccountView.from_account(a) for a in self.store.list_accounts(organization_id)]

    def create_member(
        self,
        organization_id: str,
        *,
        email: str,
        password: str,
        full_name: str,
        role: str,
        is_active: bool = True,
    ) -> AccountView:
        email = normalize_email(email)
        if self.store.email_exists(email):
            raise DuplicateEmailError()
        account = self.store.create_account(
            Account(
                organization_id=organization_id,
                email=email,
                full_name=full_name,
                role=Role(role).value,
                password_hash=self.hasher.hash(password),
                is_active=is_active,
            )
        )
        return AccountView.from_account(account)

    def update_member(
        self,
        organization_id: str,
        account_id: str,
        *,
        full_name: str | None = None,
        role: str | None = None,
        is_active: bool | None = None,
        password: str | None = None,
    ) -> AccountView:
        """Apply the given changes. None means leave unchanged."""
        self._get_member(organization_id, account_id)
        fields: dict = {}
        if full_name is not None:
            fields["full_name"] = full_name
        if role is not None:
            fields["role"] = Role(role).value
        if is_active is not None:
            fields["is_active"] = is_active
        if password is not None:
            fields["password_hash"] = self.hasher.hash(password)
        account = self.store.update_account(account_id, **fields)
        if is_active is False:
            self.sessions.revoke_all_for_account(account_id)
        return AccountView.from_account(account)

    def remove_member(self, organization_id: str, account_id: str) -> dict:
        """Soft-delete: the record stays, it just never authenticates again."""
        self._get_member(organization_id, account_id)
        self.store.update_account(account_id, deleted_at=datetime.now(timezone.utc), is_active=False)
        self.sessions.revoke_all_for_account(account_id)
        return {"success": True}

    def change_password(self, account_id: str, current_password: str, new_password: str) -> dict:
        """Self-service password change. The current password must verify."""
        account = self.store.get_account(account_id)
        if account is None or not self.hasher.verify(current_password, account.password_hash):
            raise InvalidCredentialsError()
        self.store.update_account(account_id, password_hash=self.hasher.hash(new_password))
        if self.settings.revoke_sessions_on_password_reset:
            self.sessions.revoke_all_for_account(account_id)
        return {"success": True}
