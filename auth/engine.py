"""
auth/engine.py -- Login, refresh, logout, and password-reset lifecycle.

AuthEngine orchestrates CredentialStore, PasswordHasher, TokenIssuer, and
SessionRegistry. All collaborators and the Settings object are passed in at
construction; nothing is read from the environment here.

Refresh lineage states:
  ACTIVE  -> ROTATED (same session id, new trusted digest)
  ACTIVE | ROTATED -> REVOKED (logout, reuse detection, password reset)
  ACTIVE | ROTATED -> EXPIRED (absolute ceiling passed)
  REVOKED and EXPIRED are terminal.

Reuse detection:
  A refresh token whose digest does not match the session's trusted digest
  is an older token of the same lineage, already rotated away. Someone holds
  a copy they should not. Every session of the account is revoked before
  ReuseDetectedError is raised, so both the thief and the victim must log in
  again. Losing the rotation compare-and-swap to a concurrent refresh is
  treated the same way: a token is good for exactly one refresh.

Nothing is retried here. Callers receive a result or a typed AuthError.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    InvalidTokenError,
    ReuseDetectedError,
    SessionExpiredError,
)
from auth.models import Account, AccountView, AuthResult, Organization, Role, Session, Subscription, TokenPair, is_live
from auth.notify import LoggingResetNotifier, PasswordResetNotifier
from auth.passwords import PasswordHasher
from auth.sessions import PLACEHOLDER_HASH, SessionRegistry, SessionState, state_of
from auth.store import CredentialStore
from auth.tokens import ACCESS, REFRESH, TokenIssuer, expires_at, generate_reset_token, new_nonce
from core.config import Settings

logger = logging.getLogger("tenantauth.auth")

_SUCCESS = {"success": True}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthEngine:
    """Register, login, refresh, logout, forgot/reset password.

    Usage:
        engine = AuthEngine(store, SessionRegistry(store.engine), settings)
        result = engine.login("owner@acme.test", "password123", ip, user_agent)
        result = engine.refresh(result.tokens.refresh_token, ip, user_agent)
    """

    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionRegistry,
        settings: Settings,
        *,
        hasher: PasswordHasher | None = None,
        issuer: TokenIssuer | None = None,
        notifier: PasswordResetNotifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.settings = settings
        self.hasher = hasher or PasswordHasher(settings.bcrypt_rounds)
        self.issuer = issuer or TokenIssuer(settings)
        self.notifier = notifier or LoggingResetNotifier(reveal_token=settings.debug)
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        organization: Organization,
        *,
        email: str,
        password: str,
        full_name: str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Create organization + owner account + starter subscription, then open a session."""
        email = normalize_email(email)
        if self.store.email_exists(email):
            raise DuplicateEmailError()

        owner = Account(
            organization_id="",
            email=email,
            full_name=full_name,
            role=Role.OWNER.value,
            password_hash=self.hasher.hash(password),
        )
        starter = Subscription(organization_id="", plan=self.settings.starter_plan)
        org, account, _subscription = self.store.create_tenant(organization, owner, starter)

        result = self._open_session(account, ip, user_agent)
        result.organization = org
        return result

    def login(self, email: str, password: str, ip: str | None = None, user_agent: str | None = None) -> AuthResult:
        """Authenticate with email and password and open a new session.

        Unknown email, wrong password, inactive, and soft-deleted accounts all
        raise the same InvalidCredentialsError. bcrypt runs on every path so
        response time does not separate them either.
        """
        account = self.store.get_account_by_email(normalize_email(email))
        if account is None or not account.password_hash:
            self.hasher.verify(password, self.hasher.dummy_hash)
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, account.password_hash):
            raise InvalidCredentialsError()
        if not is_live(account):
            raise InvalidCredentialsError()
        return self._open_session(account, ip, user_agent)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, ip: str | None = None, user_agent: str | None = None) -> AuthResult:
        """Rotate a session and issue a new token pair.

        Raises InvalidTokenError, SessionExpiredError, or ReuseDetectedError.
        The new refresh token never outlives the session's absolute ceiling.

        A refresh token's exp never falls after its session's ceiling, so the
        signature is checked first with exp deferred: once the ceiling has
        passed the caller sees SessionExpiredError rather than a generic
        InvalidTokenError. A token past its own exp inside a live session is
        InvalidTokenError.
        """
        claims = self.issuer.verify(refresh_token, REFRESH, verify_exp=False)
        session = self.sessions.find(claims["sid"])
        if session is None or session.account_id != claims["sub"]:
            raise InvalidTokenError()

        now = self._clock()
        state = state_of(session, now)
        if state is SessionState.REVOKED:
            raise InvalidTokenError()
        if state is SessionState.EXPIRED:
            raise SessionExpiredError()
        if now >= expires_at(claims):
            raise InvalidTokenError()

        presented = self.issuer.digest(refresh_token, REFRESH)
        if not hmac.compare_digest(presented, session.refresh_token_hash):
            self._revoke_for_reuse(session)
            raise ReuseDetectedError()

        account = self.store.get_account(session.account_id)
        if account is None or not is_live(account):
            self.sessions.revoke(session.id)
            raise InvalidTokenError()

        tokens = self._bind_tokens(account, session, presented, ip, user_agent, now)
        if tokens is None:
            # Another request rotated this session between find() and the swap.
            self._revoke_for_reuse(session)
            raise ReuseDetectedError()
        return AuthResult(account=AccountView.from_account(account), tokens=tokens, session_id=session.id)

    # ------------------------------------------------------------------
    # Logout and access-token authentication
    # ------------------------------------------------------------------

    def logout(self, account_id: str) -> dict:
        """Revoke every session of the account. Safe to call repeatedly."""
        self.sessions.revoke_all_for_account(account_id)
        return dict(_SUCCESS)

    def authenticate(self, access_token: str) -> AccountView:
        """Resolve a bearer access token to the live account it names.

        Role and activity come from the store, not the claims, so a role
        change or deactivation takes effect before the token expires.
        """
        claims = self.issuer.verify(access_token, ACCESS)
        account = self.store.get_account(claims["sub"])
        if account is None or not is_live(account) or account.organization_id != claims["org"]:
            raise InvalidTokenError()
        return AccountView.from_account(account)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> dict:
        """Issue a reset token if the email belongs to a live account.

        The response is identical whether or not the account exists. Notifier
        failures are logged and never reach the caller, for the same reason.
        """
        account = self.store.get_account_by_email(normalize_email(email))
        if account is None or not is_live(account):
            return dict(_SUCCESS)

        token = generate_reset_token()
        reset_expires_at = self._clock() + timedelta(seconds=self.settings.password_reset_ttl_seconds)
        self.store.set_password_reset(account.id, self.issuer.digest(token, ACCESS), reset_expires_at)
        try:
            self.notifier.send_password_reset(AccountView.from_account(account), token, reset_expires_at)
        except Exception:
            logger.exception("Password reset notification failed for account %s", account.id)
        return dict(_SUCCESS)

    def reset_password(self, token: str, new_password: str) -> dict:
        """Consume a reset token and set a new password.

        Every session of the account is revoked afterwards unless
        settings.revoke_sessions_on_password_reset is off: a refresh token
        stolen before the reset must not keep working after it.
        """
        digest = self.issuer.digest(token, ACCESS)
        account = self.store.get_account_by_reset_digest(digest)
        if (
            account is None
            or account.password_reset_expires_at is None
            or account.password_reset_expires_at <= self._clock()
        ):
            raise InvalidOrExpiredTokenError()

        password_hash = self.hasher.hash(new_password)
        if not self.store.complete_password_reset(account.id, digest, password_hash):
            raise InvalidOrExpiredTokenError()

        if self.settings.revoke_sessions_on_password_reset:
            self.sessions.revoke_all_for_account(account.id)
        logger.info("Password reset completed for account %s", account.id)
        return dict(_SUCCESS)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_session(self, account: Account, ip: str | None, user_agent: str | None) -> AuthResult:
        now = self._clock()
        ceiling = now + timedelta(seconds=self.settings.session_absolute_ttl_seconds)
        session = self.sessions.create(account.id, ceiling, ip, user_agent)
        tokens = self._bind_tokens(account, session, PLACEHOLDER_HASH, ip, user_agent, now)
        if tokens is None:
            # Revoked between create and bind, e.g. by a concurrent logout.
            raise InvalidTokenError("Session revoked.")
        logger.info("Opened session %s for account %s", session.id, account.id)
        return AuthResult(account=AccountView.from_account(account), tokens=tokens, session_id=session.id)

    def _bind_tokens(
        self,
        account: Account,
        session: Session,
        expected_hash: str,
        ip: str | None,
        user_agent: str | None,
        now: datetime,
    ) -> TokenPair | None:
        """Sign a new pair and make its refresh digest the session's trusted one.

        Returns None if the session no longer trusts expected_hash.
        """
        remaining = session.expires_at - now
        if remaining <= timedelta(0):
            raise SessionExpiredError()
        refresh_ttl = min(self.issuer.refresh_ttl, remaining)

        access_token = self.issuer.issue(
            {"sub": account.id, "org": account.organization_id, "role": account.role, "email": account.email},
            ACCESS,
            self.issuer.access_ttl,
            now,
        )
        refresh_token = self.issuer.issue(
            {"sub": account.id, "sid": session.id, "jti": new_nonce()},
            REFRESH,
            refresh_ttl,
            now,
        )
        rotated = self.sessions.rotate(
            session.id,
            self.issuer.digest(refresh_token, REFRESH),
            session.expires_at,
            ip,
            user_agent,
            expected_hash=expected_hash,
        )
        if rotated is None:
            return None
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.issuer.access_ttl.total_seconds()),
            refresh_expires_at=now + refresh_ttl,
        )

    def _revoke_for_reuse(self, session: Session) -> None:
        count = self.sessions.revoke_all_for_account(session.account_id)
        logger.warning(
            "Refresh token reuse on session %s; revoked %d session(s) for account %s",
            session.id,
            count,
            session.account_id,
        )
