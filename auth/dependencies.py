"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The only credential accepted is an `Authorization: Bearer <access token>`
header. The token is resolved through AuthEngine.authenticate(), which
re-checks the account against the store, so a deactivated or deleted account
is rejected even while its access token is still within its lifetime.

get_current_account() raises HTTP 401 if the request is not authenticated.
require_admin() wraps it and raises HTTP 403 unless the role is OWNER or ADMIN.

Layer rule: no imports from api/. This module may import fastapi because it
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.engine import AuthEngine
from auth.errors import AuthError
from auth.models import AccountView, Role

_ADMIN_ROLES = {Role.OWNER.value, Role.ADMIN.value}


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_account(request: Request) -> AccountView:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: AccountView = Depends(get_current_account)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    engine: AuthEngine = request.app.state.auth_engine
    try:
        return engine.authenticate(token)
    except AuthError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc


def require_admin(request: Request) -> AccountView:
    """Require an OWNER or ADMIN account. 401 if unauthenticated, 403 otherwise."""
    account = get_current_account(request)
    if account.role not in _ADMIN_ROLES:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Owner or admin access required."},
        )
    return account
