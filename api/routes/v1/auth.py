"""
api/routes/v1/auth.py -- Authentication lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register         -- new organization + owner; returns a token pair
  POST /api/v1/auth/login            -- email/password login; returns a token pair
  POST /api/v1/auth/refresh          -- rotate a refresh token; returns a new pair
  POST /api/v1/auth/logout           -- revoke every session of the caller (requires auth)
  POST /api/v1/auth/forgot-password  -- always 200; emails a reset token when the account exists
  POST /api/v1/auth/reset-password   -- consume a reset token and set a new password
  POST /api/v1/auth/change-password  -- change own password (requires auth)
  GET  /api/v1/auth/me               -- current account (requires auth)

Handlers are thin: parse the body, call AuthEngine, map the result. AuthError
subclasses propagate to the handler in api/main.py, which maps each code to a
status and the shared error envelope.

Handlers are plain `def`, so Starlette runs them in its threadpool and bcrypt
does not block the event loop.

Security:
  Login, register, and forgot-password are rate-limited per client IP.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import (
    AccountResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SuccessResponse,
    TokenResponse,
)
from auth.accounts import AccountService
from auth.dependencies import get_current_account
from auth.engine import AuthEngine
from auth.models import AccountView, Organization

# Auth policy:
# - register / login / refresh / forgot-password / reset-password: public
# - logout / change-password / me: bearer access token (get_current_account)
router = APIRouter()


def _client(request: Request) -> tuple[str | None, str | None]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


def _engine(request: Request) -> AuthEngine:
    return request.app.state.auth_engine


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(LOGIN_RATE_LIMIT)
@router.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> TokenResponse:
    """Create an organization, its owner account, and a starter subscription."""
    ip, user_agent = _client(request)
    organization = Organization(
        name=body.company_name,
        ice=body.ice,
        logo_url=body.logo_url,
        phone=body.phone,
        address=body.address,
        city=body.city,
        email=body.company_email,
        legal_mentions=body.legal_mentions,
    )
    result = _engine(request).register(
        organization,
        email=body.email or body.company_email,
        password=body.password,
        full_name=body.full_name,
        ip=ip,
        user_agent=user_agent,
    )
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse.from_result(result)


@limiter.limit(LOGIN_RATE_LIMIT)  # brute-force mitigation
@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, response: Response, body: LoginRequest) -> TokenResponse:
    """Authenticate with email and password.

    Unknown email, wrong password, inactive, and deleted accounts all return
    the same 401 body.
    """
    ip, user_agent = _client(request)
    result = _engine(request).login(body.email, body.password, ip, user_agent)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse.from_result(result)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    ip, user_agent = _client(request)
    result = _engine(request).refresh(body.refresh_token, ip, user_agent)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse.from_result(result)


@limiter.limit(LOGIN_RATE_LIMIT)
@router.post("/auth/forgot-password", response_model=SuccessResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> SuccessResponse:
    return SuccessResponse(**_engine(request).forgot_password(body.email))


@router.post("/auth/reset-password", response_model=SuccessResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> SuccessResponse:
    return SuccessResponse(**_engine(request).reset_password(body.token, body.new_password))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=SuccessResponse)
def logout(request: Request, account: AccountView = Depends(get_current_account)) -> SuccessResponse:
    """Revoke all refresh sessions of the caller. Repeating it is harmless."""
    return SuccessResponse(**_engine(request).logout(account.id))


@router.post("/auth/change-password", response_model=SuccessResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    account: AccountView = Depends(get_current_account),
) -> SuccessResponse:
    service: AccountService = request.app.state.account_service
    return SuccessResponse(**service.change_password(account.id, body.current_password, body.new_password))


@router.get("/auth/me", response_model=AccountResponse)
def me(account: AccountView = Depends(get_current_account)) -> AccountResponse:
    """Return the account the access token resolves to."""
    return AccountResponse.from_view(account)
