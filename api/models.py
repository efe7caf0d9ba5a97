"""
API request and response models.

These Pydantic v2 models define the HTTP transport contract. They are separate
from the dataclasses in auth/models.py, which own the domain representation.
Route handlers map between the two.

New-password fields share the _Password type: bcrypt rejects input longer
than 72 bytes, so the cap is checked on the UTF-8 encoding, not the character
count.
"""

from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.models import AccountView, AuthResult, Organization

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_BCRYPT_MAX_BYTES = 72


def _fits_bcrypt(value: str) -> str:
    if len(value.encode("utf-8")) > _BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes when UTF-8 encoded.")
    return value


_Password = Annotated[str, Field(min_length=8, max_length=72), AfterValidator(_fits_bcrypt)]


class RoleEnum(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    AGENT = "AGENT"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    email is the owner's login. When omitted, company_email is used, so a
    one-person company can register with a single address.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    company_name: str = Field(min_length=1, max_length=255)
    ice: Optional[str] = Field(default=None, max_length=64)
    logo_url: Optional[str] = Field(default=None, max_length=2048)
    phone: str = Field(min_length=1, max_length=64)
    address: Optional[str] = Field(default=None, max_length=1000)
    city: Optional[str] = Field(default=None, max_length=128)
    company_email: str = Field(pattern=_EMAIL_PATTERN, max_length=255)
    legal_mentions: Optional[str] = Field(default=None, max_length=4000)
    email: Optional[str] = Field(default=None, pattern=_EMAIL_PATTERN, max_length=255)
    password: _Password
    full_name: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=4096)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=256)
    new_password: _Password


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=72)
    new_password: _Password


class AccountCreate(BaseModel):
    """Request body for POST /api/v1/accounts (owner/admin only)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=_EMAIL_PATTERN, max_length=255)
    password: _Password
    full_name: str = Field(min_length=1, max_length=255)
    role: RoleEnum = RoleEnum.AGENT
    is_active: bool = True


class AccountPatch(BaseModel):
    """Request body for PATCH /api/v1/accounts/{id}. Omitted fields are unchanged."""

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None
    password: Optional[_Password] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Sanitized account. Never includes the password hash or reset state."""

    id: str
    organization_id: str
    email: str
    full_name: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(**asdict(view))


class OrganizationResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    is_active: bool

    @classmethod
    def from_domain(cls, org: Organization) -> "OrganizationResponse":
        return cls(id=org.id, name=org.name, email=org.email, phone=org.phone, city=org.city, is_active=org.is_active)


class TokenResponse(BaseModel):
    """Returned by register, login, and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_at: datetime
    account: AccountResponse
    organization: Optional[OrganizationResponse] = None

    @classmethod
    def from_result(cls, result: AuthResult) -> "TokenResponse":
        return cls(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            token_type=result.tokens.token_type,
            expires_in=result.tokens.expires_in,
            refresh_expires_at=result.tokens.refresh_expires_at,
            account=AccountResponse.from_view(result.account),
            organization=OrganizationResponse.from_domain(result.organization) if result.organization else None,
        )


class SuccessResponse(BaseModel):
    success: bool = True


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
