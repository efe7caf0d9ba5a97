"""
api/routes/v1/accounts.py -- Organization member management (owner/admin only).

Routes:
  GET    /api/v1/accounts        -- list members of the caller's organization
  POST   /api/v1/accounts        -- add a member with any role
  PATCH  /api/v1/accounts/{id}   -- change name, role, activity, or password
  DELETE /api/v1/accounts/{id}   -- soft-delete a member and revoke their sessions

Every call is scoped to the caller's organization_id; AccountService reports
members of other organizations as not found.

Guards:
  Callers cannot deactivate or delete themselves, and only an OWNER may grant
  or hold the OWNER role through this API.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import AccountCreate, AccountPatch, AccountResponse
from auth.accounts import AccountService
from auth.dependencies import require_admin
from auth.models import AccountView, Role

router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


def _require_owner_for(role: str | None, caller: AccountView) -> None:
    if role == Role.OWNER.value and caller.role != Role.OWNER.value:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only an owner can grant the owner role."},
        )


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(request: Request, caller: AccountView = Depends(require_admin)) -> list[AccountResponse]:
    return [AccountResponse.from_view(v) for v in _service(request).list_members(caller.organization_id)]


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    request: Request,
    body: AccountCreate,
    caller: AccountView = Depends(require_admin),
) -> AccountResponse:
    _require_owner_for(body.role.value, caller)
    view = _service(request).create_member(
        caller.organization_id,
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        role=body.role.value,
        is_active=body.is_active,
    )
    return AccountResponse.from_view(view)


@router.patch("/accounts/{account_id}", response_model=AccountResponse)
def update_account(
    request: Request,
    account_id: str,
    body: AccountPatch,
    caller: AccountView = Depends(require_admin),
) -> AccountResponse:
    if body.is_active is False and account_id == caller.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )
    role = body.role.value if body.role is not None else None
    _require_owner_for(role, caller)
    view = _service(request).update_member(
        caller.organization_id,
        account_id,
        full_name=body.full_name,
        role=role,
        is_active=body.is_active,
        password=body.password,
    )
    return AccountResponse.from_view(view)


@router.delete("/accounts/{account_id}", status_code=204)
def delete_account(request: Request, account_id: str, caller: AccountView = Depends(require_admin)) -> Response:
    if account_id == caller.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    _service(request).remove_member(caller.organization_id, account_id)
    return Response(status_code=204)
