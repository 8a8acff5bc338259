"""
User endpoints — registration, CRUD and password change.

- POST /users (registration) is open; assigning a non-default role needs an ADMIN caller.
- Every other operation requires a valid bearer credential.
- PUT /users/{id} is limited to the account itself or an ADMIN; role and
  status changes need an ADMIN.
- DELETE additionally requires the ADMIN role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from warden.api.v1.deps import (
    RequestContext,
    get_account_service,
    get_current_user,
    get_optional_user,
    require_auth,
    require_role,
)
from warden.core.roles import Role
from warden.models.user import User
from warden.schemas.user import (
    DeleteResponse,
    MessageResponse,
    PasswordChange,
    UserCreate,
    UserRead,
    UserUpdate,
)
from warden.services.accounts import AccountService

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.post("", response_model=UserRead, status_code=201)
async def register_user(
    body: UserCreate,
    caller: User | None = Depends(get_optional_user),
    accounts: AccountService = Depends(get_account_service),
) -> User:
    """Register a new account."""
    return await accounts.register(body, actor=caller)


@router.get("", response_model=list[UserRead])
async def list_users(
    _ctx: RequestContext = Depends(require_auth),
    accounts: AccountService = Depends(get_account_service),
) -> list[User]:
    return await accounts.list_users()


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: str,
    _ctx: RequestContext = Depends(require_auth),
    accounts: AccountService = Depends(get_account_service),
) -> User:
    return await accounts.get(user_id)


@router.put("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: str,
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> User:
    """Update profile fields. The password is changed via /password-change only."""
    logger.debug("User %s updating %s", current_user.id, user_id)
    return await accounts.update(user_id, body, actor=current_user)


@router.delete("/{user_id}", response_model=DeleteResponse)
async def delete_user(
    user_id: str,
    _admin: User = Depends(require_role(Role.ADMIN)),
    accounts: AccountService = Depends(get_account_service),
) -> DeleteResponse:
    user = await accounts.delete(user_id)
    return DeleteResponse(message="User deleted", id=user.id)


@router.put("/{user_id}/password-change", response_model=MessageResponse)
async def change_password(
    user_id: str,
    body: PasswordChange,
    _ctx: RequestContext = Depends(require_auth),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Replace the password after proving knowledge of the current one."""
    await accounts.change_password(user_id, body.current_password, body.new_password)
    return MessageResponse(message="Password updated")
