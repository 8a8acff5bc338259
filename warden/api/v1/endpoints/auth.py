"""
Auth endpoints — login (OAuth2 password flow) & current-user profile.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm

from warden.api.v1.deps import get_account_service, get_current_user
from warden.core.limiter import enforce_login_rate_limit
from warden.models.user import User
from warden.schemas.token import Token
from warden.schemas.user import UserRead
from warden.services.accounts import AccountService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token, dependencies=[Depends(enforce_login_rate_limit)])
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    accounts: AccountService = Depends(get_account_service),
) -> Token:
    """Authenticate with username/password and return a bearer token."""
    return await accounts.login(form_data.username, form_data.password)


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Return profile of the currently authenticated user."""
    return current_user
