"""
FastAPI dependencies — access gate, role guard, database session and services.

Components built once at startup (vault, issuer, verifier, config) live on
``app.state``; everything request-scoped is produced here and passed to
handlers explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.ext.asyncio import AsyncSession

from warden.core.config import SecurityConfig
from warden.core.exceptions import CredentialRejected, ForbiddenError, RejectionKind
from warden.core.roles import Role
from warden.core.security import PasswordVault
from warden.core.tokens import CredentialIssuer, CredentialVerifier
from warden.db.directory import SqlUserDirectory, UserDirectory
from warden.models.user import User
from warden.services.accounts import ACTIVE, AccountService

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"

# Declared on the gate so the scheme shows up in OpenAPI; the header itself
# is parsed by extract_bearer_token to tell MISSING from MALFORMED.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """Identity established by the access gate for one request."""

    user_id: str
    user: User


# ── Database session ────────────────────────────────────────────────
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_directory(db: AsyncSession = Depends(get_db)) -> UserDirectory:
    return SqlUserDirectory(db)


# ── Startup components ──────────────────────────────────────────────
def get_security_config(request: Request) -> SecurityConfig:
    return request.app.state.security_config


def get_vault(request: Request) -> PasswordVault:
    return request.app.state.vault


def get_issuer(request: Request) -> CredentialIssuer:
    return request.app.state.issuer


def get_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.verifier


def get_account_service(
    directory: UserDirectory = Depends(get_directory),
    vault: PasswordVault = Depends(get_vault),
    issuer: CredentialIssuer = Depends(get_issuer),
    config: SecurityConfig = Depends(get_security_config),
) -> AccountService:
    return AccountService(directory, vault, issuer, config)


# ── Access gate ─────────────────────────────────────────────────────
def extract_bearer_token(authorization: str | None) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` value."""
    if authorization is None or not authorization.strip():
        raise CredentialRejected(RejectionKind.MISSING)
    scheme, token = get_authorization_scheme_param(authorization.strip())
    if scheme.lower() != BEARER_SCHEME or token.split() != [token]:
        raise CredentialRejected(RejectionKind.MALFORMED)
    return token


class AccessGate:
    """Require a valid credential bound to an existing, active account.

    Every rejection surfaces as the same ``CredentialRejected`` 401; the
    kind is only logged.  With ``optional=True`` a request that presents
    no credential at all passes through as ``None``; one that presents a
    bad credential is still rejected.
    """

    def __init__(self, optional: bool = False) -> None:
        self.optional = optional

    async def __call__(
        self,
        request: Request,
        _token: str | None = Depends(oauth2_scheme),
        verifier: CredentialVerifier = Depends(get_verifier),
        directory: UserDirectory = Depends(get_directory),
    ) -> RequestContext | None:
        authorization = request.headers.get("Authorization")
        if self.optional and not (authorization or "").strip():
            return None
        try:
            user_id = verifier.verify(extract_bearer_token(authorization))
            user = await directory.find_by_id(user_id)
            if user is None:
                raise CredentialRejected(RejectionKind.UNKNOWN_ACCOUNT)
            if user.status != ACTIVE:
                raise CredentialRejected(RejectionKind.INACTIVE_ACCOUNT)
        except CredentialRejected as exc:
            logger.info(
                "Credential rejected (%s) for %s %s",
                exc.rejection.value,
                request.method,
                request.url.path,
            )
            raise
        return RequestContext(user_id=user_id, user=user)


require_auth = AccessGate()
optional_auth = AccessGate(optional=True)


async def get_current_user(context: RequestContext = Depends(require_auth)) -> User:
    return context.user


async def get_optional_user(context: RequestContext | None = Depends(optional_auth)) -> User | None:
    return context.user if context else None


def require_role(*roles: Role):
    """Allow the request only when the caller's role is one of ``roles``."""
    allowed = {role.value for role in roles}

    async def _guard(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.info("User %s (%s) denied: requires %s", current_user.id, current_user.role, sorted(allowed))
            raise ForbiddenError("Insufficient privileges")
        return current_user

    return _guard
