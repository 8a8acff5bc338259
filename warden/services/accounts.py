"""
Account use cases: registration, login, profile maintenance, password change.

The service owns the password policy and is the only writer of
``password_hash``; every hash it stores comes out of ``PasswordVault``.
"""

from __future__ import annotations

import logging

from warden.core.config import SecurityConfig
from warden.core.exceptions import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from warden.core.roles import Role
from warden.core.security import PasswordVault, secret_problem
from warden.core.tokens import CredentialIssuer
from warden.db.directory import UserDirectory
from warden.models.user import User
from warden.schemas.token import Token
from warden.schemas.user import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

ACTIVE = "active"
LOGIN_FAILED = "Incorrect username or password"
# Only an ADMIN may write these, and only an ADMIN may edit someone else.
PRIVILEGED_FIELDS = ("role", "status")


def is_admin(actor: User | None) -> bool:
    return actor is not None and actor.role == Role.ADMIN.value


class AccountService:
    def __init__(
        self,
        directory: UserDirectory,
        vault: PasswordVault,
        issuer: CredentialIssuer,
        config: SecurityConfig,
    ) -> None:
        self._directory = directory
        self._vault = vault
        self._issuer = issuer
        self._config = config

    def _check_secret(self, secret: str, field: str = "password") -> None:
        if not secret:
            raise ValidationError(f"{field} is required")
        if len(secret) < self._config.password_min_length:
            raise ValidationError(
                f"{field} must be at least {self._config.password_min_length} characters"
            )
        problem = secret_problem(secret)
        if problem:
            raise ValidationError(f"{field} {problem}")

    # ── Registration ────────────────────────────────────────────────
    async def register(self, data: UserCreate, actor: User | None = None) -> User:
        """Create an account.

        Anyone may register with the default role; any other role must be
        granted by an authenticated ADMIN ``actor``.
        """
        self._check_secret(data.password)
        role = data.role or self._config.default_role
        if role != self._config.default_role and not is_admin(actor):
            logger.info("Registration with role %s refused for non-admin caller", role.value)
            raise ForbiddenError("Only an administrator can assign roles")

        if await self._directory.find_by_username(data.username) is not None:
            raise ConflictError(f"Username '{data.username}' is already registered")

        user = User(
            username=data.username,
            display_name=data.display_name,
            password_hash=await self._vault.hash_async(data.password),
            role=role.value,
            linked_employee_ref=data.linked_employee_ref,
            status=ACTIVE,
        )
        user = await self._directory.create(user)
        logger.info("Registered user %s (%s)", user.id, user.role)
        return user

    # ── Login ───────────────────────────────────────────────────────
    async def authenticate(self, username: str, password: str) -> User:
        user = await self._directory.find_by_username(username.strip())
        if user is None or secret_problem(password):
            await self._vault.dummy_verify_async(password)
            raise AuthError(LOGIN_FAILED)

        if not await self._vault.verify_async(password, user.password_hash):
            logger.info("Failed login for user %s", user.id)
            raise AuthError(LOGIN_FAILED)

        if user.status != ACTIVE:
            logger.info("Login refused for %s user %s", user.status, user.id)
            raise AuthError(LOGIN_FAILED)

        if self._vault.needs_rehash(user.password_hash):
            user = await self._directory.set_password_hash(
                user.id, await self._vault.hash_async(password)
            )
            logger.info("Upgraded password hash cost for user %s", user.id)
        return user

    async def login(self, username: str, password: str) -> Token:
        user = await self.authenticate(username, password)
        return Token(access_token=self._issuer.issue(user.id), expires_in=self._issuer.ttl_seconds)

    # ── Profile ─────────────────────────────────────────────────────
    async def get(self, user_id: str) -> User:
        user = await self._directory.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(self) -> list[User]:
        return await self._directory.list_all()

    async def update(self, user_id: str, data: UserUpdate, actor: User) -> User:
        if actor.id != user_id and not is_admin(actor):
            logger.info("User %s denied update of %s", actor.id, user_id)
            raise ForbiddenError("Insufficient privileges")

        changes = data.model_dump(exclude_unset=True)
        if "role" in changes:
            if changes["role"] is None:
                del changes["role"]
            else:
                changes["role"] = changes["role"].value
        if changes.get("status", ACTIVE) is None:
            del changes["status"]

        if not is_admin(actor):
            current = await self.get(user_id)
            for field in PRIVILEGED_FIELDS:
                if field in changes and changes[field] != getattr(current, field):
                    logger.info("User %s denied change of %s", actor.id, field)
                    raise ForbiddenError(f"Only an administrator can change {field}")

        user = await self._directory.update(user_id, changes)
        logger.info("Updated user %s: %s", user_id, sorted(changes))
        return user

    async def delete(self, user_id: str) -> User:
        user = await self._directory.delete(user_id)
        logger.info("Deleted user %s", user_id)
        return user

    # ── Password change ─────────────────────────────────────────────
    async def change_password(self, user_id: str, current: str, new: str) -> None:
        if not current or not new:
            raise ValidationError("Current and new password are required")

        user = await self.get(user_id)
        if not await self._vault.verify_async(current, user.password_hash):
            logger.info("Password change refused for user %s: current password mismatch", user_id)
            raise AuthError("Current password does not match")

        self._check_secret(new, "new_password")
        await self._directory.set_password_hash(user_id, await self._vault.hash_async(new))
        logger.info("Password changed for user %s", user_id)
