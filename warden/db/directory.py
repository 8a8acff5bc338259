"""
User directory — the record store consumed by the account service.

``UserDirectory`` is the contract; ``SqlUserDirectory`` implements it on an
async SQLAlchemy session.  Username uniqueness is enforced by the unique
index, so a racing duplicate insert surfaces as ``ConflictError`` instead
of overwriting the existing row.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from warden.core.exceptions import ConflictError, InfrastructureError, NotFoundError, ValidationError
from warden.models.user import User

logger = logging.getLogger(__name__)

# password_hash is deliberately absent: see set_password_hash
UPDATABLE_FIELDS = frozenset({"username", "display_name", "role", "linked_employee_ref", "status"})


class UserDirectory(ABC):
    @abstractmethod
    async def find_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def find_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def list_all(self) -> list[User]: ...

    @abstractmethod
    async def create(self, user: User) -> User: ...

    @abstractmethod
    async def update(self, user_id: str, changes: Mapping[str, Any]) -> User: ...

    @abstractmethod
    async def set_password_hash(self, user_id: str, password_hash: str) -> User: ...

    @abstractmethod
    async def delete(self, user_id: str) -> User: ...


class SqlUserDirectory(UserDirectory):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_username(self, username: str) -> User | None:
        try:
            result = await self._session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise InfrastructureError("User lookup failed") from exc

    async def find_by_id(self, user_id: str) -> User | None:
        try:
            return await self._session.get(User, user_id)
        except SQLAlchemyError as exc:
            raise InfrastructureError("User lookup failed") from exc

    async def list_all(self) -> list[User]:
        try:
            result = await self._session.execute(select(User).order_by(User.created_at))
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise InfrastructureError("User listing failed") from exc

    async def create(self, user: User) -> User:
        self._session.add(user)
        await self._commit(f"Username '{user.username}' is already registered")
        await self._session.refresh(user)
        return user

    async def update(self, user_id: str, changes: Mapping[str, Any]) -> User:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        user = await self._require(user_id)
        for field, value in changes.items():
            setattr(user, field, value)
        await self._commit(f"Username '{changes.get('username')}' is already registered")
        await self._session.refresh(user)
        return user

    async def set_password_hash(self, user_id: str, password_hash: str) -> User:
        user = await self._require(user_id)
        user.password_hash = password_hash
        await self._commit("Password update conflicted")
        await self._session.refresh(user)
        return user

    async def delete(self, user_id: str) -> User:
        user = await self._require(user_id)
        try:
            await self._session.delete(user)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise InfrastructureError("User deletion failed") from exc
        return user

    # ── Helpers ─────────────────────────────────────────────────────
    async def _require(self, user_id: str) -> User:
        user = await self.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def _commit(self, conflict_message: str) -> None:
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.info("Uniqueness violation: %s", conflict_message)
            raise ConflictError(conflict_message) from exc
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise InfrastructureError("User store write failed") from exc
