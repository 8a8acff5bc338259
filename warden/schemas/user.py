"""Pydantic schemas for User CRUD and password change."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from warden.core.roles import Role


def _required_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


def _optional_text(v: str | None) -> str | None:
    if v is None:
        return None
    return v.strip() or None


class UserCreate(BaseModel):
    username: str
    display_name: str
    password: str
    role: Role | None = None
    linked_employee_ref: str | None = None

    @field_validator("username", "display_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("linked_employee_ref")
    @classmethod
    def _strip_ref(cls, v: str | None) -> str | None:
        return _optional_text(v)


class UserUpdate(BaseModel):
    username: str
    display_name: str
    role: Role | None = None
    linked_employee_ref: str | None = None
    status: str | None = None

    @field_validator("username", "display_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("linked_employee_ref")
    @classmethod
    def _strip_ref(cls, v: str | None) -> str | None:
        return _optional_text(v)

    @field_validator("status")
    @classmethod
    def _strip_status(cls, v: str | None) -> str | None:
        return _optional_text(v)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class UserRead(BaseModel):
    id: str
    username: str
    display_name: str
    role: str
    linked_employee_ref: str | None
    status: str
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    id: str
