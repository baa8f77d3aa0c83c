"""Pydantic schemas for user management."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from trackflow.models.user import UserRole, WorkerType


class UserCreate(BaseModel):
    """Payload for POST /api/users. A temporary password is generated if omitted."""
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    password: str | None = Field(None, min_length=8, max_length=128)
    role: UserRole = UserRole.WORKER
    worker_type: WorkerType | None = None


class UserUpdate(BaseModel):
    full_name: str | None = Field(None, min_length=1, max_length=255)
    role: UserRole | None = None
    worker_type: WorkerType | None = None
    is_active: bool | None = None


class PasswordReset(BaseModel):
    password: str | None = Field(None, min_length=8, max_length=128)


class UserOut(BaseModel):
    id: str
    email: str
    full_name: str
    role: UserRole
    worker_type: str | None = None
    is_active: bool
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserCreateResult(BaseModel):
    user: UserOut
    temporaryPassword: str | None = None


class PasswordResetResult(BaseModel):
    message: str
    temporaryPassword: str | None = None
