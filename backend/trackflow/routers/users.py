"""User management router (admin / manager only).

Endpoints:
    GET    /api/users/                        List users
    GET    /api/users/{id}                    User detail
    POST   /api/users/                        Create user (temporary password if none given)
    PUT    /api/users/{id}                    Update user
    DELETE /api/users/{id}                    Delete user
    POST   /api/users/{id}/reset-password     Reset password
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_admin_or_manager
from trackflow.database import get_db
from trackflow.models.user import User
from trackflow.schemas.common import MessageResponse
from trackflow.schemas.user import (
    PasswordReset,
    PasswordResetResult,
    UserCreate,
    UserCreateResult,
    UserOut,
    UserUpdate,
)
from trackflow.services import users as user_service

router = APIRouter()


@router.get("/", response_model=list[UserOut])
async def list_users(
    include_inactive: bool = True,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    users = await user_service.list_users(db, include_inactive=include_inactive)
    return [UserOut.model_validate(u) for u in users]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    return UserOut.model_validate(await user_service.get_user(db, user_id))


@router.post("/", response_model=UserCreateResult, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    actor: User = Depends(require_admin_or_manager),
):
    """Create a user.

    Without a password a temporary one is generated and returned once as
    `temporaryPassword`.
    """
    user, temporary = await user_service.create_user(db, body, created_by=actor.id)
    return UserCreateResult(user=UserOut.model_validate(user), temporaryPassword=temporary)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    actor: User = Depends(require_admin_or_manager),
):
    user = await user_service.update_user(db, user_id, body, actor)
    return UserOut.model_validate(user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    actor: User = Depends(require_admin_or_manager),
):
    """Delete a user; their NFC cards are deactivated and sessions revoked."""
    await user_service.delete_user(db, user_id, actor)
    return MessageResponse(message="User deleted successfully")


@router.post("/{user_id}/reset-password", response_model=PasswordResetResult)
async def reset_password(
    user_id: str,
    body: PasswordReset | None = None,
    db: AsyncSession = Depends(get_db),
    _actor: User = Depends(require_admin_or_manager),
):
    temporary = await user_service.reset_password(
        db, user_id, body.password if body else None,
    )
    return PasswordResetResult(
        message="Password reset successfully",
        temporaryPassword=temporary,
    )
