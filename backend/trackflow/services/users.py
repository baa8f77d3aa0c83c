"""User account management.

Accounts created (or reset) without an explicit password get a random
temporary password, returned exactly once to the caller. Password
resets, deactivation and deletion end the user's outstanding sessions.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.password import generate_temporary_password, hash_password
from trackflow.auth.revocation import TokenRevocation
from trackflow.middleware.exceptions import ConflictError, NotFoundError, ValidationFailedError
from trackflow.models.nfc_card import NfcCard
from trackflow.models.user import User
from trackflow.schemas.user import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User")
    return user


async def list_users(db: AsyncSession, include_inactive: bool = True) -> list[User]:
    stmt = select(User).order_by(User.full_name)
    if not include_inactive:
        stmt = stmt.where(User.is_active == True)  # noqa: E712
    return list((await db.execute(stmt)).scalars().all())


async def create_user(
    db: AsyncSession,
    body: UserCreate,
    created_by: str | None = None,
) -> tuple[User, str | None]:
    """Create an account; returns (user, temporary password or None)."""
    email = body.email.lower()
    exists = (
        await db.execute(select(User.id).where(User.email == email))
    ).scalar_one_or_none()
    if exists:
        raise ConflictError("A user with this email already exists")

    temporary = None
    password = body.password
    if not password:
        temporary = password = generate_temporary_password()

    user = User(
        email=email,
        full_name=body.full_name,
        hashed_password=hash_password(password),
        role=body.role,
        worker_type=body.worker_type.value if body.worker_type else None,
        is_active=True,
        created_by=created_by,
    )
    db.add(user)
    await db.flush()
    logger.info("Created user %s (%s)", user.email, user.role.value)
    return user, temporary


async def update_user(
    db: AsyncSession,
    user_id: str,
    body: UserUpdate,
    actor: User,
) -> User:
    user = await get_user(db, user_id)
    changes = body.model_dump(exclude_unset=True)

    if user.id == actor.id and changes.get("is_active") is False:
        raise ValidationFailedError("You cannot deactivate your own account")

    if "worker_type" in changes and changes["worker_type"] is not None:
        changes["worker_type"] = changes["worker_type"].value
    for key, value in changes.items():
        if key == "role" and value is None:
            continue
        setattr(user, key, value)
    await db.flush()

    if changes.get("is_active") is False:
        await TokenRevocation.revoke_all_user_tokens(user.id)
    return user


async def delete_user(db: AsyncSession, user_id: str, actor: User) -> None:
    user = await get_user(db, user_id)
    if user.id == actor.id:
        raise ValidationFailedError("You cannot delete your own account")

    await db.execute(
        update(NfcCard)
        .where(NfcCard.user_id == user.id)
        .values(is_active=False, user_id=None)
    )
    await db.delete(user)
    await db.flush()
    await TokenRevocation.revoke_all_user_tokens(user_id)
    logger.info("Deleted user %s", user_id)


async def reset_password(
    db: AsyncSession,
    user_id: str,
    password: str | None = None,
) -> str | None:
    """Set a new password; returns the generated one when none was given."""
    user = await get_user(db, user_id)
    temporary = None
    if not password:
        temporary = password = generate_temporary_password()
    user.hashed_password = hash_password(password)
    await db.flush()
    await TokenRevocation.revoke_all_user_tokens(user.id)
    logger.info("Password reset for user %s", user.id)
    return temporary
