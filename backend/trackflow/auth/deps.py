"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user         → verify bearer JWT, load user from DB, return User
  require_permission(...)  → restrict to users whose role grants ALL listed permissions
  require_role(...)        → restrict to users holding one of the listed roles
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.jwt import decode_token
from trackflow.auth.permissions import has_permission, resolve_permissions
from trackflow.auth.revocation import TokenRevocation
from trackflow.database import get_db
from trackflow.middleware.exceptions import ForbiddenError, UnauthorizedError
from trackflow.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT, load the user, and return it."""
    if credentials is None:
        raise UnauthorizedError("Authentication required")

    token = credentials.credentials
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise UnauthorizedError("Invalid or expired token")

    # Password reset / deactivation revokes every earlier token of the user
    if await TokenRevocation.is_user_revoked(user_id, payload.get("iat")):
        raise UnauthorizedError("Session expired. Please log in again.")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or inactive")

    return user


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory: restrict to users who hold ALL listed permissions.

    Usage:
        @router.post("/")
        async def create_batch(user: User = Depends(require_permission("batches.write"))):
            ...
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        user_perms = resolve_permissions(user.role.value)
        missing = [p for p in perms if not has_permission(user_perms, p)]
        if missing:
            raise ForbiddenError(f"Missing permissions: {', '.join(missing)}")
        return user

    return _check


def require_role(*roles: UserRole):
    """Dependency factory: restrict to users holding one of `roles`."""
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError(
                f"Requires role: {', '.join(r.value for r in roles)}"
            )
        return user

    return _check


require_admin_or_manager = require_role(UserRole.ADMIN, UserRole.MANAGER)
