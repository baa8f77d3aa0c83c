"""Mobile operation audit trail.

Endpoints:
    GET /api/operations/    List operation log rows (filters, paginated)
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_permission
from trackflow.database import get_db
from trackflow.models.operation_log import MobileOperationLog
from trackflow.models.user import User
from trackflow.schemas.common import PaginatedResponse
from trackflow.schemas.operations import OperationLogOut

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[OperationLogOut])
async def list_operations(
    user_id: str | None = None,
    operation_type: str | None = None,
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("operations.read")),
):
    base = select(MobileOperationLog)
    if user_id:
        base = base.where(MobileOperationLog.user_id == user_id)
    if operation_type:
        base = base.where(MobileOperationLog.operation_type == operation_type)

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0
    rows = (
        await db.execute(
            base.order_by(MobileOperationLog.created_at.desc()).limit(limit).offset(offset)
        )
    ).scalars().all()

    return PaginatedResponse(
        items=[OperationLogOut.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )
