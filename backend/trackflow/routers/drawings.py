"""Drawing deletion.

Endpoints:
    DELETE /api/drawings/{kind}/{id}    Remove a project or assembly drawing
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_admin_or_manager
from trackflow.database import get_db
from trackflow.models.drawing import DrawingKind
from trackflow.models.user import User
from trackflow.schemas.common import MessageResponse
from trackflow.services import qc

router = APIRouter()


@router.delete("/{kind}/{drawing_id}", response_model=MessageResponse)
async def delete_drawing(
    kind: DrawingKind,
    drawing_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    await qc.delete_drawing(db, kind, drawing_id)
    return MessageResponse(message="Drawing deleted successfully")
