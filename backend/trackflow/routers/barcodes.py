"""Barcode resolution router.

Endpoints:
    GET /api/barcodes/{token}/resolve    Which assembly or batch a token is bound to
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_permission
from trackflow.database import get_db
from trackflow.models.user import User
from trackflow.schemas.barcode import BarcodeResolved
from trackflow.services import barcodes

router = APIRouter()


@router.get("/{token}/resolve", response_model=BarcodeResolved)
async def resolve_barcode(
    token: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("barcodes.read")),
):
    binding = await barcodes.resolve(db, token)
    return BarcodeResolved(kind=binding.kind, id=binding.target_id)
