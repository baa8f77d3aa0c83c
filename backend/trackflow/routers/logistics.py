"""Logistics batch router (web dashboard).

Endpoints:
    POST   /api/logistics/batches                         Create batch (+ BATCH- barcode)
    GET    /api/logistics/batches                         List (filters, paginated)
    GET    /api/logistics/batches/{id}                    Detail with assembly_count
    PATCH  /api/logistics/batches/{id}                    Update
    DELETE /api/logistics/batches/{id}                    Delete with memberships
    GET    /api/logistics/batches/{id}/assemblies         Member listing
    POST   /api/logistics/batches/{id}/barcode            Assign a barcode (idempotent)
    POST   /api/logistics/batches/{id}/recompute-weight   Re-derive total_weight
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_permission
from trackflow.database import get_db
from trackflow.models.logistics_batch import LogisticsBatch
from trackflow.models.user import User
from trackflow.schemas.barcode import BarcodeAssigned, BatchBarcodeRequest
from trackflow.schemas.common import DataResponse, MessageResponse, PaginatedResponse
from trackflow.schemas.logistics import (
    BatchAssembliesOut,
    BatchCreate,
    BatchCreateResult,
    BatchOut,
    BatchUpdate,
    WeightRecomputeOut,
)
from trackflow.services import barcodes, batch_ledger
from trackflow.services import logistics as logistics_service

router = APIRouter()


async def _batch_out(db: AsyncSession, batch: LogisticsBatch) -> BatchOut:
    extras = (await logistics_service.batch_extras(db, [batch.id]))[batch.id]
    out = BatchOut.model_validate(batch)
    out.barcode = extras["barcode"]
    out.assembly_count = extras["assembly_count"]
    return out


# ── CRUD ─────────────────────────────────────────────────────

@router.post("/batches", response_model=BatchCreateResult, status_code=201)
async def create_batch(
    body: BatchCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("batches.write")),
):
    """Create a logistics batch and bind its barcode.

    A failed barcode binding is reported in `barcode_error`; the batch
    is still created.
    """
    result = await logistics_service.create_batch(db, body, user.id)
    return BatchCreateResult(
        batch=await _batch_out(db, result.batch),
        barcode=result.barcode,
        barcode_error=result.barcode_error,
    )


@router.get("/batches", response_model=PaginatedResponse[BatchOut])
async def list_batches(
    status: str | None = None,
    project_id: str | None = None,
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batches.read")),
):
    items, total = await logistics_service.list_batches(
        db, status=status, project_id=project_id, limit=limit, offset=offset,
    )
    extras = await logistics_service.batch_extras(db, [b.id for b in items])

    out = []
    for batch in items:
        row = BatchOut.model_validate(batch)
        row.barcode = extras[batch.id]["barcode"]
        row.assembly_count = extras[batch.id]["assembly_count"]
        out.append(row)
    return PaginatedResponse(items=out, total=total, limit=limit, offset=offset)


@router.get("/batches/{batch_id}", response_model=BatchOut)
async def get_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batches.read")),
):
    batch = await batch_ledger.get_batch(db, batch_id)
    return await _batch_out(db, batch)


@router.patch("/batches/{batch_id}", response_model=BatchOut)
async def update_batch(
    batch_id: str,
    body: BatchUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batches.write")),
):
    batch = await logistics_service.update_batch(db, batch_id, body)
    return await _batch_out(db, batch)


@router.delete("/batches/{batch_id}", response_model=MessageResponse)
async def delete_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batches.delete")),
):
    batch = await logistics_service.delete_batch(db, batch_id)
    return MessageResponse(
        message="Batch deleted successfully",
        data={"batch_number": batch.batch_number},
    )


# ── Members / barcode / weight ───────────────────────────────

@router.get("/batches/{batch_id}/assemblies", response_model=BatchAssembliesOut)
async def list_batch_assemblies(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batches.read")),
):
    return await batch_ledger.list_batch_assemblies(db, batch_id)


@router.post("/batches/{batch_id}/barcode", response_model=DataResponse[BarcodeAssigned])
async def assign_batch_barcode(
    batch_id: str,
    response: Response,
    body: BatchBarcodeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("barcodes.write")),
):
    result = await barcodes.bind_batch_barcode(
        db, batch_id,
        token=body.custom_barcode if body else None,
        created_by=user.id,
    )
    response.status_code = 201 if result.created else 200
    return DataResponse(
        data=BarcodeAssigned(
            barcode=result.barcode.barcode,
            kind=result.barcode.kind,
            target_id=batch_id,
            created=result.created,
        ),
        message=(
            "Barcode generated and assigned to batch" if result.created
            else "Batch already has a barcode assigned"
        ),
    )


@router.post("/batches/{batch_id}/recompute-weight", response_model=WeightRecomputeOut)
async def recompute_batch_weight(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batches.write")),
):
    """Re-derive total_weight from the current members."""
    previous, total = await logistics_service.recompute_weight(db, batch_id)
    return WeightRecomputeOut(batch_id=batch_id, previous_weight=previous, total_weight=total)
