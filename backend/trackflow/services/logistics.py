"""Logistics batch administration (web dashboard side).

Creating a batch allocates a batch number (`B<base36 ms>` unless given)
and binds a BATCH- barcode right away; a failed binding is reported in
the result instead of failing the creation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.middleware.exceptions import ConflictError, NotFoundError
from trackflow.models.barcode import Barcode, BarcodeKind
from trackflow.models.client import Client
from trackflow.models.logistics_batch import BatchAssembly, BatchStatus, LogisticsBatch
from trackflow.models.project import Project
from trackflow.schemas.logistics import BatchCreate, BatchUpdate
from trackflow.services import barcodes
from trackflow.services.batch_ledger import get_batch
from trackflow.services.batch_weight import member_count, recompute_total_weight
from trackflow.utils.barcode_format import to_base36

logger = logging.getLogger(__name__)


@dataclass
class BatchCreateResult:
    batch: LogisticsBatch
    barcode: str | None = None
    barcode_error: str | None = None


async def _generate_batch_number(db: AsyncSession) -> str:
    """B + base36 millisecond timestamp, bumped until unused."""
    stamp = int(time.time() * 1000)
    while True:
        candidate = f"B{to_base36(stamp)}"
        taken = (
            await db.execute(
                select(LogisticsBatch.id).where(LogisticsBatch.batch_number == candidate)
            )
        ).scalar_one_or_none()
        if not taken:
            return candidate
        stamp += 1


async def _check_references(
    db: AsyncSession, project_id: str | None, client_id: str | None,
) -> None:
    if project_id and not await db.get(Project, project_id):
        raise NotFoundError("Project")
    if client_id and not await db.get(Client, client_id):
        raise NotFoundError("Client")


async def create_batch(
    db: AsyncSession,
    body: BatchCreate,
    user_id: str | None = None,
) -> BatchCreateResult:
    await _check_references(db, body.project_id, body.client_id)

    batch_number = body.batch_number or await _generate_batch_number(db)
    if body.batch_number:
        taken = (
            await db.execute(
                select(LogisticsBatch.id).where(LogisticsBatch.batch_number == batch_number)
            )
        ).scalar_one_or_none()
        if taken:
            raise ConflictError(f"Batch number {batch_number} already exists")

    # Fall back to the project's client when none is given
    client_id = body.client_id
    if client_id is None:
        project = await db.get(Project, body.project_id)
        client_id = project.client_id if project else None

    batch = LogisticsBatch(
        batch_number=batch_number,
        client_id=client_id,
        project_id=body.project_id,
        delivery_address=body.delivery_address,
        total_weight=0.0,
        status=body.status or BatchStatus.PENDING.value,
        shipment_date=body.shipment_date,
        estimated_arrival=body.estimated_arrival,
        actual_arrival=body.actual_arrival,
        notes=body.notes,
        created_by=user_id,
    )
    db.add(batch)
    await db.flush()

    result = BatchCreateResult(batch=batch)
    batch_id = batch.id
    try:
        async with db.begin_nested():
            bound = await barcodes.bind(
                db, BarcodeKind.BATCH, batch_id, token=body.custom_barcode, created_by=user_id,
            )
        result.barcode = bound.barcode.barcode
    except Exception as exc:
        result.barcode_error = getattr(exc, "message", None) or str(exc)
        logger.warning("Barcode generation failed for batch %s: %s", batch_number, exc)

    logger.info("Created logistics batch %s", batch_number)
    return result


async def list_batches(
    db: AsyncSession,
    *,
    status: str | None = None,
    project_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[LogisticsBatch], int]:
    base = select(LogisticsBatch)
    if status:
        base = base.where(LogisticsBatch.status == status)
    if project_id:
        base = base.where(LogisticsBatch.project_id == project_id)

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0
    items = (
        await db.execute(
            base.order_by(LogisticsBatch.created_at.desc()).limit(limit).offset(offset)
        )
    ).scalars().all()
    return list(items), total


async def batch_extras(db: AsyncSession, batch_ids: list[str]) -> dict[str, dict]:
    """Barcode and member count per batch, for list/detail responses."""
    if not batch_ids:
        return {}
    extras = {bid: {"barcode": None, "assembly_count": 0} for bid in batch_ids}

    tokens = await db.execute(
        select(Barcode.batch_id, Barcode.barcode).where(Barcode.batch_id.in_(batch_ids))
    )
    for bid, token in tokens.all():
        extras[bid]["barcode"] = token

    counts = await db.execute(
        select(BatchAssembly.batch_id, func.count(BatchAssembly.id))
        .where(BatchAssembly.batch_id.in_(batch_ids))
        .group_by(BatchAssembly.batch_id)
    )
    for bid, count in counts.all():
        extras[bid]["assembly_count"] = count
    return extras


async def update_batch(
    db: AsyncSession,
    batch_id: str,
    body: BatchUpdate,
) -> LogisticsBatch:
    batch = await get_batch(db, batch_id, lock=True)
    changes = body.model_dump(exclude_unset=True)

    moving = {
        k for k in ("project_id", "client_id")
        if k in changes and changes[k] != getattr(batch, k)
    }
    if moving and await member_count(db, batch.id):
        raise ConflictError(
            f"Cannot change {', '.join(sorted(moving))} of a batch that already has assemblies"
        )
    await _check_references(db, changes.get("project_id"), changes.get("client_id"))

    if "status" in changes and changes["status"] is None:
        changes.pop("status")
    for key, value in changes.items():
        setattr(batch, key, value)

    await db.flush()
    return batch


async def delete_batch(db: AsyncSession, batch_id: str) -> LogisticsBatch:
    batch = await get_batch(db, batch_id, lock=True)
    await db.execute(delete(BatchAssembly).where(BatchAssembly.batch_id == batch.id))
    await db.execute(delete(Barcode).where(Barcode.batch_id == batch.id))
    await db.delete(batch)
    await db.flush()
    logger.info("Deleted logistics batch %s", batch.batch_number)
    return batch


async def recompute_weight(db: AsyncSession, batch_id: str) -> tuple[float, float]:
    """Re-derive one batch's total weight; returns (previous, current)."""
    batch = await get_batch(db, batch_id, lock=True)
    previous = batch.total_weight or 0.0
    return previous, await recompute_total_weight(db, batch)
