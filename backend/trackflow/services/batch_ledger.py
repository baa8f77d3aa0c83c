"""Batch membership ledger: which assemblies ship in which logistics batch.

Adding an assembly (mobile scan) runs these steps in ONE transaction:

    lock batch row (FOR UPDATE) → check batch not Delivered/Cancelled
    → resolve assembly barcode → check same project → check not a member
    → insert membership → force assembly status to Completed (+ status log)
    → re-derive batch.total_weight → operation log

The membership insert and the weight recompute are the primary effect and
commit or roll back together. The status update and the operation log
are secondary: each runs in its own SAVEPOINT, and a failure there is
logged with its step label and returned in `AddResult.failed_step`, which
the router turns into HTTP 207.

Removal locks the batch the same way, deletes the membership row and
re-derives the weight. The assembly keeps its Completed status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.middleware.exceptions import (
    NotFoundError,
    ServerError,
    ValidationFailedError,
)
from trackflow.models.assembly import Assembly, AssemblyStatus, AssemblyStatusLog
from trackflow.models.client import Client
from trackflow.models.logistics_batch import BatchAssembly, LogisticsBatch
from trackflow.models.project import Project
from trackflow.models.user import User
from trackflow.services import barcodes
from trackflow.services.batch_weight import member_count, recompute_total_weight
from trackflow.utils.operations import log_operation

logger = logging.getLogger(__name__)

STEP_ADD = "adding_assembly_to_batch"
STEP_STATUS = "updating_assembly_status"
STEP_WEIGHT = "recalculating_total_weight"
STEP_LOG = "logging_operation"

COMPLETED = AssemblyStatus.COMPLETED.value


@dataclass
class AddResult:
    membership_id: str
    assembly_id: str
    assembly_name: str
    batch_id: str
    status: str = COMPLETED
    already_added: bool = False
    total_weight: float | None = None
    failed_step: str | None = None
    step_error: str | None = None

    @property
    def partial_success(self) -> bool:
        return self.failed_step is not None

    @property
    def warning(self) -> str | None:
        if not self.failed_step:
            return None
        return (
            f"Operation partially successful. "
            f"Step '{self.failed_step}' failed: {self.step_error}"
        )


@dataclass
class RemoveResult:
    membership_id: str
    batch_id: str
    assembly_id: str
    assemblies_remaining: int
    total_weight: float


# ── Batch lookups ───────────────────────────────────────────

async def get_batch(db: AsyncSession, batch_id: str, lock: bool = False) -> LogisticsBatch:
    stmt = select(LogisticsBatch).where(LogisticsBatch.id == batch_id)
    if lock:
        # Serialises concurrent membership changes on the same batch
        stmt = stmt.with_for_update()
    batch = (await db.execute(stmt)).scalar_one_or_none()
    if not batch:
        raise NotFoundError("Batch")
    return batch


def ensure_unlocked(batch: LogisticsBatch, action: str = "add") -> None:
    if batch.is_locked:
        verb = "add assemblies to" if action == "add" else "remove assemblies from"
        raise ValidationFailedError(f"Cannot {verb} a batch with status: {batch.status}")


async def batch_summary(db: AsyncSession, batch: LogisticsBatch) -> dict:
    """Batch header as shown on the scanner, with display defaults."""
    client = await db.get(Client, batch.client_id) if batch.client_id else None
    project = await db.get(Project, batch.project_id) if batch.project_id else None

    return {
        "id": batch.id,
        "batch_id": batch.id,
        "batch_number": batch.batch_number,
        "status": batch.status,
        "client": client.name if client else "Unknown Client",
        "project": (
            f"{project.internal_number} - {project.name}" if project else "Unknown Project"
        ),
        "project_id": batch.project_id or "",
        "delivery_address": batch.delivery_address,
        "total_weight": batch.total_weight or 0.0,
        "assembly_count": await member_count(db, batch.id),
    }


async def validate_batch_barcode(db: AsyncSession, token: str) -> dict:
    """Resolve a scanned batch barcode and check the batch accepts assemblies."""
    batch = await barcodes.resolve_batch(db, token)
    ensure_unlocked(batch, "add")
    return await batch_summary(db, batch)


# ── Add ─────────────────────────────────────────────────────

async def _force_completed_status(
    db: AsyncSession,
    assembly: Assembly,
    user_id: str | None,
    device_info: dict | None,
) -> None:
    if assembly.status == COMPLETED:
        return
    async with db.begin_nested():
        db.add(AssemblyStatusLog(
            assembly_id=assembly.id,
            previous_status=assembly.status,
            new_status=COMPLETED,
            updated_by=user_id,
            device_info=device_info,
        ))
        assembly.status = COMPLETED


async def add_assembly(
    db: AsyncSession,
    batch_id: str,
    assembly_barcode: str,
    user: User,
    card_id: str | None = None,
    device_info: dict | None = None,
) -> AddResult:
    """Link the assembly behind `assembly_barcode` into a batch."""
    batch = await get_batch(db, batch_id, lock=True)
    ensure_unlocked(batch, "add")

    assembly = await barcodes.resolve_assembly(db, assembly_barcode)
    if assembly.project_id != batch.project_id:
        raise ValidationFailedError(
            "Assembly belongs to a different project than the batch"
        )

    # Captured up front: a rolled-back savepoint expires the instance
    assembly_id, assembly_name = assembly.id, assembly.name

    existing = (
        await db.execute(
            select(BatchAssembly).where(
                BatchAssembly.batch_id == batch.id,
                BatchAssembly.assembly_id == assembly_id,
            )
        )
    ).scalar_one_or_none()
    if existing:
        logger.info("Assembly %s already in batch %s", assembly_id, batch.batch_number)
        return AddResult(
            membership_id=existing.id,
            assembly_id=assembly_id,
            assembly_name=assembly_name,
            batch_id=batch.id,
            already_added=True,
            total_weight=batch.total_weight,
        )

    # ── Primary effect: membership row ───────────────────────
    membership = BatchAssembly(
        batch_id=batch.id,
        assembly_id=assembly_id,
        added_by=user.id,
        assembly_status=COMPLETED,
    )
    db.add(membership)
    await db.flush()

    result = AddResult(
        membership_id=membership.id,
        assembly_id=assembly_id,
        assembly_name=assembly_name,
        batch_id=batch.id,
    )

    # ── Secondary effect: status → Completed ─────────────────
    status_device_info = device_info or {
        "source": "mobile",
        "operation": "logistics_scan",
        "nfc_card": card_id,
    }
    try:
        await _force_completed_status(db, assembly, user.id, status_device_info)
    except Exception as exc:
        result.failed_step = STEP_STATUS
        result.step_error = str(exc) or exc.__class__.__name__
        logger.warning(
            "Step '%s' failed adding assembly %s to batch %s: %s",
            STEP_STATUS, assembly_id, batch.batch_number, result.step_error,
        )

    # ── Primary effect: derived weight ───────────────────────
    try:
        result.total_weight = await recompute_total_weight(db, batch)
    except SQLAlchemyError as exc:
        logger.error(
            "Step '%s' failed for batch %s; rolling back membership",
            STEP_WEIGHT, batch_id, exc_info=True,
        )
        raise ServerError(
            f"Step '{STEP_WEIGHT}' failed: assembly was not added to the batch"
        ) from exc

    # ── Secondary effect: audit trail ────────────────────────
    logged = await log_operation(
        db,
        "assembly_add_step_failure" if result.partial_success
        else "assembly_added_to_batch_success",
        user_id=user.id,
        device_info=device_info,
        request_details={
            "batchId": batch.id,
            "assemblyId": assembly_id,
            "assemblyBarcode": assembly_barcode,
            "failedStep": result.failed_step,
        },
        status_code=207 if result.partial_success else 201,
    )
    if not logged and not result.partial_success:
        result.failed_step = STEP_LOG
        result.step_error = "operation log entry could not be written"

    logger.info(
        "Assembly %s added to batch %s (total_weight=%s)",
        assembly_name, batch.batch_number, result.total_weight,
    )
    return result


# ── Remove ──────────────────────────────────────────────────

async def remove_assembly(
    db: AsyncSession,
    membership_id: str,
    user: User,
    device_info: dict | None = None,
) -> RemoveResult:
    membership = await db.get(BatchAssembly, membership_id)
    if not membership:
        raise NotFoundError("Batch assembly")

    batch = await get_batch(db, membership.batch_id, lock=True)
    ensure_unlocked(batch, "remove")

    assembly_id = membership.assembly_id
    await db.delete(membership)
    await db.flush()

    total = await recompute_total_weight(db, batch)
    remaining = await member_count(db, batch.id)

    await log_operation(
        db,
        "assembly_removed_from_batch",
        user_id=user.id,
        device_info=device_info,
        request_details={
            "batchId": batch.id,
            "assemblyId": assembly_id,
            "batchAssemblyId": membership_id,
        },
        status_code=200,
    )
    logger.info(
        "Assembly %s removed from batch %s (total_weight=%s)",
        assembly_id, batch.batch_number, total,
    )
    return RemoveResult(
        membership_id=membership_id,
        batch_id=batch.id,
        assembly_id=assembly_id,
        assemblies_remaining=remaining,
        total_weight=total,
    )


# ── Listing ─────────────────────────────────────────────────

async def list_batch_assemblies(db: AsyncSession, batch_id: str) -> dict:
    """Batch summary plus one snapshot per member, newest first.

    Missing assembly or user rows are tolerated and replaced by defaults.
    """
    batch = await get_batch(db, batch_id)

    memberships = (
        await db.execute(
            select(BatchAssembly)
            .where(BatchAssembly.batch_id == batch.id)
            .order_by(BatchAssembly.created_at.desc())
        )
    ).scalars().all()

    assembly_ids = [m.assembly_id for m in memberships]
    user_ids = [m.added_by for m in memberships if m.added_by]

    assemblies = {}
    if assembly_ids:
        rows = await db.execute(select(Assembly).where(Assembly.id.in_(assembly_ids)))
        assemblies = {a.id: a for a in rows.scalars().all()}
    users = {}
    if user_ids:
        rows = await db.execute(select(User.id, User.full_name).where(User.id.in_(user_ids)))
        users = {uid: name for uid, name in rows.all()}

    items = []
    for m in memberships:
        a = assemblies.get(m.assembly_id)
        items.append({
            "id": m.id,
            "assembly_id": m.assembly_id,
            "name": a.name if a else "Unknown Assembly",
            "weight": (a.weight or 0.0) if a else 0.0,
            "quantity": (a.quantity or 1) if a else 1,
            "dimensions": {
                "width": a.width if a else None,
                "height": a.height if a else None,
                "length": a.length if a else None,
            },
            "painting_spec": a.painting_spec if a else None,
            "is_child": bool(a and a.parent_id),
            "child_number": a.child_number if a else None,
            "status": m.assembly_status or COMPLETED,
            "added_at": m.created_at,
            "added_by": {
                "id": m.added_by,
                "name": users.get(m.added_by, "Unknown User"),
            },
        })

    summary = await batch_summary(db, batch)
    summary["assembly_count"] = len(items)
    return {"batch": summary, "assemblies": items}
