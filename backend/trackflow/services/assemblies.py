"""Assembly service: fan-out creation, updates, status changes, deletion.

Fan-out:
  - quantity <= 1 → one plain assembly, barcoded
  - quantity  = N → one parent (is_parent, original_quantity = N, not
    barcoded) plus N children "{name}-1" .. "{name}-N", each quantity 1,
    each barcoded

Parent and children are inserted in the caller's transaction, so a fan-out
either lands completely or not at all; `(parent_id, child_number)` is
unique. Barcode binding runs per assembly inside a SAVEPOINT: a failure is
logged, reported in `FanOutResult.barcode_failures`, and does not undo
the assemblies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from trackflow.middleware.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationFailedError,
)
from trackflow.models.assembly import (
    ASSEMBLY_STATUSES,
    PROPAGATED_FIELDS,
    Assembly,
    AssemblyStatus,
    AssemblyStatusLog,
)
from trackflow.models.barcode import Barcode, BarcodeKind
from trackflow.models.client import Client
from trackflow.models.drawing import Drawing, DrawingKind
from trackflow.models.logistics_batch import BatchAssembly, LogisticsBatch
from trackflow.models.project import Project
from trackflow.models.qc_image import QcImage
from trackflow.models.user import User, UserRole, WorkerType
from trackflow.schemas.assembly import AssemblyCreate, AssemblyUpdate
from trackflow.services import barcodes
from trackflow.services.batch_weight import recompute_total_weight
from trackflow.utils.storage import LocalObjectStore, get_store

logger = logging.getLogger(__name__)

# Statuses each shop-floor specialisation may set from the mobile app
WORKER_STATUS_PERMISSIONS: dict[str, list[str]] = {
    WorkerType.ENGINEER.value: ASSEMBLY_STATUSES,
    WorkerType.WELDER.value: ["Waiting", "In Production", "Welding"],
    WorkerType.ASSEMBLER.value: ["Waiting", "In Production"],
    WorkerType.PAINTER.value: ["Welding", "Painting", "Completed"],
    WorkerType.LOGISTICS.value: ["Completed"],
}

# Copied verbatim from the creation request onto every child
_DESCRIPTIVE_FIELDS = PROPAGATED_FIELDS


@dataclass
class FanOutResult:
    assembly: Assembly
    children: list[Assembly] = field(default_factory=list)
    barcode: str | None = None
    barcode_failures: list[dict] = field(default_factory=list)


@dataclass
class StatusChange:
    assembly: Assembly
    previous_status: str | None
    new_status: str
    children_updated: int = 0
    log_failures: int = 0


# ── Lookups ─────────────────────────────────────────────────

async def get_assembly(db: AsyncSession, assembly_id: str) -> Assembly:
    assembly = await db.get(Assembly, assembly_id)
    if not assembly:
        raise NotFoundError("Assembly")
    return assembly


async def get_children(db: AsyncSession, parent_id: str) -> list[Assembly]:
    result = await db.execute(
        select(Assembly)
        .where(Assembly.parent_id == parent_id)
        .order_by(Assembly.child_number)
    )
    return list(result.scalars().all())


async def barcode_map(db: AsyncSession, assembly_ids: list[str]) -> dict[str, str]:
    if not assembly_ids:
        return {}
    result = await db.execute(
        select(Barcode.assembly_id, Barcode.barcode).where(
            Barcode.assembly_id.in_(assembly_ids)
        )
    )
    return {aid: token for aid, token in result.all()}


async def list_assemblies(
    db: AsyncSession,
    *,
    project_id: str | None = None,
    status: str | None = None,
    top_level: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Assembly], int]:
    base = select(Assembly)
    if project_id:
        base = base.where(Assembly.project_id == project_id)
    if status:
        base = base.where(Assembly.status == status)
    if top_level:
        base = base.where(Assembly.parent_id.is_(None))

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0
    items = (
        await db.execute(
            base.order_by(Assembly.created_at.desc(), Assembly.child_number)
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()
    return list(items), total


# ── Fan-out creation ────────────────────────────────────────

async def _try_bind_barcode(
    db: AsyncSession, assembly_id: str, user_id: str | None,
) -> tuple[str | None, str | None]:
    """Bind a fresh barcode; returns (token, error message)."""
    try:
        async with db.begin_nested():
            result = await barcodes.bind(
                db, BarcodeKind.ASSEMBLY, assembly_id, created_by=user_id,
            )
        return result.barcode.barcode, None
    except Exception as exc:
        logger.warning(
            "Barcode generation failed for assembly %s: %s", assembly_id, exc,
        )
        return None, str(exc) or exc.__class__.__name__


async def create_assembly(
    db: AsyncSession,
    body: AssemblyCreate,
    user_id: str | None = None,
) -> FanOutResult:
    """Create an assembly, fanning out into children when quantity > 1."""
    project = await db.get(Project, body.project_id)
    if not project:
        raise NotFoundError("Project")

    descriptive = {f: getattr(body, f) for f in _DESCRIPTIVE_FIELDS}

    # ── Single assembly ───────────────────────────────────────
    if body.quantity <= 1:
        assembly = Assembly(
            project_id=body.project_id,
            name=body.name,
            quantity=1,
            original_quantity=1,
            is_parent=False,
            **descriptive,
        )
        db.add(assembly)
        await db.flush()

        result = FanOutResult(assembly=assembly)
        token, error = await _try_bind_barcode(db, assembly.id, user_id)
        result.barcode = token
        if error:
            result.barcode_failures.append(
                {"assembly_id": assembly.id, "name": assembly.name, "error": error}
            )
        logger.info("Created assembly %s (%s)", assembly.name, assembly.id)
        return result

    # ── Parent + N children ───────────────────────────────────
    parent = Assembly(
        project_id=body.project_id,
        name=body.name,
        quantity=body.quantity,
        original_quantity=body.quantity,
        is_parent=True,
        **descriptive,
    )
    db.add(parent)
    await db.flush()  # populate parent.id

    children = [
        Assembly(
            project_id=body.project_id,
            name=f"{body.name}-{n}",
            quantity=1,
            original_quantity=1,
            is_parent=False,
            parent_id=parent.id,
            child_number=n,
            **descriptive,
        )
        for n in range(1, body.quantity + 1)
    ]
    db.add_all(children)
    await db.flush()

    result = FanOutResult(assembly=parent, children=children)
    for child in children:
        child_id, child_name = child.id, child.name
        token, error = await _try_bind_barcode(db, child_id, user_id)
        if error:
            result.barcode_failures.append(
                {"assembly_id": child_id, "name": child_name, "error": error}
            )

    logger.info(
        "Created parent assembly %s with %d children (%d barcode failures)",
        parent.name, len(children), len(result.barcode_failures),
    )
    return result


# ── Status ──────────────────────────────────────────────────

async def _record_status_log(
    db: AsyncSession,
    assembly_id: str,
    previous_status: str | None,
    new_status: str,
    user_id: str | None,
    device_info: dict | None,
) -> bool:
    """Append a status log row; failures are logged, never raised."""
    try:
        async with db.begin_nested():
            db.add(AssemblyStatusLog(
                assembly_id=assembly_id,
                previous_status=previous_status,
                new_status=new_status,
                updated_by=user_id,
                device_info=device_info,
            ))
    except Exception:
        logger.warning(
            "Status log for assembly %s could not be written", assembly_id, exc_info=True,
        )
        return False
    return True


def check_worker_may_set(user: User, status: str) -> None:
    """Shop-floor workers may only move assemblies into their own stages."""
    if user.role in (UserRole.ADMIN, UserRole.MANAGER):
        return
    allowed = WORKER_STATUS_PERMISSIONS.get(user.worker_type or "", [])
    if status not in allowed:
        raise ForbiddenError(
            f"Worker type '{user.worker_type or 'none'}' cannot set status '{status}'"
        )


async def change_status(
    db: AsyncSession,
    assembly: Assembly,
    new_status: str,
    *,
    user_id: str | None = None,
    device_info: dict | None = None,
) -> StatusChange:
    """Set an assembly's status, log it, and cascade to children of a parent."""
    if new_status not in ASSEMBLY_STATUSES:
        raise ValidationFailedError(
            f"Invalid status. Must be one of: {', '.join(ASSEMBLY_STATUSES)}"
        )

    change = StatusChange(
        assembly=assembly,
        previous_status=assembly.status,
        new_status=new_status,
    )
    targets = [assembly]
    if assembly.is_parent:
        targets += await get_children(db, assembly.id)

    for target in targets:
        previous = target.status
        target_id = target.id
        target.status = new_status
        if target is not assembly:
            change.children_updated += 1
        await db.flush()
        if not await _record_status_log(db, target_id, previous, new_status, user_id, device_info):
            change.log_failures += 1

    return change


async def get_status_history(db: AsyncSession, assembly_id: str) -> list[dict]:
    await get_assembly(db, assembly_id)
    rows = (
        await db.execute(
            select(AssemblyStatusLog, User.full_name)
            .outerjoin(User, User.id == AssemblyStatusLog.updated_by)
            .where(AssemblyStatusLog.assembly_id == assembly_id)
            .order_by(AssemblyStatusLog.created_at.desc())
        )
    ).all()
    return [
        {
            "id": log.id,
            "assembly_id": log.assembly_id,
            "previous_status": log.previous_status,
            "new_status": log.new_status,
            "updated_by": log.updated_by,
            "updated_by_name": full_name or "Unknown User",
            "device_info": log.device_info,
            "created_at": log.created_at,
        }
        for log, full_name in rows
    ]


# ── Update ──────────────────────────────────────────────────

async def _batches_holding(db: AsyncSession, assembly_ids: list[str]) -> list[LogisticsBatch]:
    """Distinct batches with a membership row for any of `assembly_ids`."""
    result = await db.execute(
        select(LogisticsBatch)
        .join(BatchAssembly, BatchAssembly.batch_id == LogisticsBatch.id)
        .where(BatchAssembly.assembly_id.in_(assembly_ids))
        .distinct()
    )
    return list(result.scalars().all())


def _ensure_batches_unlocked(batches: list[LogisticsBatch]) -> None:
    """Weights in a delivered or cancelled batch are frozen."""
    locked = [b for b in batches if b.is_locked]
    if locked:
        raise ConflictError(
            f"Assembly is part of batch {locked[0].batch_number} "
            f"with status: {locked[0].status}"
        )


async def update_assembly(
    db: AsyncSession,
    assembly_id: str,
    body: AssemblyUpdate,
    user_id: str | None = None,
) -> tuple[Assembly, int]:
    """Apply a partial update; a parent pushes PROPAGATED_FIELDS to its children.

    Returns (assembly, children_updated).
    """
    assembly = await get_assembly(db, assembly_id)
    changes = body.model_dump(exclude_unset=True)

    batches = []
    if "weight" in changes and changes["weight"] != assembly.weight:
        ids = [assembly.id]
        if assembly.is_parent:
            ids += [c.id for c in await get_children(db, assembly.id)]
        batches = await _batches_holding(db, ids)
        _ensure_batches_unlocked(batches)

    new_status = changes.pop("status", None)
    for key, value in changes.items():
        setattr(assembly, key, value)

    if new_status is not None and new_status != assembly.status:
        # change_status also cascades the status to children
        await change_status(
            db, assembly, new_status,
            user_id=user_id, device_info={"source": "web", "operation": "assembly_update"},
        )

    children_updated = 0
    if assembly.is_parent:
        for child in await get_children(db, assembly.id):
            for key in PROPAGATED_FIELDS:
                setattr(child, key, getattr(assembly, key))
            children_updated += 1

    await db.flush()
    for batch in batches:
        await recompute_total_weight(db, batch)
    return assembly, children_updated


async def update_qc(
    db: AsyncSession,
    assembly_id: str,
    qc_status: str | None,
    notes: str | None,
) -> tuple[Assembly, int]:
    """Set QC status/notes on an assembly (and children of a parent)."""
    assembly = await get_assembly(db, assembly_id)
    targets = [assembly]
    if assembly.is_parent:
        targets += await get_children(db, assembly.id)
    for target in targets:
        if qc_status is not None:
            target.quality_control_status = qc_status
        if notes is not None:
            target.quality_control_notes = notes
    await db.flush()
    return assembly, len(targets) - 1


# ── Delete ──────────────────────────────────────────────────

async def delete_assembly(
    db: AsyncSession,
    assembly_id: str,
    store: LocalObjectStore | None = None,
) -> tuple[list[str], list[str]]:
    """Delete an assembly; a parent takes its children with it.

    Barcodes, status logs, QC images, drawings and batch memberships of
    every deleted row go too, and affected batches get their weight
    re-derived. Assemblies shipped in a locked batch cannot be deleted.

    Returns (deleted assembly ids, recomputed batch ids).
    """
    assembly = await get_assembly(db, assembly_id)
    ids = [assembly.id]
    if assembly.is_parent:
        ids += [c.id for c in await get_children(db, assembly.id)]

    batches = await _batches_holding(db, ids)
    _ensure_batches_unlocked(batches)

    image_paths = (
        await db.execute(select(QcImage.image_path).where(QcImage.assembly_id.in_(ids)))
    ).scalars().all()
    drawing_paths = (
        await db.execute(
            select(Drawing.file_path).where(
                Drawing.kind == DrawingKind.ASSEMBLY.value,
                Drawing.entity_id.in_(ids),
            )
        )
    ).scalars().all()

    await db.execute(delete(BatchAssembly).where(BatchAssembly.assembly_id.in_(ids)))
    await db.execute(delete(Barcode).where(Barcode.assembly_id.in_(ids)))
    await db.execute(delete(AssemblyStatusLog).where(AssemblyStatusLog.assembly_id.in_(ids)))
    await db.execute(delete(QcImage).where(QcImage.assembly_id.in_(ids)))
    await db.execute(
        delete(Drawing).where(
            Drawing.kind == DrawingKind.ASSEMBLY.value,
            Drawing.entity_id.in_(ids),
        )
    )
    # Children first (self-referencing FK)
    await db.execute(delete(Assembly).where(Assembly.parent_id == assembly.id))
    await db.execute(delete(Assembly).where(Assembly.id == assembly.id))

    for batch in batches:
        await recompute_total_weight(db, batch)

    store = store or get_store()
    for path in [*image_paths, *drawing_paths]:
        try:
            await run_in_threadpool(store.delete, path)
        except (OSError, ValueError):
            logger.warning("Could not remove stored object %s", path, exc_info=True)

    logger.info("Deleted assemblies %s", ids)
    return ids, [b.id for b in batches]


# ── Scan lookup ─────────────────────────────────────────────

async def describe_for_scan(db: AsyncSession, assembly: Assembly) -> dict:
    """Assembly details with project/client context, as shown after a scan."""
    project = await db.get(Project, assembly.project_id)
    client = await db.get(Client, project.client_id) if project and project.client_id else None
    token = (await barcode_map(db, [assembly.id])).get(assembly.id)

    return {
        "id": assembly.id,
        "name": assembly.name,
        "project_id": assembly.project_id,
        "project_name": project.name if project else "Unknown Project",
        "project_number": project.internal_number if project else "",
        "client": client.name if client else "Unknown Client",
        "weight": assembly.weight or 0.0,
        "quantity": assembly.quantity or 1,
        "status": assembly.status or AssemblyStatus.WAITING.value,
        "painting_spec": assembly.painting_spec,
        "dimensions": {
            "width": assembly.width,
            "height": assembly.height,
            "length": assembly.length,
        },
        "barcode": token,
        "is_child": assembly.parent_id is not None,
        "child_number": assembly.child_number,
        "quality_control_status": assembly.quality_control_status,
    }
