"""Quality-control evidence and technical drawings.

Uploads go to the object store first and get a database row second; a
failed insert leaves an orphaned object, which is removed again. Deletes
run the other way round: object first, then row.
"""

from __future__ import annotations

import logging
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from trackflow.config import settings
from trackflow.middleware.exceptions import (
    ConflictError,
    NotFoundError,
    ServerError,
    ValidationFailedError,
)
from trackflow.models.assembly import Assembly
from trackflow.models.drawing import Drawing, DrawingKind
from trackflow.models.project import Project
from trackflow.models.qc_image import QcImage
from trackflow.models.user import User
from trackflow.services.assemblies import get_assembly, update_qc
from trackflow.utils.storage import LocalObjectStore, get_store, object_path, signed_url

logger = logging.getLogger(__name__)

QC_IMAGE_CATEGORY = "qc-images"
DRAWING_CATEGORIES = {
    DrawingKind.PROJECT: "project-drawings",
    DrawingKind.ASSEMBLY: "assembly-drawings",
}

# Paths differ only by timestamp; a collision moves on to the next millisecond
STORE_ATTEMPTS = 3


def _check_upload(content_type: str | None, size: int, images_only: bool) -> None:
    if size == 0:
        raise ValidationFailedError("Uploaded file is empty")
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if size > max_bytes:
        raise ValidationFailedError(
            f"File too large. Maximum size is {settings.max_upload_size_mb}MB"
        )
    if images_only and not (content_type or "").startswith("image/"):
        raise ValidationFailedError("Only image files are allowed")


async def _store_object(
    store: LocalObjectStore,
    category: str,
    entity_id: str,
    file_name: str,
    data: bytes,
) -> str:
    """Write `data` under a fresh object path and return that path."""
    timestamp_ms = int(time.time() * 1000)
    for attempt in range(STORE_ATTEMPTS):
        path = object_path(category, entity_id, file_name, timestamp_ms=timestamp_ms + attempt)
        try:
            await run_in_threadpool(store.put, path, data)
            return path
        except FileExistsError:
            logger.info("Object %s already exists, retrying", path)
        except (OSError, ValueError) as exc:
            logger.error("Object store write failed for %s", path, exc_info=True)
            raise ServerError("Failed to store uploaded file") from exc
    raise ConflictError("The same file is already being uploaded. Please try again.")


async def _discard_object(store: LocalObjectStore, path: str) -> None:
    try:
        await run_in_threadpool(store.delete, path)
    except (OSError, ValueError):
        logger.warning("Could not remove orphaned object %s", path, exc_info=True)


async def _user_names(db: AsyncSession, user_ids: set[str]) -> dict[str, str]:
    if not user_ids:
        return {}
    rows = await db.execute(select(User.id, User.full_name).where(User.id.in_(user_ids)))
    return {uid: name for uid, name in rows.all()}


# ── QC images ───────────────────────────────────────────────

def qc_image_dict(image: QcImage, names: dict[str, str]) -> dict:
    return {
        "id": image.id,
        "assembly_id": image.assembly_id,
        "image_path": image.image_path,
        "image_url": signed_url(image.image_path),
        "file_name": image.file_name,
        "file_size": image.file_size,
        "content_type": image.content_type,
        "qc_status": image.qc_status,
        "notes": image.notes,
        "created_at": image.created_at,
        "created_by_info": {
            "id": image.created_by,
            "name": names.get(image.created_by, "Unknown User"),
        },
    }


async def upload_qc_image(
    db: AsyncSession,
    assembly_id: str,
    *,
    file_name: str,
    content_type: str | None,
    data: bytes,
    qc_status: str | None,
    notes: str | None,
    user: User,
    store: LocalObjectStore | None = None,
) -> dict:
    """Store a QC photo, record it, and stamp the assembly's QC fields."""
    await get_assembly(db, assembly_id)
    _check_upload(content_type, len(data), images_only=True)

    store = store or get_store()
    path = await _store_object(store, QC_IMAGE_CATEGORY, assembly_id, file_name, data)

    try:
        image = QcImage(
            assembly_id=assembly_id,
            image_path=path,
            file_name=file_name,
            file_size=len(data),
            content_type=content_type,
            qc_status=qc_status,
            notes=notes,
            created_by=user.id,
        )
        db.add(image)
        await db.flush()
        await update_qc(db, assembly_id, qc_status, notes)
    except Exception:
        await _discard_object(store, path)
        raise

    logger.info("QC image %s uploaded for assembly %s", path, assembly_id)
    return qc_image_dict(image, {user.id: user.full_name})


async def list_qc_images(db: AsyncSession, assembly_id: str) -> list[dict]:
    await get_assembly(db, assembly_id)
    images = (
        await db.execute(
            select(QcImage)
            .where(QcImage.assembly_id == assembly_id)
            .order_by(QcImage.created_at.desc())
        )
    ).scalars().all()
    names = await _user_names(db, {i.created_by for i in images if i.created_by})
    return [qc_image_dict(i, names) for i in images]


async def delete_qc_image(
    db: AsyncSession,
    image_id: str,
    store: LocalObjectStore | None = None,
) -> QcImage:
    image = await db.get(QcImage, image_id)
    if not image:
        raise NotFoundError("QC image")

    store = store or get_store()
    try:
        await run_in_threadpool(store.delete, image.image_path)
    except (OSError, ValueError) as exc:
        logger.error("Could not remove QC image %s", image.image_path, exc_info=True)
        raise ServerError("Failed to delete image from storage") from exc

    await db.delete(image)
    await db.flush()
    return image


async def set_qc_notes(
    db: AsyncSession,
    assembly_id: str,
    qc_status: str | None,
    notes: str | None,
) -> dict:
    assembly, children_updated = await update_qc(db, assembly_id, qc_status, notes)
    return {
        "assembly_id": assembly.id,
        "quality_control_status": assembly.quality_control_status,
        "quality_control_notes": assembly.quality_control_notes,
        "children_updated": children_updated,
    }


# ── Drawings ────────────────────────────────────────────────

def drawing_dict(drawing: Drawing) -> dict:
    return {
        "id": drawing.id,
        "kind": drawing.kind,
        "entity_id": drawing.entity_id,
        "file_name": drawing.file_name,
        "file_path": drawing.file_path,
        "file_url": LocalObjectStore.public_url(drawing.file_path),
        "file_size": drawing.file_size,
        "content_type": drawing.content_type,
        "uploaded_by": drawing.uploaded_by,
        "uploaded_at": drawing.uploaded_at,
    }


async def _check_entity(db: AsyncSession, kind: DrawingKind, entity_id: str) -> None:
    model = Project if kind == DrawingKind.PROJECT else Assembly
    if not await db.get(model, entity_id):
        raise NotFoundError(kind.value.capitalize())


async def upload_drawing(
    db: AsyncSession,
    kind: DrawingKind,
    entity_id: str,
    *,
    file_name: str,
    content_type: str | None,
    data: bytes,
    user: User,
    store: LocalObjectStore | None = None,
) -> dict:
    await _check_entity(db, kind, entity_id)
    _check_upload(content_type, len(data), images_only=False)

    store = store or get_store()
    path = await _store_object(store, DRAWING_CATEGORIES[kind], entity_id, file_name, data)

    try:
        drawing = Drawing(
            kind=kind.value,
            entity_id=entity_id,
            file_name=file_name,
            file_path=path,
            file_size=len(data),
            content_type=content_type,
            uploaded_by=user.id,
        )
        db.add(drawing)
        await db.flush()
    except Exception:
        await _discard_object(store, path)
        raise
    return drawing_dict(drawing)


async def list_drawings(db: AsyncSession, kind: DrawingKind, entity_id: str) -> list[dict]:
    await _check_entity(db, kind, entity_id)
    drawings = (
        await db.execute(
            select(Drawing)
            .where(Drawing.kind == kind.value, Drawing.entity_id == entity_id)
            .order_by(Drawing.uploaded_at.desc())
        )
    ).scalars().all()
    return [drawing_dict(d) for d in drawings]


async def delete_drawing(
    db: AsyncSession,
    kind: DrawingKind,
    drawing_id: str,
    store: LocalObjectStore | None = None,
) -> None:
    drawing = (
        await db.execute(
            select(Drawing).where(Drawing.id == drawing_id, Drawing.kind == kind.value)
        )
    ).scalar_one_or_none()
    if not drawing:
        raise NotFoundError("Drawing")

    store = store or get_store()
    try:
        await run_in_threadpool(store.delete, drawing.file_path)
    except (OSError, ValueError) as exc:
        logger.error("Could not remove drawing %s", drawing.file_path, exc_info=True)
        raise ServerError("Failed to delete drawing from storage") from exc

    await db.delete(drawing)
    await db.flush()
