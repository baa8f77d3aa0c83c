"""Barcode registry: issue, bind and resolve scan tokens.

  - generate(prefix)          → fresh `PREFIX-<base36 ms>-<hex>` token
  - resolve(token)            → Barcode row (kind + target id), 404 if unbound
  - bind(kind, target_id)     → idempotent; an already-bound target gets its
                                existing barcode back (created=False)

A custom token may be supplied instead of a generated one; it must not be
bound to anything else yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.config import settings
from trackflow.middleware.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationFailedError,
)
from trackflow.models.assembly import Assembly
from trackflow.models.barcode import Barcode, BarcodeKind
from trackflow.models.logistics_batch import LogisticsBatch
from trackflow.utils.barcode_format import build_token

logger = logging.getLogger(__name__)


@dataclass
class BindResult:
    barcode: Barcode
    created: bool


def prefix_for(kind: BarcodeKind) -> str:
    if kind == BarcodeKind.BATCH:
        return settings.batch_barcode_prefix
    return settings.assembly_barcode_prefix


def generate(prefix: str) -> str:
    return build_token(prefix)


# ── Lookup ──────────────────────────────────────────────────

async def resolve(db: AsyncSession, token: str) -> Barcode:
    """Exact-match lookup of a token."""
    binding = (
        await db.execute(select(Barcode).where(Barcode.barcode == token.strip()))
    ).scalar_one_or_none()
    if not binding:
        raise NotFoundError("Barcode")
    return binding


async def get_binding(
    db: AsyncSession, kind: BarcodeKind, target_id: str,
) -> Barcode | None:
    column = Barcode.batch_id if kind == BarcodeKind.BATCH else Barcode.assembly_id
    return (
        await db.execute(select(Barcode).where(column == target_id))
    ).scalar_one_or_none()


async def resolve_assembly(db: AsyncSession, token: str) -> Assembly:
    """Resolve a scanned token to its assembly row."""
    binding = (
        await db.execute(
            select(Barcode).where(
                Barcode.barcode == token.strip(),
                Barcode.kind == BarcodeKind.ASSEMBLY.value,
            )
        )
    ).scalar_one_or_none()
    if not binding:
        raise NotFoundError("Assembly barcode")

    assembly = await db.get(Assembly, binding.assembly_id)
    if not assembly:
        raise NotFoundError("Assembly")
    return assembly


async def resolve_batch(db: AsyncSession, token: str) -> LogisticsBatch:
    """Resolve a scanned token to its logistics batch row."""
    binding = (
        await db.execute(
            select(Barcode).where(
                Barcode.barcode == token.strip(),
                Barcode.kind == BarcodeKind.BATCH.value,
            )
        )
    ).scalar_one_or_none()
    if not binding:
        raise NotFoundError("Batch barcode")

    batch = await db.get(LogisticsBatch, binding.batch_id)
    if not batch:
        raise NotFoundError("Batch")
    return batch


# ── Binding ─────────────────────────────────────────────────

async def bind(
    db: AsyncSession,
    kind: BarcodeKind,
    target_id: str,
    token: str | None = None,
    created_by: str | None = None,
) -> BindResult:
    """Bind a barcode to a target, returning the existing one if present."""
    existing = await get_binding(db, kind, target_id)
    if existing:
        return BindResult(barcode=existing, created=False)

    token = (token or "").strip() or generate(prefix_for(kind))

    taken = (
        await db.execute(select(Barcode.id).where(Barcode.barcode == token))
    ).scalar_one_or_none()
    if taken:
        raise ConflictError(f"Barcode {token} is already assigned")

    binding = Barcode(
        barcode=token,
        kind=kind.value,
        assembly_id=target_id if kind == BarcodeKind.ASSEMBLY else None,
        batch_id=target_id if kind == BarcodeKind.BATCH else None,
        created_by=created_by,
    )
    db.add(binding)
    await db.flush()
    logger.info("Bound %s barcode %s to %s", kind.value, token, target_id)
    return BindResult(barcode=binding, created=True)


async def bind_assembly_barcode(
    db: AsyncSession,
    assembly_id: str,
    token: str | None = None,
    created_by: str | None = None,
) -> BindResult:
    assembly = await db.get(Assembly, assembly_id)
    if not assembly:
        raise NotFoundError("Assembly")
    if assembly.is_parent:
        raise ValidationFailedError(
            "Parent assemblies are not barcoded; use the barcodes of their child assemblies"
        )
    return await bind(db, BarcodeKind.ASSEMBLY, assembly_id, token, created_by)


async def bind_batch_barcode(
    db: AsyncSession,
    batch_id: str,
    token: str | None = None,
    created_by: str | None = None,
) -> BindResult:
    if not await db.get(LogisticsBatch, batch_id):
        raise NotFoundError("Batch")
    return await bind(db, BarcodeKind.BATCH, batch_id, token, created_by)


async def list_assembly_barcodes(db: AsyncSession) -> list[dict]:
    rows = (
        await db.execute(
            select(Barcode, Assembly.name, Assembly.project_id)
            .outerjoin(Assembly, Assembly.id == Barcode.assembly_id)
            .where(Barcode.kind == BarcodeKind.ASSEMBLY.value)
            .order_by(Barcode.created_at.desc())
        )
    ).all()
    return [
        {
            "id": b.id,
            "barcode": b.barcode,
            "assembly_id": b.assembly_id,
            "assembly_name": name or "Unknown Assembly",
            "project_id": project_id,
            "created_at": b.created_at,
        }
        for b, name, project_id in rows
    ]
