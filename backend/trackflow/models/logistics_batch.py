"""Logistics batch: a shipment grouping of assemblies.

`total_weight` is derived: it always equals the sum of
weight × quantity over the batch's current members and is rewritten
in the same transaction as every membership change.

Delivered and Cancelled batches are locked: members can no longer be
added or removed.

Lifecycle:  Pending → In Transit → Delivered  (or Cancelled)
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from trackflow.database import Base


class BatchStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


BATCH_STATUSES = [s.value for s in BatchStatus]
LOCKED_BATCH_STATUSES = {BatchStatus.DELIVERED.value, BatchStatus.CANCELLED.value}


class LogisticsBatch(Base):
    __tablename__ = "logistics_batches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Destination ──────────────────────────────────────────
    client_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("clients.id"), index=True
    )
    project_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("projects.id"), index=True
    )
    delivery_address: Mapped[str | None] = mapped_column(Text)

    # ── Aggregate ────────────────────────────────────────────
    total_weight: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Shipping ─────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), default=BatchStatus.PENDING.value, index=True
    )
    shipment_date: Mapped[date | None] = mapped_column(Date)
    estimated_arrival: Mapped[date | None] = mapped_column(Date)
    actual_arrival: Mapped[date | None] = mapped_column(Date)

    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_BATCH_STATUSES


class BatchAssembly(Base):
    """Membership row linking one assembly into one batch."""
    __tablename__ = "logistics_batch_assemblies"
    __table_args__ = (
        UniqueConstraint("batch_id", "assembly_id", name="uq_batch_assembly"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("logistics_batches.id"), nullable=False, index=True
    )
    assembly_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assemblies.id"), nullable=False, index=True
    )
    added_by: Mapped[str | None] = mapped_column(String(36))
    assembly_status: Mapped[str] = mapped_column(String(30), default="Completed")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
