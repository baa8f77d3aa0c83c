"""Assembly: a manufactured unit tracked through production.

An order for N identical units (quantity > 1) is stored as one parent
row (`is_parent = True`, `original_quantity = N`) plus N child rows,
each with `quantity = 1` and a distinct `child_number` in 1..N.
Children never have children of their own.

Only non-parent rows carry barcodes and are scanned on the shop floor.

Lifecycle:  Waiting → In Production → Welding → Painting → Completed
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey,
    Integer, JSON, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from trackflow.database import Base


class AssemblyStatus(str, enum.Enum):
    WAITING = "Waiting"
    IN_PRODUCTION = "In Production"
    WELDING = "Welding"
    PAINTING = "Painting"
    COMPLETED = "Completed"


ASSEMBLY_STATUSES = [s.value for s in AssemblyStatus]

# Fields copied from a parent to its children whenever the parent changes.
PROPAGATED_FIELDS = (
    "weight",
    "width",
    "height",
    "length",
    "painting_spec",
    "status",
    "start_date",
    "end_date",
    "quality_control_status",
    "quality_control_notes",
)


class Assembly(Base):
    __tablename__ = "assemblies"
    __table_args__ = (
        UniqueConstraint("parent_id", "child_number", name="uq_assemblies_parent_child"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Physical ─────────────────────────────────────────────
    weight: Mapped[float] = mapped_column(Float, default=0.0)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    width: Mapped[float | None] = mapped_column(Float)
    height: Mapped[float | None] = mapped_column(Float)
    length: Mapped[float | None] = mapped_column(Float)
    painting_spec: Mapped[str | None] = mapped_column(String(255))

    # ── Production ───────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), default=AssemblyStatus.WAITING.value, index=True
    )
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)

    # ── Quality ──────────────────────────────────────────────
    quality_control_status: Mapped[str | None] = mapped_column(String(50))
    quality_control_notes: Mapped[str | None] = mapped_column(Text)

    # ── Parent / child fan-out ───────────────────────────────
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("assemblies.id"), index=True
    )
    is_parent: Mapped[bool] = mapped_column(Boolean, default=False)
    original_quantity: Mapped[int] = mapped_column(Integer, default=1)
    child_number: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class AssemblyStatusLog(Base):
    """Append-only record of every assembly status change."""
    __tablename__ = "assembly_status_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    assembly_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assemblies.id"), nullable=False, index=True
    )
    previous_status: Mapped[str | None] = mapped_column(String(30))
    new_status: Mapped[str] = mapped_column(String(30), nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(36))
    # e.g. {"source": "mobile", "operation": "logistics_scan", "nfc_card": "..."}
    device_info: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
