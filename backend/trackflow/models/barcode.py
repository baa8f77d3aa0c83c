"""Barcode: an opaque scan token bound to exactly one assembly or batch.

Tokens look like `ASM-LX2K9QZ1-9F3A1C0B` / `BATCH-LX2K9R0A-0D14E2F7`
(prefix, base36 millisecond timestamp, hex random suffix). A target has
at most one barcode, and a token is never re-bound to another target.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from trackflow.database import Base


class BarcodeKind(str, enum.Enum):
    ASSEMBLY = "assembly"
    BATCH = "batch"


class Barcode(Base):
    __tablename__ = "barcodes"
    __table_args__ = (
        CheckConstraint(
            "(assembly_id IS NULL) <> (batch_id IS NULL)",
            name="ck_barcodes_single_target",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    barcode: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    # Exactly one of these is set
    assembly_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("assemblies.id"), unique=True
    )
    batch_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("logistics_batches.id"), unique=True
    )

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def target_id(self) -> str:
        return self.assembly_id or self.batch_id
