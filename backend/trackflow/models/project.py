"""Project: a customer order that assemblies are manufactured for.

Lifecycle:  Planning → In Production → Completed  (or Cancelled)
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from trackflow.database import Base


class ProjectStatus(str, enum.Enum):
    PLANNING = "Planning"
    IN_PRODUCTION = "In Production"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    internal_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Customer ─────────────────────────────────────────────
    client_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("clients.id"), index=True
    )
    client_representative: Mapped[str | None] = mapped_column(String(255))

    # ── Schedule ─────────────────────────────────────────────
    project_start: Mapped[date | None] = mapped_column(Date)
    project_end: Mapped[date | None] = mapped_column(Date)
    delivery_date: Mapped[date | None] = mapped_column(Date)
    delivery_location: Mapped[str | None] = mapped_column(String(500))

    status: Mapped[str] = mapped_column(
        String(30), default=ProjectStatus.PLANNING.value, index=True
    )
    responsible_manager: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
