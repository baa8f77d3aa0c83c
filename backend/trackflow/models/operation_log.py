import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from trackflow.database import Base


class MobileOperationLog(Base):
    """Audit trail of operations performed from the mobile app."""
    __tablename__ = "mobile_operations_log"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # e.g. "assembly_added_to_batch_success", "assembly_add_step_failure"
    operation_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), index=True)
    device_info: Mapped[dict | None] = mapped_column(JSON)
    request_details: Mapped[dict | None] = mapped_column(JSON)
    status_code: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
