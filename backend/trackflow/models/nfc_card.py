"""NFC card: a physical badge bound to one user account.

Workers tap their card on the phone's reader to identify themselves;
the card's UID (e.g. "73:3A:79:25") is stored verbatim in `card_id`.
A card is bound to at most one user; re-assigning moves it.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from trackflow.database import Base


class NfcCard(Base):
    __tablename__ = "nfc_cards"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    card_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    # Cleared when the owning user is deleted
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_used: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
