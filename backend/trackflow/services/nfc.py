"""NFC card binding and validation."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.middleware.exceptions import NotFoundError, ValidationFailedError
from trackflow.models.nfc_card import NfcCard
from trackflow.models.user import User

logger = logging.getLogger(__name__)


async def validate_card(db: AsyncSession, card_id: str) -> tuple[NfcCard, User]:
    """Resolve a tapped card to its active owner and touch last_used."""
    card = (
        await db.execute(
            select(NfcCard).where(
                NfcCard.card_id == card_id,
                NfcCard.is_active == True,  # noqa: E712
            )
        )
    ).scalar_one_or_none()
    if not card:
        raise NotFoundError("NFC card", "NFC card not found or inactive")

    user = await db.get(User, card.user_id) if card.user_id else None
    if not user or not user.is_active:
        raise NotFoundError("User", "User profile not found or inactive")

    card.last_used = datetime.utcnow()
    await db.flush()
    logger.info("NFC card %s validated for user %s", card.id, user.id)
    return card, user


def card_identity(card: NfcCard, user: User) -> dict:
    return {
        "user_id": user.id,
        "profile_id": user.id,
        "full_name": user.full_name,
        "role": user.role.value,
        "worker_type": user.worker_type or "",
        "card_id": card.card_id,
    }


async def list_cards(db: AsyncSession) -> list[dict]:
    rows = (
        await db.execute(
            select(NfcCard, User.full_name)
            .outerjoin(User, User.id == NfcCard.user_id)
            .order_by(NfcCard.created_at.desc())
        )
    ).all()
    return [
        {
            "id": card.id,
            "card_id": card.card_id,
            "user_id": card.user_id,
            "user_name": name or "Unknown User",
            "is_active": card.is_active,
            "last_used": card.last_used,
            "created_at": card.created_at,
        }
        for card, name in rows
    ]


async def assign_card(db: AsyncSession, card_id: str, user_id: str) -> tuple[NfcCard, bool]:
    """Bind a card UID to a user; returns (card, created)."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User")
    if not user.is_active:
        raise ValidationFailedError("Cannot assign an NFC card to an inactive user")

    card = (
        await db.execute(select(NfcCard).where(NfcCard.card_id == card_id))
    ).scalar_one_or_none()
    if card:
        card.user_id = user_id
        card.is_active = True
        await db.flush()
        logger.info("NFC card %s reassigned to user %s", card_id, user_id)
        return card, False

    card = NfcCard(card_id=card_id, user_id=user_id, is_active=True)
    db.add(card)
    await db.flush()
    logger.info("NFC card %s assigned to user %s", card_id, user_id)
    return card, True


async def deactivate_card(db: AsyncSession, card_pk: str) -> NfcCard:
    card = await db.get(NfcCard, card_pk)
    if not card:
        raise NotFoundError("NFC card")
    card.is_active = False
    await db.flush()
    return card
