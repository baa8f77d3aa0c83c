"""Authentication for the mobile (shop-floor) API.

The mobile app has no bearer token. A worker identifies by tapping an
NFC card, which yields a `cardId`. POST /api/nfc/validate turns the card
into a `userId`. After that:

  - read-only mobile calls send `userId` and are checked against an
    active user account;
  - state-changing calls send both `userId` and `cardId`, and the card
    must be active and bound to that user.
"""

from datetime import datetime

from fastapi import Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.database import get_db
from trackflow.middleware.exceptions import UnauthorizedError
from trackflow.models.nfc_card import NfcCard
from trackflow.models.user import User


async def authenticate_mobile_user(db: AsyncSession, user_id: str | None) -> User:
    """Return the active user for `user_id` or raise 401."""
    if not user_id:
        raise UnauthorizedError("User ID is required")

    user = (
        await db.execute(select(User).where(User.id == user_id))
    ).scalar_one_or_none()
    if not user or not user.is_active:
        raise UnauthorizedError("Invalid or inactive user")
    return user


async def verify_nfc_card(db: AsyncSession, user: User, card_id: str | None) -> NfcCard:
    """Check that `card_id` is an active card bound to `user`; touch last_used."""
    if not card_id:
        raise UnauthorizedError("NFC card ID is required")

    card = (
        await db.execute(
            select(NfcCard).where(
                NfcCard.card_id == card_id,
                NfcCard.user_id == user.id,
                NfcCard.is_active == True,  # noqa: E712
            )
        )
    ).scalar_one_or_none()
    if not card:
        raise UnauthorizedError("Invalid or inactive NFC card for this user")

    card.last_used = datetime.utcnow()
    return card


async def authenticate_card_holder(
    db: AsyncSession,
    user_id: str | None,
    card_id: str | None,
) -> tuple[User, NfcCard]:
    user = await authenticate_mobile_user(db, user_id)
    card = await verify_nfc_card(db, user, card_id)
    return user, card


async def get_mobile_user(
    user_id: str | None = Query(None, alias="userId"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency for GET-style mobile routes that pass `?userId=`."""
    return await authenticate_mobile_user(db, user_id)
