"""NFC card router.

Endpoints:
    POST /api/nfc/validate                 Card tap → user identity (public, rate limited)
    GET  /api/nfc/cards                    List cards
    POST /api/nfc/cards                    Assign a card to a user (upsert)
    PUT  /api/nfc/cards/{id}/deactivate    Deactivate a card
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_admin_or_manager
from trackflow.database import get_db
from trackflow.models.user import User
from trackflow.schemas.common import DataResponse
from trackflow.schemas.nfc import NfcCardAssign, NfcCardOut, NfcUserOut, NfcValidateRequest
from trackflow.services import nfc as nfc_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/validate", response_model=DataResponse[NfcUserOut])
async def validate_card(
    body: NfcValidateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Resolve a tapped NFC card to the worker it belongs to."""
    card, user = await nfc_service.validate_card(db, body.card_id)
    logger.info("NFC card %s validated for user %s", card.card_id, user.id)
    return DataResponse(
        data=NfcUserOut(**nfc_service.card_identity(card, user)),
        message="NFC card validated successfully",
    )


@router.get("/cards", response_model=list[NfcCardOut])
async def list_cards(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    return await nfc_service.list_cards(db)


@router.post("/cards", response_model=NfcCardOut)
async def assign_card(
    body: NfcCardAssign,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    """Bind a card to a user. 201 for a new card, 200 when reassigned."""
    card, created = await nfc_service.assign_card(db, body.card_id, body.user_id)
    response.status_code = 201 if created else 200
    return NfcCardOut.model_validate(card)


@router.put("/cards/{card_pk}/deactivate", response_model=NfcCardOut)
async def deactivate_card(
    card_pk: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    card = await nfc_service.deactivate_card(db, card_pk)
    return NfcCardOut.model_validate(card)
