"""Pydantic schemas for NFC card validation and administration."""

from datetime import datetime

from pydantic import BaseModel, Field

from trackflow.schemas.common import CAMEL_CONFIG


class NfcValidateRequest(BaseModel):
    card_id: str = Field(..., min_length=1, max_length=100)

    model_config = CAMEL_CONFIG


class NfcUserOut(BaseModel):
    """Identity returned to the mobile app after a card tap."""
    user_id: str
    profile_id: str
    full_name: str
    role: str
    worker_type: str
    card_id: str

    model_config = CAMEL_CONFIG


class NfcCardAssign(BaseModel):
    card_id: str = Field(..., min_length=1, max_length=100)
    user_id: str

    model_config = CAMEL_CONFIG


class NfcCardOut(BaseModel):
    id: str
    card_id: str
    user_id: str | None = None
    user_name: str = "Unknown User"
    is_active: bool
    last_used: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
