"""Pydantic schemas for QC images, QC notes and drawings."""

from datetime import datetime

from pydantic import BaseModel, Field

from trackflow.schemas.common import CAMEL_CONFIG


class QcNotesRequest(BaseModel):
    """Web PUT /api/assemblies/{id}/qc body."""
    qc_status: str | None = Field(None, max_length=50)
    notes: str | None = None

    model_config = CAMEL_CONFIG


class MobileQcNotesRequest(QcNotesRequest):
    user_id: str | None = None
    card_id: str | None = None


class MobileUserRequest(BaseModel):
    user_id: str | None = None

    model_config = CAMEL_CONFIG


class CreatedByInfo(BaseModel):
    id: str | None = None
    name: str = "Unknown User"


class QcImageOut(BaseModel):
    id: str
    assembly_id: str
    image_path: str
    image_url: str
    file_name: str
    file_size: int
    content_type: str | None = None
    qc_status: str | None = None
    notes: str | None = None
    created_at: datetime
    created_by_info: CreatedByInfo


class QcUpdateOut(BaseModel):
    assembly_id: str
    quality_control_status: str | None = None
    quality_control_notes: str | None = None
    children_updated: int = 0


class DrawingOut(BaseModel):
    id: str
    kind: str
    entity_id: str
    file_name: str
    file_path: str
    file_url: str
    file_size: int
    content_type: str | None = None
    uploaded_by: str | None = None
    uploaded_at: datetime
