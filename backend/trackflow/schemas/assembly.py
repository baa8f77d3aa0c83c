"""Pydantic schemas for assemblies, their status history and barcode lookup."""

from datetime import date, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from trackflow.models.assembly import ASSEMBLY_STATUSES
from trackflow.schemas.common import CAMEL_CONFIG, Dimensions


def _check_status(value: str | None) -> str | None:
    if value is not None and value not in ASSEMBLY_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(ASSEMBLY_STATUSES)}")
    return value


StatusField = Annotated[str, AfterValidator(_check_status)]
OptionalStatusField = Annotated[str | None, AfterValidator(_check_status)]


# ── Create / update ───────────────────────────────────────────

class AssemblyCreate(BaseModel):
    """Payload for POST /api/assemblies."""
    project_id: str
    name: str = Field(..., min_length=1, max_length=255)
    weight: float = Field(0.0, ge=0)
    quantity: int = Field(1, ge=1, le=1000)
    width: float | None = Field(None, ge=0)
    height: float | None = Field(None, ge=0)
    length: float | None = Field(None, ge=0)
    painting_spec: str | None = None
    status: StatusField = "Waiting"
    start_date: date | None = None
    end_date: date | None = None
    quality_control_status: str | None = None
    quality_control_notes: str | None = None


class AssemblyBulkCreate(BaseModel):
    assemblies: list[AssemblyCreate] = Field(..., min_length=1, max_length=500)


class AssemblyUpdate(BaseModel):
    """Payload for PATCH /api/assemblies/{id}. Only sent fields change."""
    name: str | None = Field(None, min_length=1, max_length=255)
    weight: float | None = Field(None, ge=0)
    width: float | None = Field(None, ge=0)
    height: float | None = Field(None, ge=0)
    length: float | None = Field(None, ge=0)
    painting_spec: str | None = None
    status: OptionalStatusField = None
    start_date: date | None = None
    end_date: date | None = None
    quality_control_status: str | None = None
    quality_control_notes: str | None = None


# ── Responses ─────────────────────────────────────────────────

class AssemblyOut(BaseModel):
    id: str
    project_id: str
    name: str
    weight: float
    quantity: int
    width: float | None = None
    height: float | None = None
    length: float | None = None
    painting_spec: str | None = None
    status: str
    start_date: date | None = None
    end_date: date | None = None
    quality_control_status: str | None = None
    quality_control_notes: str | None = None
    parent_id: str | None = None
    is_parent: bool
    original_quantity: int
    child_number: int | None = None
    barcode: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BarcodeFailure(BaseModel):
    assembly_id: str
    name: str
    error: str


class AssemblyCreateResult(BaseModel):
    assembly: AssemblyOut
    children_created: int
    barcode: str | None = None
    barcode_failures: list[BarcodeFailure] = []


class AssemblyBulkCreateResult(BaseModel):
    items: list[AssemblyCreateResult]
    total_created: int


class AssemblyDeleteResult(BaseModel):
    message: str
    deleted_ids: list[str]
    batches_recomputed: list[str]


# ── Status ────────────────────────────────────────────────────

class StatusUpdateRequest(BaseModel):
    """POST /api/assemblies/status (web)."""
    assembly_id: str
    status: StatusField
    device_info: dict | None = None

    model_config = CAMEL_CONFIG


class MobileStatusUpdateRequest(StatusUpdateRequest):
    """POST /api/mobile/assemblies/status."""
    user_id: str | None = None
    card_id: str | None = None


class StatusChangeOut(BaseModel):
    id: str
    name: str
    previous_status: str | None = None
    status: str
    children_updated: int = 0

    model_config = CAMEL_CONFIG


class StatusHistoryEntry(BaseModel):
    id: str
    assembly_id: str
    previous_status: str | None = None
    new_status: str
    updated_by: str | None = None
    updated_by_name: str
    device_info: dict | None = None
    created_at: datetime


# ── Scan lookup (camelCase, consumed by the mobile app) ──────

class AssemblyScanInfo(BaseModel):
    id: str
    name: str
    project_id: str
    project_name: str
    project_number: str
    client: str
    weight: float
    quantity: int
    status: str
    painting_spec: str | None = None
    dimensions: Dimensions
    barcode: str | None = None
    is_child: bool = False
    child_number: int | None = None
    quality_control_status: str | None = None

    model_config = CAMEL_CONFIG
