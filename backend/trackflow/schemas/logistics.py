"""Pydantic schemas for logistics batches and mobile batch scanning."""

from datetime import date, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from trackflow.models.logistics_batch import BATCH_STATUSES
from trackflow.schemas.common import CAMEL_CONFIG, Dimensions


def _check_batch_status(value: str | None) -> str | None:
    if value is not None and value not in BATCH_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(BATCH_STATUSES)}")
    return value


BatchStatusField = Annotated[str | None, AfterValidator(_check_batch_status)]


# ── Web CRUD ──────────────────────────────────────────────────

class BatchCreate(BaseModel):
    """Payload for POST /api/logistics/batches."""
    project_id: str
    client_id: str | None = None
    batch_number: str | None = Field(None, max_length=50)
    delivery_address: str | None = None
    status: BatchStatusField = "Pending"
    shipment_date: date | None = None
    estimated_arrival: date | None = None
    actual_arrival: date | None = None
    notes: str | None = None
    custom_barcode: str | None = Field(None, max_length=100)


class BatchUpdate(BaseModel):
    project_id: str | None = None
    client_id: str | None = None
    delivery_address: str | None = None
    status: BatchStatusField = None
    shipment_date: date | None = None
    estimated_arrival: date | None = None
    actual_arrival: date | None = None
    notes: str | None = None


class BatchOut(BaseModel):
    id: str
    batch_number: str
    client_id: str | None = None
    project_id: str | None = None
    delivery_address: str | None = None
    total_weight: float
    status: str
    shipment_date: date | None = None
    estimated_arrival: date | None = None
    actual_arrival: date | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    barcode: str | None = None
    assembly_count: int = 0

    model_config = {"from_attributes": True}


class BatchCreateResult(BaseModel):
    batch: BatchOut
    barcode: str | None = None
    barcode_error: str | None = None


class WeightRecomputeOut(BaseModel):
    batch_id: str
    previous_weight: float
    total_weight: float


# ── Mobile scanning ───────────────────────────────────────────

class BatchValidateRequest(BaseModel):
    barcode: str = Field(..., min_length=1)
    user_id: str | None = None
    device_info: dict | None = None

    model_config = CAMEL_CONFIG


class AddAssemblyRequest(BaseModel):
    batch_id: str
    assembly_barcode: str = Field(..., min_length=1)
    user_id: str | None = None
    card_id: str | None = None
    device_info: dict | None = None

    model_config = CAMEL_CONFIG


class BatchAssembliesRequest(BaseModel):
    user_id: str | None = None

    model_config = CAMEL_CONFIG


class RemoveBatchAssemblyRequest(BaseModel):
    user_id: str | None = None
    card_id: str | None = None
    device_info: dict | None = None

    model_config = CAMEL_CONFIG


class BatchSummary(BaseModel):
    id: str
    batch_id: str
    batch_number: str
    status: str
    client: str
    project: str
    project_id: str
    delivery_address: str | None = None
    total_weight: float
    assembly_count: int


class BatchAssemblyAdded(BaseModel):
    id: str
    assembly_id: str
    assembly_name: str
    batch_id: str
    status: str
    already_added: bool = False
    partial_success: bool = False
    total_weight: float | None = None


class AddedBy(BaseModel):
    id: str | None = None
    name: str


class BatchAssemblyItem(BaseModel):
    id: str
    assembly_id: str
    name: str
    weight: float
    quantity: int
    dimensions: Dimensions
    painting_spec: str | None = None
    is_child: bool
    child_number: int | None = None
    status: str
    added_at: datetime
    added_by: AddedBy


class BatchAssembliesOut(BaseModel):
    batch: BatchSummary
    assemblies: list[BatchAssemblyItem]


class BatchAssemblyRemoved(BaseModel):
    id: str
    batch_id: str
    assembly_id: str
    assemblies_remaining: int
    total_weight: float
