"""Pydantic schemas for barcode assignment and resolution."""

from datetime import datetime

from pydantic import BaseModel, Field

from trackflow.schemas.common import CAMEL_CONFIG


class AssemblyBarcodeRequest(BaseModel):
    """POST /api/assemblies/barcode."""
    assembly_id: str
    custom_barcode: str | None = Field(None, max_length=100)

    model_config = CAMEL_CONFIG


class BatchBarcodeRequest(BaseModel):
    custom_barcode: str | None = Field(None, max_length=100)

    model_config = CAMEL_CONFIG


class BarcodeAssigned(BaseModel):
    barcode: str
    kind: str
    target_id: str
    created: bool

    model_config = CAMEL_CONFIG


class BarcodeResolved(BaseModel):
    kind: str
    id: str


class AssemblyBarcodeEntry(BaseModel):
    id: str
    barcode: str
    assembly_id: str | None = None
    assembly_name: str
    project_id: str | None = None
    created_at: datetime
