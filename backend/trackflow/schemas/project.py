"""Pydantic schemas for clients and projects."""

from datetime import date, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from trackflow.models.project import ProjectStatus

PROJECT_STATUSES = [s.value for s in ProjectStatus]


def _check_project_status(value: str | None) -> str | None:
    if value is not None and value not in PROJECT_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(PROJECT_STATUSES)}")
    return value


ProjectStatusField = Annotated[str | None, AfterValidator(_check_project_status)]


# ── Clients ──────────────────────────────────────────────────

class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


class ClientUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


class ClientOut(BaseModel):
    id: str
    name: str
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Projects ─────────────────────────────────────────────────

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    internal_number: str = Field(..., min_length=1, max_length=50)
    client_id: str | None = None
    client_representative: str | None = None
    project_start: date | None = None
    project_end: date | None = None
    delivery_date: date | None = None
    delivery_location: str | None = None
    status: ProjectStatusField = ProjectStatus.PLANNING.value
    responsible_manager: str | None = None
    notes: str | None = None


class ProjectUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    internal_number: str | None = Field(None, min_length=1, max_length=50)
    client_id: str | None = None
    client_representative: str | None = None
    project_start: date | None = None
    project_end: date | None = None
    delivery_date: date | None = None
    delivery_location: str | None = None
    status: ProjectStatusField = None
    responsible_manager: str | None = None
    notes: str | None = None


class ProjectOut(BaseModel):
    id: str
    name: str
    internal_number: str
    client_id: str | None = None
    client_representative: str | None = None
    project_start: date | None = None
    project_end: date | None = None
    delivery_date: date | None = None
    delivery_location: str | None = None
    status: str
    responsible_manager: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
