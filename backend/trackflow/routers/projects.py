"""Project management router.

Endpoints:
    GET    /api/projects/                   List projects (filter by client/status)
    GET    /api/projects/{id}               Project detail
    POST   /api/projects/                   Create project
    PATCH  /api/projects/{id}               Update project
    DELETE /api/projects/{id}               Delete project (refused while referenced)
    GET    /api/projects/{id}/drawings      List project drawings
    POST   /api/projects/{id}/drawings      Upload a project drawing
"""

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import get_current_user, require_admin_or_manager
from trackflow.database import get_db
from trackflow.middleware.exceptions import ConflictError, NotFoundError
from trackflow.models.assembly import Assembly
from trackflow.models.client import Client
from trackflow.models.drawing import DrawingKind
from trackflow.models.logistics_batch import LogisticsBatch
from trackflow.models.project import Project
from trackflow.models.user import User
from trackflow.schemas.common import MessageResponse
from trackflow.schemas.project import ProjectCreate, ProjectOut, ProjectUpdate
from trackflow.schemas.qc import DrawingOut
from trackflow.services import qc

router = APIRouter()


async def _get_project(db: AsyncSession, project_id: str) -> Project:
    project = await db.get(Project, project_id)
    if not project:
        raise NotFoundError("Project")
    return project


async def _check_unique_number(
    db: AsyncSession, internal_number: str, exclude_id: str | None = None,
) -> None:
    stmt = select(Project.id).where(Project.internal_number == internal_number)
    if exclude_id:
        stmt = stmt.where(Project.id != exclude_id)
    if (await db.execute(stmt)).scalar_one_or_none():
        raise ConflictError(f"Project number {internal_number} already exists")


# ── CRUD ─────────────────────────────────────────────────────

@router.get("/", response_model=list[ProjectOut])
async def list_projects(
    client_id: str | None = None,
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    query = select(Project)
    if client_id:
        query = query.where(Project.client_id == client_id)
    if status:
        query = query.where(Project.status == status)
    result = await db.execute(query.order_by(Project.internal_number))
    return [ProjectOut.model_validate(p) for p in result.scalars().all()]


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return ProjectOut.model_validate(await _get_project(db, project_id))


@router.post("/", response_model=ProjectOut, status_code=201)
async def create_project(
    body: ProjectCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    """Create a project; its internal number must be unique."""
    await _check_unique_number(db, body.internal_number)
    if body.client_id and not await db.get(Client, body.client_id):
        raise NotFoundError("Client")

    project = Project(**body.model_dump())
    db.add(project)
    await db.flush()
    return ProjectOut.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
    project_id: str,
    body: ProjectUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    project = await _get_project(db, project_id)
    updates = body.model_dump(exclude_unset=True)

    if updates.get("internal_number"):
        await _check_unique_number(db, updates["internal_number"], exclude_id=project.id)
    if updates.get("client_id") and not await db.get(Client, updates["client_id"]):
        raise NotFoundError("Client")

    for key, value in updates.items():
        if key in ("name", "internal_number", "status") and value is None:
            continue
        setattr(project, key, value)
    await db.flush()
    return ProjectOut.model_validate(project)


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    """Delete a project that has no assemblies or batches."""
    project = await _get_project(db, project_id)

    assemblies = (
        await db.execute(select(func.count()).where(Assembly.project_id == project.id))
    ).scalar() or 0
    batches = (
        await db.execute(select(func.count()).where(LogisticsBatch.project_id == project.id))
    ).scalar() or 0
    if assemblies or batches:
        raise ConflictError(
            f"Project has {assemblies} assembly(ies) and {batches} batch(es); delete them first"
        )

    for drawing in await qc.list_drawings(db, DrawingKind.PROJECT, project.id):
        await qc.delete_drawing(db, DrawingKind.PROJECT, drawing["id"])

    await db.delete(project)
    await db.flush()
    return MessageResponse(message="Project deleted successfully")


# ── Drawings ─────────────────────────────────────────────────

@router.get("/{project_id}/drawings", response_model=list[DrawingOut])
async def list_project_drawings(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return await qc.list_drawings(db, DrawingKind.PROJECT, project_id)


@router.post("/{project_id}/drawings", response_model=DrawingOut, status_code=201)
async def upload_project_drawing(
    project_id: str,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    return await qc.upload_drawing(
        db,
        DrawingKind.PROJECT,
        project_id,
        file_name=file.filename or "drawing",
        content_type=file.content_type,
        data=await file.read(),
        user=user,
    )
