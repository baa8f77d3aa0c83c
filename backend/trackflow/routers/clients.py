"""Client management router.

Endpoints:
    GET    /api/clients/          List clients
    GET    /api/clients/{id}      Client detail
    POST   /api/clients/          Create client
    PATCH  /api/clients/{id}      Update client
    DELETE /api/clients/{id}      Delete client (refused while referenced)
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import get_current_user, require_admin_or_manager
from trackflow.database import get_db
from trackflow.middleware.exceptions import ConflictError, NotFoundError
from trackflow.models.client import Client
from trackflow.models.logistics_batch import LogisticsBatch
from trackflow.models.project import Project
from trackflow.models.user import User
from trackflow.schemas.common import MessageResponse
from trackflow.schemas.project import ClientCreate, ClientOut, ClientUpdate

router = APIRouter()


async def _get_client(db: AsyncSession, client_id: str) -> Client:
    client = await db.get(Client, client_id)
    if not client:
        raise NotFoundError("Client")
    return client


@router.get("/", response_model=list[ClientOut])
async def list_clients(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    """List all clients by name."""
    result = await db.execute(select(Client).order_by(Client.name))
    return [ClientOut.model_validate(c) for c in result.scalars().all()]


@router.get("/{client_id}", response_model=ClientOut)
async def get_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return ClientOut.model_validate(await _get_client(db, client_id))


@router.post("/", response_model=ClientOut, status_code=201)
async def create_client(
    body: ClientCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    """Create a new client."""
    client = Client(**body.model_dump())
    db.add(client)
    await db.flush()
    return ClientOut.model_validate(client)


@router.patch("/{client_id}", response_model=ClientOut)
async def update_client(
    client_id: str,
    body: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    client = await _get_client(db, client_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(client, key, value)
    await db.flush()
    return ClientOut.model_validate(client)


@router.delete("/{client_id}", response_model=MessageResponse)
async def delete_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    """Delete a client that no project or batch refers to."""
    client = await _get_client(db, client_id)

    projects = (
        await db.execute(select(func.count()).where(Project.client_id == client.id))
    ).scalar() or 0
    batches = (
        await db.execute(select(func.count()).where(LogisticsBatch.client_id == client.id))
    ).scalar() or 0
    if projects or batches:
        raise ConflictError(
            f"Client is referenced by {projects} project(s) and {batches} batch(es)"
        )

    await db.delete(client)
    await db.flush()
    return MessageResponse(message="Client deleted successfully")
