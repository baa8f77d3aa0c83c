"""Stored object download.

Endpoints:
    GET /api/files/{path}    Serve a QC image or drawing from the object store

Web callers send their bearer token. The mobile app has none and opens
the signed `?token=` links that QC image listings hand out.
"""

import mimetypes

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from trackflow.auth.deps import bearer_scheme, get_current_user
from trackflow.auth.jwt import decode_token
from trackflow.database import get_db
from trackflow.middleware.exceptions import NotFoundError, UnauthorizedError
from trackflow.utils.storage import LocalObjectStore, get_store

router = APIRouter()


@router.get("/{path:path}")
async def get_file(
    path: str,
    token: str | None = Query(None),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    store: LocalObjectStore = Depends(get_store),
):
    if token is not None:
        payload = decode_token(token)
        if payload.get("type") != "file" or payload.get("sub") != path:
            raise UnauthorizedError("Invalid or expired file link")
    else:
        await get_current_user(credentials, db)

    if not await run_in_threadpool(store.exists, path):
        raise NotFoundError("File")
    media_type, _ = mimetypes.guess_type(path)
    return FileResponse(store.local_path(path), media_type=media_type)
