"""Assembly router (web dashboard).

Endpoints:
    POST   /api/assemblies/                       Create (fans out when quantity > 1)
    POST   /api/assemblies/bulk                   Create many in one transaction
    GET    /api/assemblies/                       List (filters, paginated)
    GET    /api/assemblies/barcodes               List assembly barcode bindings
    GET    /api/assemblies/barcode/{barcode}      Scan lookup with project/client context
    POST   /api/assemblies/barcode                Assign a barcode (idempotent)
    POST   /api/assemblies/status                 Change status (cascades to children)
    DELETE /api/assemblies/qc-images/{id}         Delete a QC image
    GET    /api/assemblies/{id}                   Detail
    PATCH  /api/assemblies/{id}                   Update (parent propagates to children)
    DELETE /api/assemblies/{id}                   Delete (parent takes its children)
    GET    /api/assemblies/{id}/children          Children by child_number
    GET    /api/assemblies/{id}/status-history    Status log, newest first
    GET    /api/assemblies/{id}/qc-images         QC images, newest first
    PUT    /api/assemblies/{id}/qc                Set QC status / notes
    GET    /api/assemblies/{id}/drawings          List drawings
    POST   /api/assemblies/{id}/drawings          Upload a drawing
"""

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.deps import require_admin_or_manager, require_permission
from trackflow.database import get_db
from trackflow.models.assembly import Assembly
from trackflow.models.drawing import DrawingKind
from trackflow.models.user import User
from trackflow.schemas.assembly import (
    AssemblyBulkCreate,
    AssemblyBulkCreateResult,
    AssemblyCreate,
    AssemblyCreateResult,
    AssemblyDeleteResult,
    AssemblyOut,
    AssemblyScanInfo,
    AssemblyUpdate,
    StatusChangeOut,
    StatusHistoryEntry,
    StatusUpdateRequest,
)
from trackflow.schemas.barcode import (
    AssemblyBarcodeEntry,
    AssemblyBarcodeRequest,
    BarcodeAssigned,
)
from trackflow.schemas.common import DataResponse, MessageResponse, PaginatedResponse
from trackflow.schemas.qc import DrawingOut, QcImageOut, QcNotesRequest, QcUpdateOut
from trackflow.services import assemblies as assembly_service
from trackflow.services import barcodes, qc
from trackflow.services.assemblies import FanOutResult

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _assembly_out(assembly: Assembly, codes: dict[str, str]) -> AssemblyOut:
    out = AssemblyOut.model_validate(assembly)
    out.barcode = codes.get(assembly.id)
    return out


def _create_result(result: FanOutResult) -> AssemblyCreateResult:
    return AssemblyCreateResult(
        assembly=_assembly_out(result.assembly, {result.assembly.id: result.barcode}),
        children_created=len(result.children),
        barcode=result.barcode,
        barcode_failures=result.barcode_failures,
    )


# ── Create ───────────────────────────────────────────────────

@router.post("/", response_model=AssemblyCreateResult, status_code=201)
async def create_assembly(
    body: AssemblyCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("assemblies.write")),
):
    """Create an assembly.

    quantity > 1 creates a parent (no barcode) and that many children,
    each with its own barcode. Barcode failures are listed in the
    response and do not undo the creation.
    """
    result = await assembly_service.create_assembly(db, body, user.id)
    return _create_result(result)


@router.post("/bulk", response_model=AssemblyBulkCreateResult, status_code=201)
async def bulk_create_assemblies(
    body: AssemblyBulkCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("assemblies.write")),
):
    """Create several assemblies; all of them or none are stored."""
    items = []
    for entry in body.assemblies:
        items.append(_create_result(
            await assembly_service.create_assembly(db, entry, user.id)
        ))
    total = sum(max(i.children_created, 1) for i in items)
    return AssemblyBulkCreateResult(items=items, total_created=total)


# ── List / barcode lookup ────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[AssemblyOut])
async def list_assemblies(
    project_id: str | None = None,
    status: str | None = None,
    top_level: bool = False,
    limit: int = Query(50, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.read")),
):
    """List assemblies. `top_level=true` hides children of parents."""
    items, total = await assembly_service.list_assemblies(
        db, project_id=project_id, status=status, top_level=top_level,
        limit=limit, offset=offset,
    )
    codes = await assembly_service.barcode_map(db, [a.id for a in items])
    return PaginatedResponse(
        items=[_assembly_out(a, codes) for a in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/barcodes", response_model=list[AssemblyBarcodeEntry])
async def list_assembly_barcodes(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("barcodes.read")),
):
    return await barcodes.list_assembly_barcodes(db)


@router.get("/barcode/{barcode}", response_model=AssemblyScanInfo)
async def get_assembly_by_barcode(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.read")),
):
    assembly = await barcodes.resolve_assembly(db, barcode)
    return await assembly_service.describe_for_scan(db, assembly)


@router.post("/barcode", response_model=DataResponse[BarcodeAssigned])
async def assign_assembly_barcode(
    body: AssemblyBarcodeRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("barcodes.write")),
):
    """Assign a barcode to an assembly.

    201 when a new binding is created, 200 with the existing token when
    the assembly already has one.
    """
    result = await barcodes.bind_assembly_barcode(
        db, body.assembly_id, token=body.custom_barcode, created_by=user.id,
    )
    response.status_code = 201 if result.created else 200
    return DataResponse(
        data=BarcodeAssigned(
            barcode=result.barcode.barcode,
            kind=result.barcode.kind,
            target_id=body.assembly_id,
            created=result.created,
        ),
        message=(
            "Barcode generated and assigned to assembly" if result.created
            else "Assembly already has a barcode assigned"
        ),
    )


# ── Status ───────────────────────────────────────────────────

@router.post("/status", response_model=DataResponse[StatusChangeOut])
async def update_assembly_status(
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("assemblies.status")),
):
    assembly = await assembly_service.get_assembly(db, body.assembly_id)
    change = await assembly_service.change_status(
        db, assembly, body.status,
        user_id=user.id,
        device_info=body.device_info or {"source": "web"},
    )
    return DataResponse(
        data=StatusChangeOut(
            id=assembly.id,
            name=assembly.name,
            previous_status=change.previous_status,
            status=change.new_status,
            children_updated=change.children_updated,
        ),
        message="Assembly status updated successfully",
    )


# ── QC images (by image id) ──────────────────────────────────

@router.delete("/qc-images/{image_id}", response_model=MessageResponse)
async def delete_qc_image(
    image_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_admin_or_manager),
):
    """Remove the stored image, then its record."""
    await qc.delete_qc_image(db, image_id)
    return MessageResponse(message="QC image deleted successfully")


# ── Single assembly ──────────────────────────────────────────

@router.get("/{assembly_id}", response_model=AssemblyOut)
async def get_assembly(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.read")),
):
    assembly = await assembly_service.get_assembly(db, assembly_id)
    return _assembly_out(assembly, await assembly_service.barcode_map(db, [assembly.id]))


@router.patch("/{assembly_id}", response_model=DataResponse[AssemblyOut])
async def update_assembly(
    assembly_id: str,
    body: AssemblyUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("assemblies.write")),
):
    assembly, children_updated = await assembly_service.update_assembly(
        db, assembly_id, body, user.id,
    )
    codes = await assembly_service.barcode_map(db, [assembly.id])
    message = "Assembly updated successfully"
    if children_updated:
        message += f" ({children_updated} child assemblies updated)"
    return DataResponse(data=_assembly_out(assembly, codes), message=message)


@router.delete("/{assembly_id}", response_model=AssemblyDeleteResult)
async def delete_assembly(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.delete")),
):
    """Delete an assembly together with its children and dependent records."""
    deleted, batch_ids = await assembly_service.delete_assembly(db, assembly_id)
    return AssemblyDeleteResult(
        message="Assembly deleted successfully",
        deleted_ids=deleted,
        batches_recomputed=batch_ids,
    )


@router.get("/{assembly_id}/children", response_model=list[AssemblyOut])
async def list_children(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.read")),
):
    await assembly_service.get_assembly(db, assembly_id)
    children = await assembly_service.get_children(db, assembly_id)
    codes = await assembly_service.barcode_map(db, [c.id for c in children])
    return [_assembly_out(c, codes) for c in children]


@router.get("/{assembly_id}/status-history", response_model=list[StatusHistoryEntry])
async def get_status_history(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.read")),
):
    return await assembly_service.get_status_history(db, assembly_id)


# ── QC ───────────────────────────────────────────────────────

@router.get("/{assembly_id}/qc-images", response_model=list[QcImageOut])
async def list_qc_images(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("qc.read")),
):
    return await qc.list_qc_images(db, assembly_id)


@router.put("/{assembly_id}/qc", response_model=QcUpdateOut)
async def update_qc(
    assembly_id: str,
    body: QcNotesRequest,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("qc.write")),
):
    return await qc.set_qc_notes(db, assembly_id, body.qc_status, body.notes)


# ── Drawings ─────────────────────────────────────────────────

@router.get("/{assembly_id}/drawings", response_model=list[DrawingOut])
async def list_assembly_drawings(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("assemblies.read")),
):
    return await qc.list_drawings(db, DrawingKind.ASSEMBLY, assembly_id)


@router.post("/{assembly_id}/drawings", response_model=DrawingOut, status_code=201)
async def upload_assembly_drawing(
    assembly_id: str,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("assemblies.write")),
):
    return await qc.upload_drawing(
        db,
        DrawingKind.ASSEMBLY,
        assembly_id,
        file_name=file.filename or "drawing",
        content_type=file.content_type,
        data=await file.read(),
        user=user,
    )
