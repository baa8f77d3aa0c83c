"""Mobile (shop-floor) API.

Callers identify with `userId` (from a card tap); state-changing calls
also send `cardId`, checked against the user's active NFC cards.
Responses use the {"data", "message"} envelope.

Endpoints:
    GET    /api/mobile/assemblies/barcode/{barcode}?userId=     Scan lookup
    POST   /api/mobile/assemblies/status                        Change status (worker_type rules)
    POST   /api/mobile/assemblies/{id}/qc-upload                Upload QC photo (multipart)
    POST   /api/mobile/assemblies/{id}/qc-notes                 Set QC status / notes
    POST   /api/mobile/assemblies/{id}/qc-images                List QC photos
    POST   /api/mobile/logistics/batches/validate               Validate a batch barcode
    POST   /api/mobile/logistics/batches/add-assembly           Add scanned assembly to batch
    POST   /api/mobile/logistics/batches/{id}/assemblies        Batch member listing
    DELETE /api/mobile/logistics/batch-assemblies/{id}          Remove member from batch
    POST   /api/mobile/qc/auth                                  Card tap for the QC screen
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.mobile import authenticate_card_holder, authenticate_mobile_user, get_mobile_user
from trackflow.database import get_db
from trackflow.models.user import User
from trackflow.schemas.assembly import AssemblyScanInfo, MobileStatusUpdateRequest, StatusChangeOut
from trackflow.schemas.common import DataResponse
from trackflow.schemas.logistics import (
    AddAssemblyRequest,
    BatchAssembliesOut,
    BatchAssembliesRequest,
    BatchAssemblyAdded,
    BatchAssemblyRemoved,
    BatchSummary,
    BatchValidateRequest,
    RemoveBatchAssemblyRequest,
)
from trackflow.schemas.nfc import NfcUserOut, NfcValidateRequest
from trackflow.schemas.qc import MobileQcNotesRequest, MobileUserRequest, QcImageOut, QcUpdateOut
from trackflow.services import assemblies as assembly_service
from trackflow.services import barcodes, batch_ledger, qc
from trackflow.services import nfc as nfc_service
from trackflow.utils.operations import log_operation

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Assemblies ───────────────────────────────────────────────

@router.get("/assemblies/barcode/{barcode}", response_model=DataResponse[AssemblyScanInfo])
async def scan_assembly(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_mobile_user),
):
    assembly = await barcodes.resolve_assembly(db, barcode)
    info = await assembly_service.describe_for_scan(db, assembly)
    return DataResponse(data=AssemblyScanInfo(**info), message="Assembly found")


@router.post("/assemblies/status", response_model=DataResponse[StatusChangeOut])
async def update_status(
    body: MobileStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Change an assembly's status from the shop floor.

    The worker's `worker_type` limits which statuses they may set;
    admins and managers are not restricted.
    """
    user, _card = await authenticate_card_holder(db, body.user_id, body.card_id)
    assembly_service.check_worker_may_set(user, body.status)

    assembly = await assembly_service.get_assembly(db, body.assembly_id)
    device_info = body.device_info or {
        "source": "mobile",
        "operation": "status_update",
        "nfc_card": body.card_id,
    }
    change = await assembly_service.change_status(
        db, assembly, body.status, user_id=user.id, device_info=device_info,
    )

    await log_operation(
        db,
        "assembly_status_update",
        user_id=user.id,
        device_info=body.device_info,
        request_details=body.model_dump(by_alias=True, exclude={"device_info"}),
        status_code=200,
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


@router.post("/assemblies/{assembly_id}/qc-upload", response_model=DataResponse[QcImageOut], status_code=201)
async def upload_qc_image(
    assembly_id: str,
    image: UploadFile = File(...),
    qc_status: str | None = Form(None, alias="qcStatus"),
    notes: str | None = Form(None),
    user_id: str | None = Form(None, alias="userId"),
    card_id: str | None = Form(None, alias="cardId"),
    db: AsyncSession = Depends(get_db),
):
    user, _card = await authenticate_card_holder(db, user_id, card_id)
    result = await qc.upload_qc_image(
        db,
        assembly_id,
        file_name=image.filename or "qc-image",
        content_type=image.content_type,
        data=await image.read(),
        qc_status=qc_status,
        notes=notes,
        user=user,
    )
    await log_operation(
        db,
        "qc_image_upload",
        user_id=user.id,
        request_details={
            "assemblyId": assembly_id,
            "qcStatus": qc_status,
            "imagePath": result["image_path"],
        },
        status_code=201,
    )
    return DataResponse(data=result, message="QC image uploaded successfully")


@router.post("/assemblies/{assembly_id}/qc-notes", response_model=DataResponse[QcUpdateOut])
async def update_qc_notes(
    assembly_id: str,
    body: MobileQcNotesRequest,
    db: AsyncSession = Depends(get_db),
):
    user, _card = await authenticate_card_holder(db, body.user_id, body.card_id)
    result = await qc.set_qc_notes(db, assembly_id, body.qc_status, body.notes)
    await log_operation(
        db,
        "qc_notes_update",
        user_id=user.id,
        request_details={"assemblyId": assembly_id, "qcStatus": body.qc_status},
        status_code=200,
    )
    return DataResponse(data=result, message="QC information updated successfully")


@router.post("/assemblies/{assembly_id}/qc-images", response_model=DataResponse[list[QcImageOut]])
async def list_qc_images(
    assembly_id: str,
    body: MobileUserRequest,
    db: AsyncSession = Depends(get_db),
):
    await authenticate_mobile_user(db, body.user_id)
    return DataResponse(data=await qc.list_qc_images(db, assembly_id))


# ── Logistics ────────────────────────────────────────────────

@router.post("/logistics/batches/validate", response_model=DataResponse[BatchSummary])
async def validate_batch(
    body: BatchValidateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Resolve a scanned batch barcode and check it still accepts assemblies."""
    user = await authenticate_mobile_user(db, body.user_id)
    summary = await batch_ledger.validate_batch_barcode(db, body.barcode)
    await log_operation(
        db,
        "batch_barcode_validated",
        user_id=user.id,
        device_info=body.device_info,
        request_details={"barcode": body.barcode, "batchId": summary["id"]},
        status_code=200,
    )
    return DataResponse(data=summary, message="Batch validated successfully")


@router.post("/logistics/batches/add-assembly", response_model=DataResponse[BatchAssemblyAdded])
async def add_assembly_to_batch(
    body: AddAssemblyRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Add a scanned assembly to a logistics batch.

    201 when added, 200 when it was already a member, 207 when the
    membership was stored but a secondary step (status update or
    operation log) failed.
    """
    user, _card = await authenticate_card_holder(db, body.user_id, body.card_id)
    result = await batch_ledger.add_assembly(
        db,
        body.batch_id,
        body.assembly_barcode,
        user,
        card_id=body.card_id,
        device_info=body.device_info,
    )

    if result.already_added:
        response.status_code = 200
        message = "Assembly was already in this batch"
    elif result.partial_success:
        response.status_code = 207
        message = "Assembly added to batch, but some processing steps failed"
    else:
        response.status_code = 201
        message = "Assembly added to batch successfully"

    return DataResponse(
        data=BatchAssemblyAdded(
            id=result.membership_id,
            assembly_id=result.assembly_id,
            assembly_name=result.assembly_name,
            batch_id=result.batch_id,
            status=result.status,
            already_added=result.already_added,
            partial_success=result.partial_success,
            total_weight=result.total_weight,
        ),
        message=message,
        warning=result.warning,
    )


@router.post("/logistics/batches/{batch_id}/assemblies", response_model=DataResponse[BatchAssembliesOut])
async def list_batch_assemblies(
    batch_id: str,
    body: BatchAssembliesRequest,
    db: AsyncSession = Depends(get_db),
):
    await authenticate_mobile_user(db, body.user_id)
    return DataResponse(data=await batch_ledger.list_batch_assemblies(db, batch_id))


@router.delete("/logistics/batch-assemblies/{batch_assembly_id}", response_model=DataResponse[BatchAssemblyRemoved])
async def remove_assembly_from_batch(
    batch_assembly_id: str,
    body: RemoveBatchAssemblyRequest,
    db: AsyncSession = Depends(get_db),
):
    user, _card = await authenticate_card_holder(db, body.user_id, body.card_id)
    result = await batch_ledger.remove_assembly(
        db, batch_assembly_id, user, device_info=body.device_info,
    )
    return DataResponse(
        data=BatchAssemblyRemoved(
            id=result.membership_id,
            batch_id=result.batch_id,
            assembly_id=result.assembly_id,
            assemblies_remaining=result.assemblies_remaining,
            total_weight=result.total_weight,
        ),
        message="Assembly removed from batch successfully",
    )


# ── QC screen login ──────────────────────────────────────────

@router.post("/qc/auth", response_model=DataResponse[NfcUserOut])
async def qc_auth(
    body: NfcValidateRequest,
    db: AsyncSession = Depends(get_db),
):
    card, user = await nfc_service.validate_card(db, body.card_id)
    return DataResponse(
        data=NfcUserOut(**nfc_service.card_identity(card, user)),
        message="NFC card validated successfully",
    )
