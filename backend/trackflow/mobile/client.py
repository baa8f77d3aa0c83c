"""Async HTTP client for the TrackFlow mobile API.

    async with TrackFlowClient("https://trackflow.example.com") as api:
        user = await api.validate_nfc("04A1B2C3")
        batch = await api.validate_batch("BATCH-LX2K9Q1-3F9A0C1D", user.user_id)

Every non-2xx response raises `ApiError` carrying the server's
`{"error": {"message": ...}}` text; transport failures are raised as
`ApiError` with status_code 0.
"""

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


@dataclass
class UserData:
    """Operator identity returned by an NFC card tap."""
    user_id: str
    profile_id: str
    full_name: str
    role: str
    worker_type: str
    card_id: str

    @classmethod
    def from_api(cls, data: dict) -> "UserData":
        return cls(
            user_id=data["userId"],
            profile_id=data.get("profileId", data["userId"]),
            full_name=data.get("fullName", ""),
            role=data.get("role", ""),
            worker_type=data.get("workerType", ""),
            card_id=data["cardId"],
        )


@dataclass
class ApiResult:
    """Mobile envelope: payload plus the server's message and warning."""
    data: dict | list | None
    message: str | None = None
    warning: str | None = None
    status_code: int = 200


def _error_message(response: httpx.Response) -> tuple[str, dict | None]:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}", None
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"], payload
    return response.reason_phrase or f"HTTP {response.status_code}", payload


class TrackFlowClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "TrackFlowClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> ApiResult:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise ApiError(0, f"Network error: {exc}") from exc

        if not response.is_success:
            message, payload = _error_message(response)
            logger.warning("%s %s → %s: %s", method, path, response.status_code, message)
            raise ApiError(response.status_code, message, payload)

        body = response.json()
        return ApiResult(
            data=body.get("data"),
            message=body.get("message"),
            warning=body.get("warning"),
            status_code=response.status_code,
        )

    # ── Identity ─────────────────────────────────────────────

    async def validate_nfc(self, card_id: str) -> UserData:
        result = await self._request("POST", "/api/nfc/validate", json={"cardId": card_id})
        return UserData.from_api(result.data)

    async def qc_auth(self, card_id: str) -> UserData:
        result = await self._request("POST", "/api/mobile/qc/auth", json={"cardId": card_id})
        return UserData.from_api(result.data)

    # ── Assemblies ───────────────────────────────────────────

    async def get_assembly_by_barcode(self, barcode: str, user_id: str) -> dict:
        result = await self._request(
            "GET", f"/api/mobile/assemblies/barcode/{barcode}", params={"userId": user_id},
        )
        return result.data

    async def update_assembly_status(
        self,
        assembly_id: str,
        status: str,
        user_id: str,
        card_id: str,
        device_info: dict | None = None,
    ) -> ApiResult:
        return await self._request("POST", "/api/mobile/assemblies/status", json={
            "assemblyId": assembly_id,
            "status": status,
            "userId": user_id,
            "cardId": card_id,
            "deviceInfo": device_info,
        })

    # ── Logistics ────────────────────────────────────────────

    async def validate_batch(self, barcode: str, user_id: str, device_info: dict | None = None) -> dict:
        result = await self._request("POST", "/api/mobile/logistics/batches/validate", json={
            "barcode": barcode,
            "userId": user_id,
            "deviceInfo": device_info,
        })
        return result.data

    async def add_assembly_to_batch(
        self,
        batch_id: str,
        assembly_barcode: str,
        user_id: str,
        card_id: str,
        device_info: dict | None = None,
    ) -> ApiResult:
        return await self._request("POST", "/api/mobile/logistics/batches/add-assembly", json={
            "batchId": batch_id,
            "assemblyBarcode": assembly_barcode,
            "userId": user_id,
            "cardId": card_id,
            "deviceInfo": device_info,
        })

    async def list_batch_assemblies(self, batch_id: str, user_id: str) -> dict:
        result = await self._request(
            "POST", f"/api/mobile/logistics/batches/{batch_id}/assemblies",
            json={"userId": user_id},
        )
        return result.data

    async def remove_batch_assembly(
        self, batch_assembly_id: str, user_id: str, card_id: str,
    ) -> ApiResult:
        return await self._request(
            "DELETE", f"/api/mobile/logistics/batch-assemblies/{batch_assembly_id}",
            json={"userId": user_id, "cardId": card_id},
        )

    # ── Quality control ──────────────────────────────────────

    async def upload_qc_image(
        self,
        assembly_id: str,
        *,
        file_name: str,
        content: bytes,
        content_type: str,
        user_id: str,
        card_id: str,
        qc_status: str | None = None,
        notes: str | None = None,
    ) -> dict:
        form = {"userId": user_id, "cardId": card_id}
        if qc_status is not None:
            form["qcStatus"] = qc_status
        if notes is not None:
            form["notes"] = notes
        result = await self._request(
            "POST", f"/api/mobile/assemblies/{assembly_id}/qc-upload",
            data=form,
            files={"image": (file_name, content, content_type)},
        )
        return result.data

    async def update_qc_notes(
        self,
        assembly_id: str,
        user_id: str,
        card_id: str,
        qc_status: str | None = None,
        notes: str | None = None,
    ) -> dict:
        result = await self._request(
            "POST", f"/api/mobile/assemblies/{assembly_id}/qc-notes",
            json={"userId": user_id, "cardId": card_id, "qcStatus": qc_status, "notes": notes},
        )
        return result.data

    async def list_qc_images(self, assembly_id: str, user_id: str) -> list[dict]:
        result = await self._request(
            "POST", f"/api/mobile/assemblies/{assembly_id}/qc-images",
            json={"userId": user_id},
        )
        return result.data
