"""Mobile client and scan workflow tests."""

import asyncio
import json

import httpx
import pytest
from httpx import ASGITransport

from trackflow.main import app
from trackflow.mobile.client import ApiError, TrackFlowClient, UserData
from trackflow.mobile.scan import (
    IDLE,
    LOADING,
    NO_BATCH,
    NO_CARD,
    NO_USER,
    BatchScanWorkflow,
    Error,
    ScanAssemblyWorkflow,
    ScanSession,
    Success,
)

from conftest import make_member

OPERATOR = UserData(
    user_id="user-1",
    profile_id="user-1",
    full_name="Lou Logistics",
    role="worker",
    worker_type="logistics",
    card_id="04D4E5F6",
)


def _client(handler) -> TrackFlowClient:
    return TrackFlowClient("http://trackflow.test", transport=httpx.MockTransport(handler))


def _session(**overrides) -> ScanSession:
    fields = {"user": OPERATOR, "batch_id": "batch-1"}
    fields.update(overrides)
    return ScanSession(**fields)


def _added(status_code: int, name: str = "Beam-A-1", **extra) -> httpx.Response:
    data = {"id": "m-1", "assembly_name": name, "already_added": status_code == 200}
    return httpx.Response(status_code, json={"data": data, "message": "ok", **extra})


@pytest.mark.unit
@pytest.mark.asyncio
class TestApiClient:
    """TrackFlowClient request and error handling."""

    async def test_validate_nfc_parses_identity(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/nfc/validate"
            assert json.loads(request.content) == {"cardId": "04D4E5F6"}
            return httpx.Response(200, json={"data": {
                "userId": "user-1", "profileId": "user-1", "fullName": "Lou Logistics",
                "role": "worker", "workerType": "logistics", "cardId": "04D4E5F6",
            }})

        async with _client(handler) as api:
            assert await api.validate_nfc("04D4E5F6") == OPERATOR

    async def test_error_envelope_becomes_api_error(self):
        def handler(request):
            return httpx.Response(
                404, json={"error": {"code": "NOT_FOUND", "message": "Batch barcode not found"}},
            )

        async with _client(handler) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.validate_batch("BATCH-X-1", "user-1")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Batch barcode not found"

    async def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        async with _client(handler) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list_batch_assemblies("batch-1", "user-1")
        assert exc_info.value.status_code == 502

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with _client(handler) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.validate_nfc("04D4E5F6")
        assert exc_info.value.status_code == 0
        assert exc_info.value.message.startswith("Network error")


@pytest.mark.unit
@pytest.mark.asyncio
class TestScanAssemblyWorkflow:
    """Idle → Loading → Success | Error."""

    @pytest.mark.parametrize(
        "session,expected",
        [
            (ScanSession(batch_id="batch-1"), NO_USER),
            (
                ScanSession(
                    user=UserData("user-1", "user-1", "Lou", "worker", "logistics", ""),
                    batch_id="batch-1",
                ),
                NO_CARD,
            ),
            (ScanSession(user=OPERATOR), NO_BATCH),
        ],
    )
    async def test_preconditions_checked_in_order(self, session, expected):
        def handler(request):
            raise AssertionError("no request expected")

        workflow = ScanAssemblyWorkflow(_client(handler), session)
        state = await workflow.submit("ASM-1-A")
        assert state == Error(expected)

    async def test_added(self):
        seen = []

        def handler(request):
            body = json.loads(request.content)
            assert body["assemblyBarcode"] == "ASM-1-A"
            assert body["cardId"] == "04D4E5F6"
            return _added(201)

        workflow = ScanAssemblyWorkflow(_client(handler), _session())
        workflow.add_listener(seen.append)
        state = await workflow.submit("  ASM-1-A  ")

        assert isinstance(state, Success)
        assert state.message == "Assembly Beam-A-1 added to batch successfully"
        assert state.already_added is False
        assert state.batch_assembly["id"] == "m-1"
        assert seen == [LOADING, state]

    async def test_already_added(self):
        workflow = ScanAssemblyWorkflow(_client(lambda r: _added(200)), _session())
        state = await workflow.submit("ASM-1-A")
        assert state.already_added is True
        assert state.message == "Assembly was already in this batch: Beam-A-1"

    async def test_partial_success_carries_warning(self):
        warning = "Operation partially successful. Step 'updating_assembly_status' failed: x"
        workflow = ScanAssemblyWorkflow(
            _client(lambda r: _added(207, warning=warning)), _session(),
        )
        state = await workflow.submit("ASM-1-A")
        assert isinstance(state, Success)
        assert state.warning == warning

    async def test_server_error_message(self):
        def handler(request):
            return httpx.Response(400, json={"error": {
                "code": "VALIDATION_ERROR",
                "message": "Cannot add assemblies to a batch with status: Delivered",
            }})

        workflow = ScanAssemblyWorkflow(_client(handler), _session())
        state = await workflow.submit("ASM-1-A")
        assert state == Error("Cannot add assemblies to a batch with status: Delivered")

    async def test_unexpected_error(self):
        def handler(request):
            return httpx.Response(201, json=["not", "an", "envelope"])

        workflow = ScanAssemblyWorkflow(_client(handler), _session())
        state = await workflow.submit("ASM-1-A")
        assert isinstance(state, Error)
        assert state.message.startswith("An unexpected error occurred")

    async def test_submission_while_loading_is_dropped(self):
        release = asyncio.Event()
        calls = []

        async def handler(request):
            calls.append(request)
            await release.wait()
            return _added(201)

        workflow = ScanAssemblyWorkflow(_client(handler), _session())
        first = asyncio.create_task(workflow.submit("ASM-1-A"))
        await asyncio.sleep(0)
        assert workflow.busy

        assert await workflow.submit("ASM-2-B") == LOADING
        release.set()
        assert isinstance(await first, Success)
        assert len(calls) == 1

    async def test_reset(self):
        workflow = ScanAssemblyWorkflow(_client(lambda r: _added(201)), _session())
        await workflow.submit("ASM-1-A")
        assert workflow.reset() == IDLE


@pytest.mark.unit
@pytest.mark.asyncio
class TestBatchScanWorkflow:
    """Selecting the batch to load."""

    async def test_validate_sets_session_batch(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"id": "batch-9", "batch_number": "B1"}})

        session = _session(batch_id=None)
        workflow = BatchScanWorkflow(_client(handler), session)
        state = await workflow.validate("BATCH-1-A")

        assert state.message == "Batch B1 selected"
        assert session.batch_id == "batch-9"
        assert session.batch["batch_number"] == "B1"

    async def test_requires_user(self):
        workflow = BatchScanWorkflow(_client(lambda r: None), ScanSession())
        assert await workflow.validate("BATCH-1-A") == Error(NO_USER)


@pytest.mark.integration
@pytest.mark.asyncio
class TestScanAgainstServer:
    """Full card → batch → assembly flow against the app."""

    async def test_load_assembly_into_batch(
        self, client, db_session, project, batch, logistics_user, logistics_card,
    ):
        _, code = await make_member(db_session, project, "Girder-G1", 50.0, quantity=2)
        batch_token = batch.barcode

        api = TrackFlowClient("http://test", transport=ASGITransport(app=app))
        async with api:
            session = ScanSession()
            await session.tap_card(api, "04D4E5F6")
            assert session.user.full_name == "Lou Logistics"

            batch_state = await BatchScanWorkflow(api, session).validate(batch_token)
            assert isinstance(batch_state, Success), batch_state

            scan = ScanAssemblyWorkflow(api, session)
            state = await scan.submit(code)
            assert isinstance(state, Success), state
            assert state.message == "Assembly Girder-G1 added to batch successfully"

            again = await scan.submit(code)
            assert again.already_added is True

            listing = await api.list_batch_assemblies(session.batch_id, session.user_id)
            assert listing["batch"]["total_weight"] == 100.0
