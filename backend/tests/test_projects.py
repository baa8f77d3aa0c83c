"""Client, project and logistics batch administration tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.schemas.logistics import BatchCreate
from trackflow.services import batch_ledger
from trackflow.services import logistics as logistics_service

from conftest import make_member


@pytest.mark.api
@pytest.mark.asyncio
class TestClientsAndProjects:
    """Reference data CRUD."""

    async def test_create_client_and_project(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/clients/", json={"name": "Harbour Works"}, headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        client_id = response.json()["id"]

        response = await client.post(
            "/api/projects/",
            json={"name": "Quay Crane", "internal_number": "P-300", "client_id": client_id},
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        assert response.json()["status"] == "Planning"

        listing = await client.get(
            "/api/projects/", params={"client_id": client_id}, headers=auth_headers,
        )
        assert [p["internal_number"] for p in listing.json()] == ["P-300"]

    async def test_project_number_unique(self, client: AsyncClient, auth_headers, project):
        response = await client.post(
            "/api/projects/",
            json={"name": "Copy", "internal_number": "P-100"},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert response.json()["error"]["message"] == "Project number P-100 already exists"

    async def test_invalid_project_status(self, client: AsyncClient, auth_headers, project):
        response = await client.patch(
            f"/api/projects/{project.id}", json={"status": "Paused"}, headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_project_with_assemblies_cannot_be_deleted(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, project,
    ):
        await make_member(db_session, project, "Beam-Z", 10.0)
        response = await client.delete(f"/api/projects/{project.id}", headers=auth_headers)
        assert response.status_code == 409

    async def test_referenced_client_cannot_be_deleted(
        self, client: AsyncClient, auth_headers, client_record, project,
    ):
        response = await client.delete(f"/api/clients/{client_record.id}", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    async def test_worker_reads_but_cannot_write(
        self, client: AsyncClient, worker_headers, project,
    ):
        assert (await client.get("/api/projects/", headers=worker_headers)).status_code == 200
        response = await client.post(
            "/api/clients/", json={"name": "Nope"}, headers=worker_headers,
        )
        assert response.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestBatches:
    """Web-side logistics batch administration."""

    async def test_create_binds_batch_barcode(
        self, client: AsyncClient, auth_headers, project, client_record,
    ):
        """Client falls back to the project's; a BATCH- barcode is bound."""
        client_id = client_record.id
        response = await client.post(
            "/api/logistics/batches",
            json={"project_id": project.id, "delivery_address": "Pier 9"},
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["barcode"].startswith("BATCH-")
        assert body["barcode_error"] is None
        assert body["batch"]["batch_number"].startswith("B")
        assert body["batch"]["client_id"] == client_id
        assert body["batch"]["total_weight"] == 0.0
        assert body["batch"]["barcode"] == body["barcode"]

    async def test_duplicate_batch_number(self, client: AsyncClient, auth_headers, project):
        payload = {"project_id": project.id, "batch_number": "B-EXPORT-1"}
        first = await client.post("/api/logistics/batches", json=payload, headers=auth_headers)
        second = await client.post("/api/logistics/batches", json=payload, headers=auth_headers)
        assert first.status_code == 201
        assert second.status_code == 409

    async def test_project_required(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/logistics/batches", json={"delivery_address": "Pier 9"}, headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_cannot_move_batch_with_members(
        self, client: AsyncClient, db_session: AsyncSession,
        auth_headers, batch, other_project, project, logistics_user,
    ):
        _, code = await make_member(db_session, project, "Beam-M", 25.0)
        await batch_ledger.add_assembly(db_session, batch.batch.id, code, logistics_user)

        response = await client.patch(
            f"/api/logistics/batches/{batch.batch.id}",
            json={"project_id": other_project.id},
            headers=auth_headers,
        )
        assert response.status_code == 409

    async def test_status_update_and_filter(
        self, client: AsyncClient, auth_headers, batch,
    ):
        batch_id = batch.batch.id
        response = await client.patch(
            f"/api/logistics/batches/{batch_id}",
            json={"status": "In Transit"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "In Transit"

        listing = await client.get(
            "/api/logistics/batches", params={"status": "In Transit"}, headers=auth_headers,
        )
        assert listing.json()["total"] == 1
        assert listing.json()["items"][0]["id"] == batch_id

    async def test_delete_batch_frees_barcode(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, batch,
    ):
        token = batch.barcode
        response = await client.delete(
            f"/api/logistics/batches/{batch.batch.id}", headers=auth_headers,
        )
        assert response.status_code == 200, response.text

        response = await client.get(f"/api/barcodes/{token}/resolve", headers=auth_headers)
        assert response.status_code == 404

    async def test_service_custom_barcode(self, db_session: AsyncSession, project):
        result = await logistics_service.create_batch(
            db_session,
            BatchCreate(project_id=project.id, custom_barcode="BATCH-DOCK-7"),
        )
        assert result.barcode == "BATCH-DOCK-7"
