"""Assembly fan-out, propagation, status and deletion tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.models.assembly import Assembly, AssemblyStatusLog
from trackflow.models.barcode import Barcode
from trackflow.schemas.assembly import AssemblyCreate
from trackflow.services import assemblies as assembly_service


async def _create(client: AsyncClient, headers: dict, project_id: str, **fields) -> dict:
    payload = {"project_id": project_id, "name": "Beam-A", "weight": 120.0, **fields}
    response = await client.post("/api/assemblies/", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.api
@pytest.mark.asyncio
class TestFanOut:
    """Creating assemblies with quantity > 1."""

    async def test_single_assembly_gets_barcode(
        self, client: AsyncClient, auth_headers, project,
    ):
        """quantity 1 creates one plain, barcoded assembly."""
        data = await _create(client, auth_headers, project.id, name="Plate-7")

        assert data["children_created"] == 0
        assert data["assembly"]["is_parent"] is False
        assert data["assembly"]["quantity"] == 1
        assert data["barcode"].startswith("ASM-")
        assert data["assembly"]["barcode"] == data["barcode"]

    async def test_quantity_three_creates_parent_and_children(
        self, client: AsyncClient, auth_headers, project,
    ):
        """Parent is not barcoded; children Beam-A-1..3 each are."""
        data = await _create(client, auth_headers, project.id, quantity=3)
        parent = data["assembly"]

        assert parent["is_parent"] is True
        assert parent["original_quantity"] == 3
        assert parent["barcode"] is None
        assert data["children_created"] == 3
        assert data["barcode_failures"] == []

        response = await client.get(
            f"/api/assemblies/{parent['id']}/children", headers=auth_headers,
        )
        assert response.status_code == 200
        children = response.json()

        assert [c["name"] for c in children] == ["Beam-A-1", "Beam-A-2", "Beam-A-3"]
        assert [c["child_number"] for c in children] == [1, 2, 3]
        assert all(c["quantity"] == 1 for c in children)
        assert all(c["weight"] == 120.0 for c in children)
        assert all(c["parent_id"] == parent["id"] for c in children)
        tokens = {c["barcode"] for c in children}
        assert len(tokens) == 3
        assert all(t.startswith("ASM-") for t in tokens)

    async def test_top_level_listing_hides_children(
        self, client: AsyncClient, auth_headers, project,
    ):
        """top_level=true lists the parent only."""
        await _create(client, auth_headers, project.id, quantity=2)

        response = await client.get(
            "/api/assemblies/",
            params={"project_id": project.id, "top_level": "true"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["is_parent"] is True

    async def test_unknown_project_rejected(self, client: AsyncClient, auth_headers):
        """Fan-out needs an existing project."""
        response = await client.post(
            "/api/assemblies/",
            json={"project_id": "missing", "name": "Beam-A", "quantity": 2},
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_barcode_failure_does_not_undo_creation(
        self, db_session: AsyncSession, project, monkeypatch,
    ):
        """A failed barcode binding is reported, the children stay."""
        real_bind = assembly_service.barcodes.bind
        calls = {"n": 0}

        async def flaky_bind(db, kind, target_id, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("barcode service unavailable")
            return await real_bind(db, kind, target_id, *args, **kwargs)

        monkeypatch.setattr(assembly_service.barcodes, "bind", flaky_bind)

        result = await assembly_service.create_assembly(
            db_session,
            AssemblyCreate(project_id=project.id, name="Column-C", quantity=3),
        )

        assert len(result.children) == 3
        assert len(result.barcode_failures) == 1
        assert result.barcode_failures[0]["name"] == "Column-C-2"
        count = (
            await db_session.execute(
                select(func.count()).select_from(Barcode).where(
                    Barcode.assembly_id.in_([c.id for c in result.children])
                )
            )
        ).scalar()
        assert count == 2


@pytest.mark.api
@pytest.mark.asyncio
class TestUpdatePropagation:
    """A parent's descriptive fields flow down to its children."""

    async def test_parent_update_propagates(
        self, client: AsyncClient, auth_headers, project,
    ):
        """Weight and paint spec are copied; child names are kept."""
        parent = (await _create(client, auth_headers, project.id, quantity=3))["assembly"]

        response = await client.patch(
            f"/api/assemblies/{parent['id']}",
            json={"weight": 150.0, "painting_spec": "RAL 7016", "name": "Beam-B"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert "(3 child assemblies updated)" in response.json()["message"]

        children = (
            await client.get(f"/api/assemblies/{parent['id']}/children", headers=auth_headers)
        ).json()
        assert all(c["weight"] == 150.0 for c in children)
        assert all(c["painting_spec"] == "RAL 7016" for c in children)
        assert [c["name"] for c in children] == ["Beam-A-1", "Beam-A-2", "Beam-A-3"]

    async def test_child_update_stays_local(
        self, client: AsyncClient, auth_headers, project,
    ):
        """Editing one child leaves its siblings alone."""
        parent = (await _create(client, auth_headers, project.id, quantity=2))["assembly"]
        children = (
            await client.get(f"/api/assemblies/{parent['id']}/children", headers=auth_headers)
        ).json()

        await client.patch(
            f"/api/assemblies/{children[0]['id']}",
            json={"weight": 99.0},
            headers=auth_headers,
        )

        sibling = (
            await client.get(f"/api/assemblies/{children[1]['id']}", headers=auth_headers)
        ).json()
        assert sibling["weight"] == 120.0


@pytest.mark.api
@pytest.mark.asyncio
class TestStatus:
    """Status changes, cascades and worker restrictions."""

    async def test_parent_status_cascades_with_logs(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, project,
    ):
        """Every child moves with the parent and gets its own log entry."""
        parent = (await _create(client, auth_headers, project.id, quantity=3))["assembly"]

        response = await client.post(
            "/api/assemblies/status",
            json={"assemblyId": parent["id"], "status": "Welding"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["previousStatus"] == "Waiting"
        assert data["status"] == "Welding"
        assert data["childrenUpdated"] == 3

        children = (
            await client.get(f"/api/assemblies/{parent['id']}/children", headers=auth_headers)
        ).json()
        assert {c["status"] for c in children} == {"Welding"}

        logs = (
            await db_session.execute(select(func.count()).select_from(AssemblyStatusLog))
        ).scalar()
        assert logs == 4

        history = (
            await client.get(
                f"/api/assemblies/{children[0]['id']}/status-history", headers=auth_headers,
            )
        ).json()
        assert len(history) == 1
        assert history[0]["previous_status"] == "Waiting"
        assert history[0]["new_status"] == "Welding"
        assert history[0]["updated_by_name"] == "Ada Admin"

    async def test_invalid_status_rejected(
        self, client: AsyncClient, auth_headers, project,
    ):
        """Only the five lifecycle statuses are accepted."""
        data = await _create(client, auth_headers, project.id)
        response = await client.post(
            "/api/assemblies/status",
            json={"assemblyId": data["assembly"]["id"], "status": "Shipped"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_welder_cannot_set_painting(
        self, client: AsyncClient, auth_headers, project, worker_user, worker_card,
    ):
        """Mobile status changes are limited by worker_type."""
        assembly_id = (await _create(client, auth_headers, project.id))["assembly"]["id"]
        payload = {
            "assemblyId": assembly_id,
            "userId": worker_user.id,
            "cardId": worker_card.card_id,
        }

        response = await client.post(
            "/api/mobile/assemblies/status", json={**payload, "status": "Painting"},
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

        response = await client.post(
            "/api/mobile/assemblies/status", json={**payload, "status": "Welding"},
        )
        assert response.status_code == 200, response.text
        assert response.json()["message"] == "Assembly status updated successfully"

    async def test_mobile_status_needs_card(
        self, client: AsyncClient, auth_headers, project, worker_user,
    ):
        """State-changing mobile calls require the tapped card."""
        assembly_id = (await _create(client, auth_headers, project.id))["assembly"]["id"]
        response = await client.post(
            "/api/mobile/assemblies/status",
            json={"assemblyId": assembly_id, "status": "Welding", "userId": worker_user.id},
        )
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "NFC card ID is required"


@pytest.mark.api
@pytest.mark.asyncio
class TestDelete:
    """Deleting assemblies."""

    async def test_parent_delete_takes_children_and_barcodes(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, project,
    ):
        """Children, their barcodes and logs are removed with the parent."""
        parent = (await _create(client, auth_headers, project.id, quantity=3))["assembly"]
        children = (
            await client.get(f"/api/assemblies/{parent['id']}/children", headers=auth_headers)
        ).json()

        response = await client.delete(f"/api/assemblies/{parent['id']}", headers=auth_headers)
        assert response.status_code == 200, response.text
        assert len(response.json()["deleted_ids"]) == 4

        remaining = (
            await db_session.execute(select(func.count()).select_from(Assembly))
        ).scalar()
        assert remaining == 0

        response = await client.get(
            f"/api/barcodes/{children[0]['barcode']}/resolve", headers=auth_headers,
        )
        assert response.status_code == 404

    async def test_worker_cannot_delete(
        self, client: AsyncClient, auth_headers, worker_headers, project,
    ):
        """Deletion needs assemblies.delete."""
        assembly_id = (await _create(client, auth_headers, project.id))["assembly"]["id"]
        response = await client.delete(f"/api/assemblies/{assembly_id}", headers=worker_headers)
        assert response.status_code == 403

    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/assemblies/")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"
