"""QC image, QC notes and drawing tests."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.jwt import create_access_token, create_file_token
from trackflow.middleware.exceptions import (
    ConflictError,
    ServerError,
    ValidationFailedError,
)
from trackflow.models.assembly import Assembly
from trackflow.models.drawing import DrawingKind
from trackflow.models.qc_image import QcImage
from trackflow.services import qc
from trackflow.utils.storage import LocalObjectStore, get_store, object_path

from conftest import make_member

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _form(user, card, **extra) -> dict:
    return {"userId": user.id, "cardId": card.card_id, **extra}


@pytest.mark.unit
class TestObjectStore:
    """Local bucket layout."""

    def test_object_path_convention(self):
        path = object_path("qc-images", "asm-1", "..\\weld.jpg", timestamp_ms=1718000000000)
        assert path == "qc-images/asm-1/1718000000000_weld.jpg"

    def test_put_read_delete(self, tmp_path):
        store = LocalObjectStore(tmp_path, "files")
        store.put("qc-images/a/1_x.png", PNG)
        assert store.read("qc-images/a/1_x.png") == PNG
        assert store.delete("qc-images/a/1_x.png") is True
        assert store.delete("qc-images/a/1_x.png") is False

    def test_paths_cannot_escape_bucket(self, tmp_path):
        store = LocalObjectStore(tmp_path, "files")
        with pytest.raises(ValueError):
            store.put("../outside.txt", b"x")
        assert store.exists("../outside.txt") is False


@pytest.mark.api
@pytest.mark.asyncio
class TestMobileQc:
    """Shop-floor QC uploads and notes."""

    async def test_upload_list_delete(
        self, client: AsyncClient, db_session: AsyncSession,
        auth_headers, project, worker_user, worker_card,
    ):
        """Photo is stored, recorded, stamped on the assembly, then removed."""
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        assembly_id = assembly.id
        form = _form(worker_user, worker_card, qcStatus="Passed", notes="Weld OK")

        response = await client.post(
            f"/api/mobile/assemblies/{assembly_id}/qc-upload",
            data=form,
            files={"image": ("weld.png", PNG, "image/png")},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["message"] == "QC image uploaded successfully"
        image = body["data"]
        assert image["image_path"].startswith(f"qc-images/{assembly_id}/")
        assert image["image_path"].endswith("_weld.png")
        assert image["image_url"].startswith(f"/api/files/{image['image_path']}?token=")
        assert image["file_size"] == len(PNG)
        assert image["created_by_info"]["name"] == "Wes Welder"
        assert get_store().exists(image["image_path"])

        await db_session.refresh(assembly)
        assert assembly.quality_control_status == "Passed"
        assert assembly.quality_control_notes == "Weld OK"

        listing = await client.post(
            f"/api/mobile/assemblies/{assembly_id}/qc-images",
            json={"userId": form["userId"]},
        )
        assert [i["id"] for i in listing.json()["data"]] == [image["id"]]

        download = await client.get(image["image_url"], headers=auth_headers)
        assert download.status_code == 200
        assert download.content == PNG

        response = await client.delete(
            f"/api/assemblies/qc-images/{image['id']}", headers=auth_headers,
        )
        assert response.status_code == 200
        assert not get_store().exists(image["image_path"])
        count = (await db_session.execute(select(func.count()).select_from(QcImage))).scalar()
        assert count == 0

    async def test_non_image_rejected(
        self, client: AsyncClient, db_session: AsyncSession,
        project, worker_user, worker_card,
    ):
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        response = await client.post(
            f"/api/mobile/assemblies/{assembly.id}/qc-upload",
            data=_form(worker_user, worker_card),
            files={"image": ("report.pdf", b"%PDF-1.7", "application/pdf")},
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Only image files are allowed"

    async def test_upload_needs_card(
        self, client: AsyncClient, db_session: AsyncSession, project, worker_user,
    ):
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        response = await client.post(
            f"/api/mobile/assemblies/{assembly.id}/qc-upload",
            data={"userId": worker_user.id},
            files={"image": ("weld.png", PNG, "image/png")},
        )
        assert response.status_code == 401

    async def test_notes_on_parent_reach_children(
        self, client: AsyncClient, db_session: AsyncSession,
        auth_headers, project, worker_user, worker_card,
    ):
        response = await client.post(
            "/api/assemblies/",
            json={"project_id": project.id, "name": "Frame-F", "quantity": 2},
            headers=auth_headers,
        )
        parent_id = response.json()["assembly"]["id"]

        response = await client.post(
            f"/api/mobile/assemblies/{parent_id}/qc-notes",
            json=_form(worker_user, worker_card, qcStatus="Rework", notes="Grind seam"),
        )
        assert response.status_code == 200, response.text
        assert response.json()["message"] == "QC information updated successfully"
        assert response.json()["data"]["children_updated"] == 2

        statuses = (
            await db_session.execute(
                select(Assembly.quality_control_status).where(Assembly.parent_id == parent_id)
            )
        ).scalars().all()
        assert statuses == ["Rework", "Rework"]

    async def test_listed_image_opens_without_bearer(
        self, client: AsyncClient, db_session: AsyncSession,
        project, worker_user, worker_card,
    ):
        """The mobile app only has the link from the listing."""
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        assembly_id = assembly.id
        await client.post(
            f"/api/mobile/assemblies/{assembly_id}/qc-upload",
            data=_form(worker_user, worker_card),
            files={"image": ("weld.png", PNG, "image/png")},
        )
        listing = await client.post(
            f"/api/mobile/assemblies/{assembly_id}/qc-images",
            json={"userId": worker_user.id},
        )
        image = listing.json()["data"][0]

        download = await client.get(image["image_url"])
        assert download.status_code == 200, download.text
        assert download.content == PNG

        bare = await client.get(f"/api/files/{image['image_path']}")
        assert bare.status_code == 401

    async def test_file_link_bound_to_path_and_lifetime(
        self, client: AsyncClient, db_session: AsyncSession,
        project, worker_user, worker_card,
    ):
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        response = await client.post(
            f"/api/mobile/assemblies/{assembly.id}/qc-upload",
            data=_form(worker_user, worker_card),
            files={"image": ("weld.png", PNG, "image/png")},
        )
        path = response.json()["data"]["image_path"]

        other = create_file_token("qc-images/other/1_x.png")
        expired = create_file_token(path, timedelta(minutes=-1))
        access = create_access_token(worker_user.id, worker_user.role.value)
        for token in (other, expired, access):
            download = await client.get(f"/api/files/{path}", params={"token": token})
            assert download.status_code == 401
            assert download.json()["error"]["message"] == "Invalid or expired file link"


@pytest.mark.asyncio
class TestUploadService:
    """Store-then-record ordering."""

    async def test_empty_upload_rejected(
        self, db_session: AsyncSession, project, worker_user, tmp_path,
    ):
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        with pytest.raises(ValidationFailedError, match="empty"):
            await qc.upload_qc_image(
                db_session, assembly.id,
                file_name="x.png", content_type="image/png", data=b"",
                qc_status=None, notes=None, user=worker_user,
                store=LocalObjectStore(tmp_path, "files"),
            )

    async def test_store_failure_records_nothing(
        self, db_session: AsyncSession, project, worker_user,
    ):
        class BrokenStore(LocalObjectStore):
            def put(self, path, data):
                raise OSError("disk full")

        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        with pytest.raises(ServerError):
            await qc.upload_qc_image(
                db_session, assembly.id,
                file_name="x.png", content_type="image/png", data=PNG,
                qc_status="Passed", notes=None, user=worker_user,
                store=BrokenStore("/nonexistent", "files"),
            )
        count = (await db_session.execute(select(func.count()).select_from(QcImage))).scalar()
        assert count == 0

    async def test_path_collision_moves_to_next_timestamp(
        self, db_session: AsyncSession, project, worker_user, tmp_path,
    ):
        class RacedStore(LocalObjectStore):
            tried: list[str] = []

            def put(self, path, data):
                self.tried.append(path)
                if len(self.tried) == 1:
                    raise FileExistsError(path)
                return super().put(path, data)

        store = RacedStore(tmp_path, "files")
        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        image = await qc.upload_qc_image(
            db_session, assembly.id,
            file_name="x.png", content_type="image/png", data=PNG,
            qc_status=None, notes=None, user=worker_user, store=store,
        )
        first, second = store.tried
        assert first != second
        assert image["image_path"] == second
        assert store.read(second) == PNG
        count = (await db_session.execute(select(func.count()).select_from(QcImage))).scalar()
        assert count == 1

    async def test_persistent_collision_is_conflict(
        self, db_session: AsyncSession, project, worker_user, tmp_path,
    ):
        class TakenStore(LocalObjectStore):
            def put(self, path, data):
                raise FileExistsError(path)

        assembly, _ = await make_member(db_session, project, "Beam-Q", 40.0)
        with pytest.raises(ConflictError):
            await qc.upload_qc_image(
                db_session, assembly.id,
                file_name="x.png", content_type="image/png", data=PNG,
                qc_status=None, notes=None, user=worker_user,
                store=TakenStore(tmp_path, "files"),
            )
        count = (await db_session.execute(select(func.count()).select_from(QcImage))).scalar()
        assert count == 0


@pytest.mark.api
@pytest.mark.asyncio
class TestDrawings:
    """Project and assembly drawings."""

    async def test_project_drawing_lifecycle(
        self, client: AsyncClient, auth_headers, project,
    ):
        project_id = project.id
        response = await client.post(
            f"/api/projects/{project_id}/drawings",
            files={"file": ("layout.pdf", b"%PDF-1.7 drawing", "application/pdf")},
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        drawing = response.json()
        assert drawing["kind"] == DrawingKind.PROJECT.value
        assert drawing["file_path"].startswith(f"project-drawings/{project_id}/")

        listing = await client.get(f"/api/projects/{project_id}/drawings", headers=auth_headers)
        assert [d["id"] for d in listing.json()] == [drawing["id"]]

        response = await client.delete(
            f"/api/drawings/project/{drawing['id']}", headers=auth_headers,
        )
        assert response.status_code == 200
        assert not get_store().exists(drawing["file_path"])

    async def test_wrong_kind_not_found(self, client: AsyncClient, auth_headers, project):
        response = await client.post(
            f"/api/projects/{project.id}/drawings",
            files={"file": ("layout.pdf", b"%PDF-1.7", "application/pdf")},
            headers=auth_headers,
        )
        drawing_id = response.json()["id"]
        response = await client.delete(
            f"/api/drawings/assembly/{drawing_id}", headers=auth_headers,
        )
        assert response.status_code == 404
