"""User administration tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.auth.password import verify_password
from trackflow.models.nfc_card import NfcCard
from trackflow.models.user import User


@pytest.mark.api
@pytest.mark.asyncio
class TestCreateUser:
    """POST /api/users/"""

    async def test_temporary_password_returned_once(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, admin_user,
    ):
        """Without a password a temporary one is generated and hashed."""
        admin_id = admin_user.id
        response = await client.post(
            "/api/users/",
            json={
                "email": "New.Painter@Example.com",
                "full_name": "Pat Painter",
                "role": "worker",
                "worker_type": "painter",
            },
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        body = response.json()
        temporary = body["temporaryPassword"]
        assert temporary and len(temporary) == 12
        assert body["user"]["email"] == "new.painter@example.com"
        assert body["user"]["worker_type"] == "painter"
        assert body["user"]["created_by"] == admin_id

        stored = (
            await db_session.execute(select(User).where(User.id == body["user"]["id"]))
        ).scalar_one()
        assert verify_password(temporary, stored.hashed_password)

        listing = await client.get(f"/api/users/{stored.id}", headers=auth_headers)
        assert "temporaryPassword" not in listing.json()

    async def test_explicit_password_not_echoed(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/users/",
            json={"email": "eng@example.com", "full_name": "Eve Engineer", "password": "longenough1"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["temporaryPassword"] is None

    async def test_duplicate_email(self, client: AsyncClient, auth_headers, worker_user):
        response = await client.post(
            "/api/users/",
            json={"email": "WELDER@example.com", "full_name": "Someone Else"},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert response.json()["error"]["message"] == "A user with this email already exists"

    async def test_unknown_worker_type(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/users/",
            json={"email": "x@example.com", "full_name": "X", "worker_type": "juggler"},
            headers=auth_headers,
        )
        assert response.status_code == 422


@pytest.mark.api
@pytest.mark.asyncio
class TestManageUser:
    """Update, delete and password reset."""

    async def test_cannot_deactivate_self(self, client: AsyncClient, auth_headers, admin_user):
        response = await client.put(
            f"/api/users/{admin_user.id}", json={"is_active": False}, headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "You cannot deactivate your own account"

    async def test_cannot_delete_self(self, client: AsyncClient, auth_headers, admin_user):
        response = await client.delete(f"/api/users/{admin_user.id}", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "You cannot delete your own account"

    async def test_update_worker_type(self, client: AsyncClient, auth_headers, worker_user):
        response = await client.put(
            f"/api/users/{worker_user.id}",
            json={"worker_type": "assembler", "full_name": "Wes Assembler"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["worker_type"] == "assembler"
        assert response.json()["full_name"] == "Wes Assembler"

    async def test_delete_detaches_cards(
        self, client: AsyncClient, db_session: AsyncSession,
        auth_headers, worker_user, worker_card,
    ):
        """The user's NFC cards are deactivated and unbound."""
        card_pk = worker_card.id
        response = await client.delete(f"/api/users/{worker_user.id}", headers=auth_headers)
        assert response.status_code == 200, response.text

        card = (
            await db_session.execute(
                select(NfcCard).where(NfcCard.id == card_pk).execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert card.is_active is False
        assert card.user_id is None

        response = await client.post("/api/nfc/validate", json={"cardId": "04A1B2C3"})
        assert response.status_code == 404

    async def test_reset_password(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, worker_user,
    ):
        response = await client.post(
            f"/api/users/{worker_user.id}/reset-password", headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        temporary = response.json()["temporaryPassword"]
        await db_session.refresh(worker_user)
        assert verify_password(temporary, worker_user.hashed_password)
        assert not verify_password("testpassword123", worker_user.hashed_password)

    async def test_reset_with_chosen_password(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, worker_user,
    ):
        response = await client.post(
            f"/api/users/{worker_user.id}/reset-password",
            json={"password": "chosen-password-9"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["temporaryPassword"] is None
        await db_session.refresh(worker_user)
        assert verify_password("chosen-password-9", worker_user.hashed_password)

    async def test_list_active_only(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, worker_user,
    ):
        worker_user.is_active = False
        await db_session.flush()

        response = await client.get(
            "/api/users/", params={"include_inactive": "false"}, headers=auth_headers,
        )
        assert response.status_code == 200
        assert [u["full_name"] for u in response.json()] == ["Ada Admin"]
