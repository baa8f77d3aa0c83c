"""NFC card validation and administration tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession


@pytest.mark.api
@pytest.mark.asyncio
class TestValidateCard:
    """POST /api/nfc/validate"""

    async def test_card_resolves_to_worker(
        self, client: AsyncClient, db_session: AsyncSession, worker_user, worker_card,
    ):
        """A tap yields the camelCase identity the mobile app stores."""
        user_id = worker_user.id
        response = await client.post("/api/nfc/validate", json={"cardId": "04A1B2C3"})

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["message"] == "NFC card validated successfully"
        assert body["data"] == {
            "userId": user_id,
            "profileId": user_id,
            "fullName": "Wes Welder",
            "role": "worker",
            "workerType": "welder",
            "cardId": "04A1B2C3",
        }
        await db_session.refresh(worker_card)
        assert worker_card.last_used is not None

    async def test_unknown_card(self, client: AsyncClient):
        response = await client.post("/api/nfc/validate", json={"cardId": "FFFFFFFF"})
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "NFC card not found or inactive"

    async def test_inactive_owner(
        self, client: AsyncClient, db_session: AsyncSession, worker_user, worker_card,
    ):
        worker_user.is_active = False
        await db_session.flush()

        response = await client.post("/api/nfc/validate", json={"cardId": "04A1B2C3"})
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "User profile not found or inactive"

    async def test_qc_screen_uses_same_check(self, client: AsyncClient, worker_card):
        response = await client.post("/api/mobile/qc/auth", json={"cardId": "04A1B2C3"})
        assert response.status_code == 200
        assert response.json()["data"]["workerType"] == "welder"

    async def test_card_id_required(self, client: AsyncClient):
        response = await client.post("/api/nfc/validate", json={})
        assert response.status_code == 422


@pytest.mark.api
@pytest.mark.asyncio
class TestCardAdministration:
    """Card assignment and deactivation."""

    async def test_assign_new_then_reassign(
        self, client: AsyncClient, auth_headers, worker_user, logistics_user,
    ):
        """A new UID gives 201; the same UID on another user moves it (200)."""
        worker_id, logistics_id = worker_user.id, logistics_user.id

        created = await client.post(
            "/api/nfc/cards",
            json={"cardId": "73:3A:79:25", "userId": worker_id},
            headers=auth_headers,
        )
        assert created.status_code == 201, created.text
        assert created.json()["user_id"] == worker_id

        moved = await client.post(
            "/api/nfc/cards",
            json={"cardId": "73:3A:79:25", "userId": logistics_id},
            headers=auth_headers,
        )
        assert moved.status_code == 200
        assert moved.json()["id"] == created.json()["id"]
        assert moved.json()["user_id"] == logistics_id

        cards = (await client.get("/api/nfc/cards", headers=auth_headers)).json()
        assert [(c["card_id"], c["user_name"]) for c in cards] == [
            ("73:3A:79:25", "Lou Logistics"),
        ]

    async def test_deactivated_card_cannot_validate(
        self, client: AsyncClient, auth_headers, worker_card,
    ):
        card_pk = worker_card.id
        response = await client.put(
            f"/api/nfc/cards/{card_pk}/deactivate", headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await client.post("/api/nfc/validate", json={"cardId": "04A1B2C3"})
        assert response.status_code == 404

    async def test_worker_cannot_assign(
        self, client: AsyncClient, worker_headers, worker_user,
    ):
        response = await client.post(
            "/api/nfc/cards",
            json={"cardId": "AA", "userId": worker_user.id},
            headers=worker_headers,
        )
        assert response.status_code == 403
