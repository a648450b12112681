"""
E2E: Customer/provider messaging.

Covers conversation creation (idempotent per pair), the initial message,
sending, unread counters for each side and mark-as-read.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from truelocal.models import Conversation
from truelocal.services import conversationService
from tests.e2e.conftest import (
    CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    PROVIDER_ID,
    SERVICE_ID,
    auth_headers,
)


pytestmark = pytest.mark.asyncio


async def _open(client: AsyncClient, initial_message=None) -> dict:
    body = {"participantId": str(PROVIDER_ID), "serviceId": str(SERVICE_ID)}
    if initial_message is not None:
        body["initialMessage"] = initial_message
    resp = await client.post("/api/v1/conversations", json=body, headers=auth_headers(CUSTOMER_ID))
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestOpenConversation:

    async def test_initial_message_seeds_summary(self, client: AsyncClient):
        conversation = await _open(client, "Hi")
        assert conversation["lastMessage"] == "Hi"
        assert conversation["lastMessageAt"] is not None
        assert conversation["providerUnread"] == 1
        assert conversation["customerUnread"] == 0
        assert conversation["service"]["id"] == str(SERVICE_ID)

    async def test_create_or_get_is_idempotent(self, client: AsyncClient, seeded):
        first = await _open(client, "Hi")
        second = await _open(client, "Hello again")
        assert first["id"] == second["id"]
        assert second["lastMessage"] == "Hi"

        async with seeded() as db:
            count = await db.scalar(select(func.count()).select_from(Conversation))
        assert count == 1

    async def test_service_layer_returns_same_row(self, seeded):
        async with seeded() as db:
            a = await conversationService.create_or_get_conversation(db, CUSTOMER_ID, PROVIDER_ID)
            b = await conversationService.create_or_get_conversation(db, CUSTOMER_ID, PROVIDER_ID)
            await db.commit()
        assert a.id == b.id

    async def test_provider_can_open_with_customer(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/conversations",
            json={"participantId": str(CUSTOMER_ID), "initialMessage": "Thanks for booking"},
            headers=auth_headers(PROVIDER_ID),
        )
        body = resp.json()
        assert body["customerId"] == str(CUSTOMER_ID)
        assert body["providerId"] == str(PROVIDER_ID)
        assert body["customerUnread"] == 1
        assert body["providerUnread"] == 0

    async def test_unknown_participant(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/conversations",
            json={"participantId": "99999999-9999-9999-9999-999999999999"},
            headers=auth_headers(CUSTOMER_ID),
        )
        assert resp.status_code == 404


class TestSendAndRead:

    async def test_send_bumps_recipient_counter(self, client: AsyncClient):
        conversation = await _open(client)
        url = f"/api/v1/conversations/{conversation['id']}/messages"

        resp = await client.post(
            url, json={"message": "Are you free Friday?", "clientRef": "tab1-1"},
            headers=auth_headers(CUSTOMER_ID),
        )
        assert resp.status_code == 201
        assert resp.json()["clientRef"] == "tab1-1"
        assert resp.json()["senderProfile"]["fullName"] == "Casey Customer"

        await client.post(url, json={"message": "Yes!"}, headers=auth_headers(PROVIDER_ID))
        await client.post(url, json={"message": "Great"}, headers=auth_headers(CUSTOMER_ID))

        resp = await client.get("/api/v1/conversations", headers=auth_headers(CUSTOMER_ID))
        summary = resp.json()[0]
        assert summary["lastMessage"] == "Great"
        assert summary["providerUnread"] == 2
        assert summary["customerUnread"] == 1

        messages = (await client.get(url, headers=auth_headers(PROVIDER_ID))).json()
        assert [m["message"] for m in messages] == ["Are you free Friday?", "Yes!", "Great"]

    async def test_mark_read_touches_only_callers_counter(self, client: AsyncClient):
        conversation = await _open(client, "Hi")
        url = f"/api/v1/conversations/{conversation['id']}"
        await client.post(f"{url}/messages", json={"message": "Hello"}, headers=auth_headers(PROVIDER_ID))

        resp = await client.patch(f"{url}/read", headers=auth_headers(PROVIDER_ID))
        assert resp.status_code == 200
        body = resp.json()
        assert body["providerUnread"] == 0
        assert body["customerUnread"] == 1

    async def test_outsider_cannot_send_or_read(self, client: AsyncClient):
        conversation = await _open(client, "Hi")
        url = f"/api/v1/conversations/{conversation['id']}"
        outsider = auth_headers(OTHER_CUSTOMER_ID)

        resp = await client.post(f"{url}/messages", json={"message": "let me in"}, headers=outsider)
        assert resp.status_code == 403
        resp = await client.get(f"{url}/messages", headers=outsider)
        assert resp.status_code == 403
        resp = await client.patch(f"{url}/read", headers=outsider)
        assert resp.status_code == 403

    async def test_blank_message_rejected(self, client: AsyncClient):
        conversation = await _open(client)
        resp = await client.post(
            f"/api/v1/conversations/{conversation['id']}/messages",
            json={"message": "   "},
            headers=auth_headers(CUSTOMER_ID),
        )
        assert resp.status_code == 422
