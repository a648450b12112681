"""
E2E: Provider listings and the public browse page.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from tests.e2e.conftest import (
    CUSTOMER_ID,
    PROVIDER_ID,
    SERVICE_ID,
    SERVICE_TITLE,
    auth_headers,
    create_booking_via_api,
)


pytestmark = pytest.mark.asyncio


def _listing_body(**overrides) -> dict:
    body = {
        "title": "Lawn Mowing",
        "description": "Weekly mowing and edging",
        "category": "Outdoor",
        "specificService": "Mowing",
        "pricingType": "fixed",
        "pricingAmount": 60,
        "locationCity": "Round Rock",
        "locationState": "TX",
        "availabilityDays": ["saturday"],
        "features": ["Clippings removed"],
    }
    body.update(overrides)
    return body


class TestCreateListing:

    async def test_provider_creates_active_listing(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/listings", json=_listing_body(), headers=auth_headers(PROVIDER_ID),
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "active"
        assert body["views"] == 0
        assert body["provider"]["id"] == str(PROVIDER_ID)

    async def test_custom_pricing_has_no_amount(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/listings",
            json=_listing_body(pricingType="custom", pricingAmount=99),
            headers=auth_headers(PROVIDER_ID),
        )
        assert resp.json()["pricingAmount"] is None

    async def test_customer_cannot_create(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/listings", json=_listing_body(), headers=auth_headers(CUSTOMER_ID),
        )
        assert resp.status_code == 403


class TestStatusAndViews:

    async def test_pause_then_reactivate_keeps_other_fields(self, client: AsyncClient):
        headers = auth_headers(PROVIDER_ID)
        before = (await client.get(f"/api/v1/listings/{SERVICE_ID}")).json()

        resp = await client.patch(
            f"/api/v1/listings/{SERVICE_ID}/status", json={"status": "paused"}, headers=headers,
        )
        assert resp.json()["status"] == "paused"
        resp = await client.patch(
            f"/api/v1/listings/{SERVICE_ID}/status", json={"status": "active"}, headers=headers,
        )
        after = resp.json()

        assert after["status"] == "active"
        for key in before:
            if key not in ("status", "updatedAt"):
                assert after[key] == before[key], key

    async def test_paused_listing_hidden_from_browse(self, client: AsyncClient):
        await client.patch(
            f"/api/v1/listings/{SERVICE_ID}/status",
            json={"status": "paused"},
            headers=auth_headers(PROVIDER_ID),
        )
        resp = await client.get("/api/v1/listings")
        assert resp.json() == []

    async def test_only_owner_changes_status(self, client: AsyncClient):
        resp = await client.patch(
            f"/api/v1/listings/{SERVICE_ID}/status",
            json={"status": "inactive"},
            headers=auth_headers(CUSTOMER_ID),
        )
        assert resp.status_code == 403

    async def test_views_increment(self, client: AsyncClient):
        for expected in (1, 2, 3):
            resp = await client.post(f"/api/v1/listings/{SERVICE_ID}/views")
            assert resp.json()["views"] == expected

        stats = (await client.get("/api/v1/listings/mine/stats", headers=auth_headers(PROVIDER_ID))).json()
        assert stats["totalViews"] == 3
        assert stats["active"] == 1

    async def test_views_of_missing_listing(self, client: AsyncClient):
        resp = await client.post("/api/v1/listings/99999999-9999-9999-9999-999999999999/views")
        assert resp.status_code == 404


class TestBrowse:

    async def test_browse_filters(self, client: AsyncClient):
        await client.post("/api/v1/listings", json=_listing_body(), headers=auth_headers(PROVIDER_ID))

        titles = lambda resp: sorted(item["title"] for item in resp.json())  # noqa: E731

        assert titles(await client.get("/api/v1/listings")) == [SERVICE_TITLE, "Lawn Mowing"]
        assert titles(await client.get("/api/v1/listings", params={"category": "Cleaning"})) == [SERVICE_TITLE]
        assert titles(await client.get("/api/v1/listings", params={"search": "edging"})) == ["Lawn Mowing"]
        assert titles(await client.get("/api/v1/listings", params={"location": "round"})) == ["Lawn Mowing"]
        assert len((await client.get("/api/v1/listings", params={"verifiedOnly": "true"})).json()) == 2

    async def test_mine_filters(self, client: AsyncClient):
        headers = auth_headers(PROVIDER_ID)
        await client.post("/api/v1/listings", json=_listing_body(), headers=headers)

        resp = await client.get("/api/v1/listings/mine", params={"search": "mow"}, headers=headers)
        assert [item["title"] for item in resp.json()] == ["Lawn Mowing"]


class TestDeleteAndImages:

    async def test_delete_survives_storage_failure(self, client: AsyncClient):
        from truelocal.services.storageService import StorageError

        with patch(
            "truelocal.services.listingService.storageService.delete_service_images",
            new_callable=AsyncMock,
            side_effect=StorageError("bucket unreachable"),
        ):
            resp = await client.delete(
                f"/api/v1/listings/{SERVICE_ID}", headers=auth_headers(PROVIDER_ID),
            )
        assert resp.status_code == 204
        assert (await client.get(f"/api/v1/listings/{SERVICE_ID}")).status_code == 404

    async def test_failed_image_upload_is_skipped(self, client: AsyncClient):
        from truelocal.services.storageService import StorageError

        upload = AsyncMock(side_effect=["http://cdn/one.jpg", StorageError("boom"), "http://cdn/three.jpg"])
        with patch("truelocal.services.listingService.storageService.upload_service_image", upload):
            resp = await client.post(
                f"/api/v1/listings/{SERVICE_ID}/images",
                files=[
                    ("files", ("one.jpg", b"1", "image/jpeg")),
                    ("files", ("two.jpg", b"2", "image/jpeg")),
                    ("files", ("three.jpg", b"3", "image/jpeg")),
                ],
                headers=auth_headers(PROVIDER_ID),
            )
        assert resp.status_code == 200, resp.text
        assert resp.json()["images"] == ["http://cdn/one.jpg", "http://cdn/three.jpg"]

    async def test_delete_keeps_existing_bookings(self, client: AsyncClient):
        booking_id = (await create_booking_via_api(client))["booking"]["id"]
        await client.patch(
            f"/api/v1/bookings/{booking_id}/status",
            json={"status": "completed", "totalAmount": 120},
            headers=auth_headers(PROVIDER_ID),
        )
        customer = auth_headers(CUSTOMER_ID)
        before = (await client.get("/api/v1/bookings/stats", headers=customer)).json()

        with patch(
            "truelocal.services.listingService.storageService.delete_service_images",
            new_callable=AsyncMock,
        ):
            resp = await client.delete(
                f"/api/v1/listings/{SERVICE_ID}", headers=auth_headers(PROVIDER_ID),
            )
        assert resp.status_code == 204

        after = (await client.get("/api/v1/bookings/stats", headers=customer)).json()
        assert after == before
        assert after["total"] == 1
        assert after["totalRevenue"] == 120

        booking = (await client.get(f"/api/v1/bookings/{booking_id}", headers=customer)).json()
        assert booking["serviceId"] is None
        assert booking["service"] is None
        assert booking["customerName"] == "Casey Customer"

        resp = await client.get("/api/v1/bookings", params={"search": "bedrooms"}, headers=customer)
        assert [b["id"] for b in resp.json()] == [booking_id]
