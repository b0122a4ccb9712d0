import uuid

import pytest
from httpx import AsyncClient

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
)


@pytest.mark.asyncio
async def test_redirect_records_click(app, client: AsyncClient, client_factory, alice, create_link):
    link = await create_link(client, "https://example.com/target")

    visitor = client_factory()
    response = await visitor.get(
        f"/api/go/{link['id']}",
        headers={
            "user-agent": IPHONE,
            "referer": "https://www.instagram.com/alice",
            "x-forwarded-for": "203.0.113.7, 10.0.0.1",
        },
    )
    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/target"

    updated = (await client.get(f"/api/links/{link['id']}")).json()["link"]
    assert updated["click_count"] == 1

    store = app.state.analytics
    link_id = uuid.UUID(link["id"])
    assert await store.link_click_count(link_id) == 1
    assert await store.link_clicks_by_country(link_id) == [{"value": "Germany", "count": 1}]
    assert await store.link_clicks_by_device(link_id) == [{"value": "mobile", "count": 1}]
    assert await store.link_clicks_by_referrer(link_id) == [{"value": "instagram.com", "count": 1}]


@pytest.mark.asyncio
async def test_redirect_without_headers_records_defaults(app, client: AsyncClient, alice, create_link):
    link = await create_link(client)

    response = await client.get(f"/api/go/{link['id']}", headers={"user-agent": ""})
    assert response.status_code == 302

    link_id = uuid.UUID(link["id"])
    store = app.state.analytics
    assert await store.link_clicks_by_country(link_id) == [{"value": "Unknown", "count": 1}]
    assert await store.link_clicks_by_device(link_id) == [{"value": "unknown", "count": 1}]
    assert await store.link_clicks_by_referrer(link_id) == [{"value": "Direct", "count": 1}]


@pytest.mark.asyncio
async def test_redirect_unknown_link(client: AsyncClient):
    assert (await client.get(f"/api/go/{uuid.uuid4()}")).status_code == 404
    assert (await client.get("/api/go/not-a-uuid")).status_code == 404


@pytest.mark.asyncio
async def test_redirect_survives_event_write_failure(app, client: AsyncClient, alice, create_link, monkeypatch):
    link = await create_link(client, "https://example.com/still-works")

    async def broken(*args, **kwargs):
        raise RuntimeError("event store unavailable")

    monkeypatch.setattr(app.state.analytics, "record_click", broken)

    response = await client.get(f"/api/go/{link['id']}")
    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/still-works"

    updated = (await client.get(f"/api/links/{link['id']}")).json()["link"]
    assert updated["click_count"] == 1
