import uuid

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_and_list_links(client: AsyncClient, alice, create_link):
    first = await create_link(client, "https://example.com/a", title="A")
    second = await create_link(client, "https://example.com/b", title="B", is_public=False)

    assert first["position"] == 0
    assert second["position"] == 1
    assert first["is_public"] is True
    assert second["is_public"] is False
    assert first["click_count"] == 0
    assert first["owner_id"] == alice["id"]

    response = await client.get("/api/links")
    assert [link["title"] for link in response.json()["links"]] == ["A", "B"]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload,detail", [
    ({}, "URL is required"),
    ({"url": "not a url"}, "Invalid URL format"),
    ({"url": "mailto:someone@example.com"}, "Invalid URL format"),
])
async def test_create_link_validation(client: AsyncClient, alice, payload, detail):
    response = await client.post("/api/links", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == detail


@pytest.mark.asyncio
async def test_reorder_links(client: AsyncClient, alice, create_link):
    a = await create_link(client, "https://example.com/a", title="a")
    b = await create_link(client, "https://example.com/b", title="b")
    c = await create_link(client, "https://example.com/c", title="c")

    response = await client.post("/api/links/reorder", json={"link_ids": [b["id"], c["id"], a["id"]]})
    assert response.status_code == 200

    links = {link["title"]: link["position"] for link in (await client.get("/api/links")).json()["links"]}
    assert links == {"a": 2, "b": 0, "c": 1}


@pytest.mark.asyncio
async def test_reorder_ignores_links_of_other_users(client: AsyncClient, client_factory, alice, register_user, create_link):
    mine = await create_link(client, "https://example.com/mine")

    bob_client = client_factory()
    await register_user(bob_client, username="bob", phone="+15550000002")
    theirs = await create_link(bob_client, "https://example.com/theirs")
    await create_link(bob_client, "https://example.com/theirs-2")

    await client.post("/api/links/reorder", json={"link_ids": [str(uuid.uuid4()), theirs["id"], mine["id"]]})

    assert (await client.get(f"/api/links/{mine['id']}")).json()["link"]["position"] == 2
    assert (await bob_client.get(f"/api/links/{theirs['id']}")).json()["link"]["position"] == 0


@pytest.mark.asyncio
async def test_reorder_requires_ids(client: AsyncClient, alice):
    response = await client.post("/api/links/reorder", json={})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_link_partial(client: AsyncClient, alice, create_link):
    link = await create_link(client, "https://example.com", title="Old", description="Keep me")

    response = await client.put(f"/api/links/{link['id']}", json={"title": "New", "is_public": False})
    assert response.status_code == 200
    updated = response.json()["link"]
    assert updated["title"] == "New"
    assert updated["description"] == "Keep me"
    assert updated["is_public"] is False

    cleared = await client.put(f"/api/links/{link['id']}", json={"description": None})
    assert cleared.json()["link"]["description"] is None

    invalid = await client.put(f"/api/links/{link['id']}", json={"url": "nope"})
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_other_users_links_are_forbidden(client: AsyncClient, client_factory, alice, register_user, create_link):
    link = await create_link(client)

    bob_client = client_factory()
    await register_user(bob_client, username="bob", phone="+15550000002")

    assert (await bob_client.get(f"/api/links/{link['id']}")).status_code == 403
    assert (await bob_client.put(f"/api/links/{link['id']}", json={"title": "x"})).status_code == 403
    assert (await bob_client.delete(f"/api/links/{link['id']}")).status_code == 403
    assert (await client.get(f"/api/links/{link['id']}")).status_code == 200


@pytest.mark.asyncio
async def test_missing_link_is_404(client: AsyncClient, alice):
    assert (await client.get(f"/api/links/{uuid.uuid4()}")).status_code == 404
    assert (await client.delete(f"/api/links/{uuid.uuid4()}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_link_cascades_click_events(app, client: AsyncClient, alice, create_link, add_click):
    from datetime import datetime, timezone

    link = await create_link(client)
    await add_click(link["id"], datetime.now(timezone.utc))

    response = await client.delete(f"/api/links/{link['id']}")
    assert response.status_code == 200
    assert response.json() == {"success": True}

    store = app.state.analytics
    assert await store.link_click_count(uuid.UUID(link["id"])) == 0


@pytest.mark.asyncio
async def test_link_stats(client: AsyncClient, alice, create_link):
    public = await create_link(client, "https://example.com/a")
    await create_link(client, "https://example.com/b", is_public=False)
    await client.get(f"/api/go/{public['id']}")
    await client.get(f"/api/go/{public['id']}")

    response = await client.get("/api/links/stats")
    assert response.json() == {"total_links": 2, "public_links": 1, "total_clicks": 2}
