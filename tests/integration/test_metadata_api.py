import pytest
from httpx import AsyncClient

PAGE = """
<html>
<head>
  <meta property="og:title" content="Example &amp; Co">
  <meta content="A page about examples" property="og:description">
  <meta property="og:image" content="/images/cover.png">
  <link rel="shortcut icon" href="/static/favicon.ico">
  <title>Ignored</title>
</head>
</html>
"""


@pytest.mark.asyncio
async def test_fetch_metadata(client: AsyncClient, alice, pages, outbound_requests):
    pages["https://www.example.com/post"] = (200, PAGE)

    response = await client.post("/api/metadata/fetch", json={"url": "https://www.example.com/post"})
    assert response.status_code == 200
    assert response.json()["metadata"] == {
        "url": "https://www.example.com/post",
        "title": "Example & Co",
        "description": "A page about examples",
        "image_url": "https://www.example.com/images/cover.png",
        "favicon": "https://www.example.com/static/favicon.ico",
        "site_name": "example.com",
    }
    assert outbound_requests[-1].headers["user-agent"].startswith("Mozilla/5.0 (compatible; LinkedBot/1.0")


@pytest.mark.asyncio
async def test_fetch_metadata_with_unusual_numeric_entities(client: AsyncClient, alice, pages):
    pages["https://example.com/odd"] = (
        200,
        '<meta property="og:title" content="A &#99999999; B"><title>x</title>'
        '<meta property="og:description" content="Smile &#55357;&#56832; and &#55357;">',
    )

    response = await client.post("/api/metadata/fetch", json={"url": "https://example.com/odd"})
    assert response.status_code == 200
    metadata = response.json()["metadata"]
    assert metadata["title"] == "A &#99999999; B"
    assert metadata["description"] == "Smile \U0001F600 and &#55357;"


@pytest.mark.asyncio
async def test_fetch_metadata_upstream_error(client: AsyncClient, alice, pages):
    pages["https://example.com/gone"] = (410, "")

    response = await client.post("/api/metadata/fetch", json={"url": "https://example.com/gone"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Failed to fetch URL: 410 Gone"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload,detail", [
    ({}, "URL is required"),
    ({"url": "example"}, "Invalid URL format"),
])
async def test_fetch_metadata_validation(client: AsyncClient, alice, payload, detail, outbound_requests):
    response = await client.post("/api/metadata/fetch", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == detail
    assert outbound_requests == []
