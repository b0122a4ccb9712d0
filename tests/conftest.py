import uuid
from datetime import datetime
from typing import AsyncGenerator, Callable, Dict, Tuple

import httpx
import pytest
from httpx import AsyncClient, ASGITransport

from linked.config import Settings
from linked.main import create_app
from linked.models import ClickEvent, ProfileViewEvent

GEO_RESPONSE = {"status": "success", "country": "Germany", "city": "Berlin"}


@pytest.fixture
def pages() -> Dict[str, Tuple[int, str]]:
    """URL -> (status, html) served to the app's outbound HTTP client."""
    return {}


@pytest.fixture
def outbound_requests():
    return []


@pytest.fixture
def outbound_transport(pages, outbound_requests) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        outbound_requests.append(request)
        if request.url.host == "ip-api.com":
            return httpx.Response(200, json=GEO_RESPONSE)
        page = pages.get(str(request.url))
        if page is None:
            return httpx.Response(404)
        status, html = page
        return httpx.Response(status, text=html, headers={"content-type": "text/html"})

    return httpx.MockTransport(handler)


@pytest.fixture
async def app(tmp_path, outbound_transport):
    settings = Settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", REDIS_URL=None)
    application = create_app(settings, http_transport=outbound_transport)
    # ASGITransport does not run lifespan events, so enter it here
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client_factory(app) -> AsyncGenerator[Callable[[], AsyncClient], None]:
    clients = []

    def make() -> AsyncClient:
        c = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(c)
        return c

    yield make
    for c in clients:
        await c.aclose()


@pytest.fixture
def client(client_factory) -> AsyncClient:
    return client_factory()


@pytest.fixture
def register_user():
    async def register(
        client: AsyncClient,
        username: str = "alice",
        phone: str = "+15550000001",
        pin: str = "1234",
        name: str = "Alice",
    ) -> dict:
        response = await client.post(
            "/api/auth/register",
            json={"username": username, "name": name, "phone": phone, "pin": pin},
        )
        assert response.status_code == 201, response.text
        return response.json()["user"]

    return register


@pytest.fixture
async def alice(client, register_user) -> dict:
    """Registered and logged in on ``client``. First user, so an admin."""
    return await register_user(client)


@pytest.fixture
def create_link():
    async def create(client: AsyncClient, url: str = "https://example.com", **fields) -> dict:
        response = await client.post("/api/links", json={"url": url, **fields})
        assert response.status_code == 201, response.text
        return response.json()["link"]

    return create


@pytest.fixture
def add_click(app):
    async def add(link_id, occurred_at: datetime, **fields) -> ClickEvent:
        event = ClickEvent(id=uuid.uuid4(), link_id=uuid.UUID(str(link_id)), occurred_at=occurred_at, **fields)
        async with app.state.db.session() as session:
            session.add(event)
            await session.commit()
        return event

    return add


@pytest.fixture
def add_view(app):
    async def add(user_id, occurred_at: datetime, **fields) -> ProfileViewEvent:
        event = ProfileViewEvent(id=uuid.uuid4(), user_id=uuid.UUID(str(user_id)), occurred_at=occurred_at, **fields)
        async with app.state.db.session() as session:
            session.add(event)
            await session.commit()
        return event

    return add
