import httpx
import pytest

from linked.services.client_info import (
    extract_analytics_metadata,
    extract_referrer_domain,
    get_client_ip,
    parse_user_agent,
)

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 15_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/15.0 Mobile/15E148 Safari/604.1"
)
CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.mark.parametrize("ua", [None, ""])
def test_missing_user_agent_is_unknown(ua):
    parsed = parse_user_agent(ua)
    assert parsed.device_type == "unknown"
    assert parsed.browser == "Unknown"
    assert parsed.os == "Unknown"


def test_unrecognised_user_agent_is_desktop():
    parsed = parse_user_agent("definitely-not-a-browser")
    assert parsed.device_type == "desktop"
    assert parsed.browser == "Unknown"


def test_mobile_user_agent():
    parsed = parse_user_agent(IPHONE)
    assert parsed.device_type == "mobile"
    assert parsed.browser == "Mobile Safari"
    assert parsed.os == "iOS"


def test_tablet_user_agent():
    assert parse_user_agent(IPAD).device_type == "tablet"


def test_desktop_user_agent():
    parsed = parse_user_agent(CHROME_WINDOWS)
    assert parsed.device_type == "desktop"
    assert parsed.browser == "Chrome"
    assert parsed.os == "Windows"


def test_client_ip_header_priority():
    headers = {
        "cf-connecting-ip": "1.1.1.1",
        "x-forwarded-for": "2.2.2.2, 10.0.0.1",
        "x-real-ip": "3.3.3.3",
    }
    assert get_client_ip(headers) == "1.1.1.1"

    del headers["cf-connecting-ip"]
    assert get_client_ip(headers) == "2.2.2.2"

    del headers["x-forwarded-for"]
    assert get_client_ip(headers) == "3.3.3.3"

    assert get_client_ip({}) is None


def test_referrer_domain():
    assert extract_referrer_domain("https://www.google.com/search?q=linked") == "google.com"
    assert extract_referrer_domain("https://t.co/abc") == "t.co"
    assert extract_referrer_domain(None) is None
    assert extract_referrer_domain("") is None
    assert extract_referrer_domain("not a url") is None


@pytest.mark.asyncio
async def test_extract_analytics_metadata():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/json/8.8.8.8"
        return httpx.Response(200, json={"status": "success", "country": "United States", "city": "Mountain View"})

    headers = {
        "user-agent": IPHONE,
        "referer": "https://www.instagram.com/someone",
        "x-forwarded-for": "8.8.8.8",
    }
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        metadata = await extract_analytics_metadata(headers, client)

    assert metadata.ip_address == "8.8.8.8"
    assert metadata.country == "United States"
    assert metadata.city == "Mountain View"
    assert metadata.device_type == "mobile"
    assert metadata.referrer == "https://www.instagram.com/someone"
    assert metadata.referrer_domain == "instagram.com"


@pytest.mark.asyncio
async def test_extract_analytics_metadata_without_headers():
    def handler(request):
        raise AssertionError("local address must not be looked up")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        metadata = await extract_analytics_metadata({}, client, fallback_ip="127.0.0.1")

    assert metadata.ip_address == "127.0.0.1"
    assert metadata.country is None
    assert metadata.user_agent is None
    assert metadata.device_type == "unknown"
    assert metadata.referrer_domain is None
