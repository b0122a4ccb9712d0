"""Request-derived analytics context: user agent, client IP, referrer, geo."""
import logging
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

import httpx
from user_agents import parse as parse_ua

from ..models import DeviceType
from .geo import lookup_geo

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ParsedUserAgent:
    device_type: str
    browser: str
    os: str


@dataclass
class EventMetadata:
    ip_address: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    user_agent: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    referrer: Optional[str] = None
    referrer_domain: Optional[str] = None


def _family(value: Optional[str]) -> str:
    if not value or value == "Other":
        return UNKNOWN
    return value


def parse_user_agent(user_agent: Optional[str]) -> ParsedUserAgent:
    # No header at all is "unknown"; a header we cannot classify is "desktop".
    if not user_agent:
        return ParsedUserAgent(DeviceType.UNKNOWN.value, UNKNOWN, UNKNOWN)

    ua = parse_ua(user_agent)
    if ua.is_tablet:
        device_type = DeviceType.TABLET.value
    elif ua.is_mobile:
        device_type = DeviceType.MOBILE.value
    else:
        device_type = DeviceType.DESKTOP.value

    return ParsedUserAgent(device_type, _family(ua.browser.family), _family(ua.os.family))


def get_client_ip(headers: Mapping[str, str]) -> Optional[str]:
    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        # First entry is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return None


def extract_referrer_domain(referrer: Optional[str]) -> Optional[str]:
    if not referrer:
        return None
    try:
        hostname = urlparse(referrer).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return hostname[4:] if hostname.startswith("www.") else hostname


async def extract_analytics_metadata(
    headers: Mapping[str, str],
    client: httpx.AsyncClient,
    fallback_ip: Optional[str] = None,
) -> EventMetadata:
    user_agent = headers.get("user-agent")
    referrer = headers.get("referer") or headers.get("referrer")
    ip_address = get_client_ip(headers) or fallback_ip

    parsed = parse_user_agent(user_agent)
    geo = await lookup_geo(ip_address, client)

    return EventMetadata(
        ip_address=ip_address or None,
        country=geo.country,
        city=geo.city,
        user_agent=user_agent or None,
        device_type=parsed.device_type,
        browser=parsed.browser,
        os=parsed.os,
        referrer=referrer or None,
        referrer_domain=extract_referrer_domain(referrer),
    )
