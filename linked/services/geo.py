import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import settings
from ..observability import GEO_LOOKUP_FAILURES_TOTAL

logger = logging.getLogger(__name__)

LOCAL_ADDRESSES = {"127.0.0.1", "::1"}


@dataclass(frozen=True)
class GeoData:
    country: Optional[str] = None
    city: Optional[str] = None


def _is_local(ip_address: str) -> bool:
    return ip_address in LOCAL_ADDRESSES or ip_address.startswith("192.168.")


async def lookup_geo(ip_address: Optional[str], client: httpx.AsyncClient) -> GeoData:
    """Best-effort country/city for an IP. Never raises."""
    if not ip_address or _is_local(ip_address):
        return GeoData()

    try:
        response = await client.get(
            f"{settings.GEO_LOOKUP_URL}/{ip_address}",
            params={"fields": "status,country,city"},
            timeout=settings.GEO_LOOKUP_TIMEOUT,
        )
        if response.status_code != 200:
            logger.warning(f"Geo lookup failed for {ip_address}: {response.status_code}")
            GEO_LOOKUP_FAILURES_TOTAL.inc()
            return GeoData()

        data = response.json()
        if data.get("status") == "fail":
            GEO_LOOKUP_FAILURES_TOTAL.inc()
            return GeoData()

        return GeoData(country=data.get("country") or None, city=data.get("city") or None)
    except Exception as e:
        logger.warning(f"Geo lookup error for {ip_address}: {e}")
        GEO_LOOKUP_FAILURES_TOTAL.inc()
        return GeoData()
