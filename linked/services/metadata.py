"""Open Graph / Twitter Card / favicon extraction for link previews.

Parsing is regex based. Meta tags are matched by ``property=`` or ``name=``
with ``content=`` on either side, so the common attribute orders found in the
wild are covered without an HTML parser.
"""
import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 300

NAMED_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&nbsp;": " ",
}

ENTITY_RE = re.compile(r"&[#\w]+;")
DECIMAL_ENTITY_RE = re.compile(r"&#(\d{1,8});")
HEX_ENTITY_RE = re.compile(r"&#x([0-9a-fA-F]{1,8});")
TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)

ICON_PATTERNS = [
    re.compile(r"""<link[^>]*rel=["'](?:shortcut )?icon["'][^>]*href=["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""<link[^>]*href=["']([^"']+)["'][^>]*rel=["'](?:shortcut )?icon["']""", re.IGNORECASE),
    re.compile(r"""<link[^>]*rel=["']apple-touch-icon["'][^>]*href=["']([^"']+)["']""", re.IGNORECASE),
]


class InvalidURLError(ValueError):
    pass


class MetadataFetchError(Exception):
    def __init__(self, status_code: int, reason: str):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Failed to fetch URL: {status_code} {reason}")


@dataclass
class PageMetadata:
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _meta_patterns(prop: str):
    key = re.escape(prop)
    for attr in ("property", "name"):
        yield re.compile(
            rf"""<meta[^>]*{attr}=["']{key}["'][^>]*content=["']([^"']+)["']""", re.IGNORECASE
        )
        yield re.compile(
            rf"""<meta[^>]*content=["']([^"']+)["'][^>]*{attr}=["']{key}["']""", re.IGNORECASE
        )


def extract_meta_content(html: str, prop: str) -> Optional[str]:
    for pattern in _meta_patterns(prop):
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def _first_meta(html: str, *props: str) -> Optional[str]:
    for prop in props:
        value = extract_meta_content(html, prop)
        if value:
            return value
    return None


def _code_point(entity: str) -> Optional[int]:
    decimal = DECIMAL_ENTITY_RE.fullmatch(entity)
    if decimal:
        return int(decimal.group(1))
    hexadecimal = HEX_ENTITY_RE.fullmatch(entity)
    if hexadecimal:
        return int(hexadecimal.group(1), 16)
    return None


def decode_html_entities(text: str) -> str:
    """Decode named and numeric entities.

    Adjacent high/low surrogate entities combine into one character. Lone
    surrogates and code points past U+10FFFF are left as written.
    """
    decoded = []
    position = 0
    pending = None  # high surrogate waiting for its low half
    for match in ENTITY_RE.finditer(text):
        entity = match.group(0)
        if pending and match.start() != position:
            decoded.append(pending[0])
            pending = None
        decoded.append(text[position:match.start()])
        position = match.end()

        code_point = _code_point(entity)
        if pending:
            high_entity, high = pending
            pending = None
            if code_point is not None and 0xDC00 <= code_point <= 0xDFFF:
                decoded.append(chr(0x10000 + ((high - 0xD800) << 10) + (code_point - 0xDC00)))
                continue
            decoded.append(high_entity)

        if code_point is None:
            decoded.append(NAMED_ENTITIES.get(entity, entity))
        elif 0xD800 <= code_point <= 0xDBFF:
            pending = (entity, code_point)
        elif 0xDC00 <= code_point <= 0xDFFF or code_point > 0x10FFFF:
            decoded.append(entity)
        else:
            decoded.append(chr(code_point))

    if pending:
        decoded.append(pending[0])
    decoded.append(text[position:])
    return "".join(decoded)


def resolve_url(url: str, base_url: str) -> str:
    if not url:
        return url
    if url.startswith("http://") or url.startswith("https://"):
        return url
    if url.startswith("//"):
        scheme = urlparse(base_url).scheme or "https"
        return f"{scheme}:{url}"
    return urljoin(base_url, url)


def extract_title(html: str) -> Optional[str]:
    title = _first_meta(html, "og:title", "twitter:title")
    if title:
        return title
    match = TITLE_RE.search(html)
    if match:
        return match.group(1).strip() or None
    return None


def extract_description(html: str) -> Optional[str]:
    return _first_meta(html, "og:description", "twitter:description", "description")


def extract_image_url(html: str, base_url: str) -> Optional[str]:
    image = _first_meta(html, "og:image", "twitter:image", "twitter:image:src")
    return resolve_url(image, base_url) if image else None


def extract_favicon(html: str, base_url: str) -> str:
    for pattern in ICON_PATTERNS:
        match = pattern.search(html)
        if match:
            return resolve_url(match.group(1), base_url)

    parsed = urlparse(base_url)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}/favicon.ico"
    return "/favicon.ico"


def extract_site_name(html: str, base_url: str) -> Optional[str]:
    site_name = _first_meta(html, "og:site_name", "application-name")
    if site_name:
        return site_name
    hostname = urlparse(base_url).hostname
    if not hostname:
        return None
    return hostname[4:] if hostname.startswith("www.") else hostname


def truncate_description(description: str) -> str:
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return description[:MAX_DESCRIPTION_LENGTH - 3] + "..."
    return description


def parse_metadata(html: str, url: str) -> PageMetadata:
    metadata = PageMetadata(
        url=url,
        title=extract_title(html),
        description=extract_description(html),
        image_url=extract_image_url(html, url),
        favicon=extract_favicon(html, url),
        site_name=extract_site_name(html, url),
    )

    if metadata.title:
        metadata.title = decode_html_entities(metadata.title)
    if metadata.description:
        metadata.description = truncate_description(decode_html_entities(metadata.description))
    if metadata.site_name:
        metadata.site_name = decode_html_entities(metadata.site_name)

    return metadata


def validate_url(url: str) -> str:
    parsed = urlparse(url.strip()) if url else None
    if not parsed or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError("Invalid URL format")
    return parsed.geturl()


async def fetch_metadata(url: str, client: httpx.AsyncClient) -> PageMetadata:
    target = validate_url(url)

    response = await client.get(
        target,
        headers={
            "User-Agent": settings.METADATA_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        },
        follow_redirects=True,
        timeout=settings.METADATA_TIMEOUT,
    )

    if not response.is_success:
        raise MetadataFetchError(response.status_code, response.reason_phrase)

    final_url = str(response.url) or target
    metadata = parse_metadata(response.text, final_url)

    logger.info(f"Fetched metadata for {final_url}: title={metadata.title!r} site_name={metadata.site_name!r}")
    return metadata
