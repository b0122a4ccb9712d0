import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Link
from .. import crud
from ..observability import REDIRECT_TOTAL, REDIRECT_404_TOTAL, EVENT_RECORD_FAILURES_TOTAL
from ..services.analytics import AnalyticsStore
from ..services.client_info import extract_analytics_metadata

logger = logging.getLogger(__name__)

router = APIRouter(tags=["redirect"])


async def _find_link(db: AsyncSession, link_id: str) -> Optional[Link]:
    try:
        parsed = uuid.UUID(link_id)
    except ValueError:
        return None
    return await crud.get_link_by_id(db, parsed)


async def _record_click(request: Request, link_id: uuid.UUID):
    store: AnalyticsStore = request.app.state.analytics
    metadata = await extract_analytics_metadata(
        request.headers,
        request.app.state.http_client,
        fallback_ip=request.client.host if request.client else None,
    )
    await store.record_click(link_id, metadata)


@router.get("/go/{link_id}")
async def redirect_to_link(link_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    link = await _find_link(db, link_id)
    if not link:
        REDIRECT_404_TOTAL.inc()
        raise HTTPException(status_code=404, detail="Link not found")

    target_url = link.url

    # Event row and counter are written independently; neither blocks the redirect
    results = await asyncio.gather(
        _record_click(request, link.id),
        crud.increment_link_clicks(db, link.id),
        return_exceptions=True,
    )
    for kind, result in zip(("click", "click_count"), results):
        if isinstance(result, Exception):
            EVENT_RECORD_FAILURES_TOTAL.labels(kind=kind).inc()
            logger.error(f"Failed to record {kind} for link {link.id}: {result}", exc_info=result)

    REDIRECT_TOTAL.inc()
    return RedirectResponse(url=target_url, status_code=302)
