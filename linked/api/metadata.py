import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from ..models import User
from ..observability import METADATA_FETCH_TOTAL
from ..schemas import MetadataRequest, MetadataOut, MetadataResponse
from ..security import get_current_user
from ..services.metadata import fetch_metadata, InvalidURLError, MetadataFetchError
from ..services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/metadata", tags=["metadata"])


@router.post("/fetch", response_model=MetadataResponse, dependencies=[Depends(RateLimiter())])
async def fetch_link_metadata(body: MetadataRequest, request: Request, user: User = Depends(get_current_user)):
    if not body.url:
        raise HTTPException(status_code=400, detail="URL is required")

    client: httpx.AsyncClient = request.app.state.http_client
    try:
        metadata = await fetch_metadata(body.url, client)
    except InvalidURLError as e:
        METADATA_FETCH_TOTAL.labels(outcome="invalid_url").inc()
        raise HTTPException(status_code=400, detail=str(e))
    except MetadataFetchError as e:
        METADATA_FETCH_TOTAL.labels(outcome="upstream_error").inc()
        logger.info(f"Metadata fetch for {body.url} returned {e.status_code}")
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.HTTPError as e:
        METADATA_FETCH_TOTAL.labels(outcome="error").inc()
        logger.error(f"Error fetching metadata for {body.url}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch metadata")

    METADATA_FETCH_TOTAL.labels(outcome="success").inc()
    return MetadataResponse(metadata=MetadataOut(**metadata.to_dict()))
