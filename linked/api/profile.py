import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from .. import crud
from ..observability import PROFILE_VIEWS_TOTAL, EVENT_RECORD_FAILURES_TOTAL
from ..schemas import PublicProfile, PublicProfileResponse, PublicLink
from ..services.analytics import AnalyticsStore
from ..services.client_info import extract_analytics_metadata
from ..utils import is_reserved_username

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["profile"])


async def _record_view(request: Request, user: User):
    store: AnalyticsStore = request.app.state.analytics
    try:
        metadata = await extract_analytics_metadata(
            request.headers,
            request.app.state.http_client,
            fallback_ip=request.client.host if request.client else None,
        )
        await store.record_profile_view(user.id, metadata)
        PROFILE_VIEWS_TOTAL.inc()
    except Exception as e:
        EVENT_RECORD_FAILURES_TOTAL.labels(kind="profile_view").inc()
        logger.error(f"Failed to record profile view for user {user.id}: {e}", exc_info=True)


@router.get("/{username}", response_model=PublicProfileResponse)
async def get_public_profile(username: str, request: Request, db: AsyncSession = Depends(get_db)):
    if is_reserved_username(username):
        raise HTTPException(status_code=404, detail="User not found")

    user = await crud.get_user_by_username(db, username)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    links = await crud.get_public_links_by_owner(db, user.id)
    await _record_view(request, user)

    return PublicProfileResponse(
        profile=PublicProfile(
            username=user.username,
            display_name=user.display_name or user.name or user.username,
            pfp_url=user.pfp_url or user.profile_picture,
        ),
        links=[PublicLink.model_validate(link) for link in links],
    )
