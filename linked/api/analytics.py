import asyncio
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from .. import crud
from ..schemas import AnalyticsSummary, LinkClickAnalytics, ProfileViewAnalytics
from ..security import get_current_user
from ..services.analytics import AnalyticsStore, get_user_analytics_summary
from ..services.date_ranges import parse_date_range, fill_missing_dates

router = APIRouter(prefix="/analytics", tags=["analytics"])


def get_analytics_store(request: Request) -> AnalyticsStore:
    return request.app.state.analytics


@router.get("/summary", response_model=AnalyticsSummary)
async def analytics_summary(
    range_key: Optional[str] = Query(None, alias="range"),
    user: User = Depends(get_current_user),
    store: AnalyticsStore = Depends(get_analytics_store),
):
    date_range = parse_date_range(range_key)
    summary = await get_user_analytics_summary(store, user.id, date_range)

    summary["clicks_over_time"] = fill_missing_dates(summary["clicks_over_time"], date_range)
    summary["views_over_time"] = fill_missing_dates(summary["views_over_time"], date_range)
    summary["date_range"] = date_range.to_dict()
    return summary


@router.get("/clicks/{link_id}", response_model=LinkClickAnalytics)
async def link_click_analytics(
    link_id: uuid.UUID,
    range_key: Optional[str] = Query(None, alias="range"),
    user: User = Depends(get_current_user),
    store: AnalyticsStore = Depends(get_analytics_store),
    db: AsyncSession = Depends(get_db),
):
    link = await crud.get_link_by_id(db, link_id)
    if not link:
        raise HTTPException(status_code=404, detail="Link not found")
    if link.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    date_range = parse_date_range(range_key)
    total_clicks, clicks_over_time, by_country, by_device, by_browser, by_referrer = await asyncio.gather(
        store.link_click_count(link_id, date_range),
        store.link_clicks_over_time(link_id, date_range),
        store.link_clicks_by_country(link_id, date_range),
        store.link_clicks_by_device(link_id, date_range),
        store.link_clicks_by_browser(link_id, date_range),
        store.link_clicks_by_referrer(link_id, date_range),
    )

    return {
        "link_id": link.id,
        "link_title": link.title,
        "link_url": link.url,
        "total_clicks": total_clicks,
        "clicks_over_time": fill_missing_dates(clicks_over_time, date_range),
        "by_country": by_country,
        "by_device": by_device,
        "by_browser": by_browser,
        "by_referrer": by_referrer,
        "date_range": date_range.to_dict(),
    }


@router.get("/views", response_model=ProfileViewAnalytics)
async def profile_view_analytics(
    range_key: Optional[str] = Query(None, alias="range"),
    user: User = Depends(get_current_user),
    store: AnalyticsStore = Depends(get_analytics_store),
):
    date_range = parse_date_range(range_key)
    total_views, views_over_time, by_country, by_referrer = await asyncio.gather(
        store.profile_view_count(user.id, date_range),
        store.profile_views_over_time(user.id, date_range),
        store.profile_views_by_country(user.id, date_range),
        store.profile_views_by_referrer(user.id, date_range),
    )

    return {
        "total_views": total_views,
        "views_over_time": fill_missing_dates(views_over_time, date_range),
        "by_country": by_country,
        "by_referrer": by_referrer,
        "date_range": date_range.to_dict(),
    }
