"""Click and profile-view events: recording and read-only aggregation.

Every query opens its own session from the injected session factory, so any
number of them can be awaited together with ``asyncio.gather``.
"""
import asyncio
import logging
import math
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, desc, literal_column
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import ClickEvent, ProfileViewEvent, Link, DeviceType, utcnow
from .client_info import EventMetadata
from .date_ranges import DateRange

logger = logging.getLogger(__name__)

# Label used for events with no value in a breakdown dimension. Shared by the
# per-link, per-user and profile-view queries.
BREAKDOWN_DEFAULTS = {
    "country": "Unknown",
    "device_type": DeviceType.UNKNOWN.value,
    "browser": "Unknown",
    "referrer_domain": "Direct",
}

SUMMARY_TOP_N = 5


def percentage_change(current: int, previous: int) -> int:
    if previous > 0:
        # Half-up rounding: +12.5% reports as 13
        return math.floor((current - previous) / previous * 100 + 0.5)
    return 100 if current > 0 else 0


def utc_day(column, dialect_name: str):
    """Calendar day of a timestamp column, in UTC."""
    if dialect_name == "postgresql":
        # timestamptz is rendered in the session TimeZone
        column = func.timezone(literal_column("'UTC'"), column)
    return func.date(column)


def _event_row(model, owner_field: str, owner_id: uuid.UUID, metadata: EventMetadata):
    return model(
        id=uuid.uuid4(),
        occurred_at=utcnow(),
        ip_address=metadata.ip_address,
        country=metadata.country,
        city=metadata.city,
        user_agent=metadata.user_agent,
        device_type=metadata.device_type or DeviceType.UNKNOWN.value,
        browser=metadata.browser,
        os=metadata.os,
        referrer=metadata.referrer,
        referrer_domain=metadata.referrer_domain,
        **{owner_field: owner_id},
    )


def _merge_breakdown(rows, dimension: str) -> List[Dict[str, Any]]:
    default = BREAKDOWN_DEFAULTS[dimension]
    counts: Dict[str, int] = {}
    for value, count in rows:
        label = default if value is None else value
        counts[label] = counts.get(label, 0) + int(count)
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [{"value": value, "count": count} for value, count in ordered]


class AnalyticsStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_click(self, link_id: uuid.UUID, metadata: EventMetadata) -> ClickEvent:
        event = _event_row(ClickEvent, "link_id", link_id, metadata)
        async with self.session_factory() as session:
            session.add(event)
            await session.commit()
        logger.info(f"Recorded click on link {link_id} (country={metadata.country}, device={event.device_type})")
        return event

    async def record_profile_view(self, user_id: uuid.UUID, metadata: EventMetadata) -> ProfileViewEvent:
        event = _event_row(ProfileViewEvent, "user_id", user_id, metadata)
        async with self.session_factory() as session:
            session.add(event)
            await session.commit()
        logger.info(f"Recorded profile view for user {user_id} (country={metadata.country}, device={event.device_type})")
        return event

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def _filter(self, stmt, model, owner_clause, date_range: Optional[DateRange]):
        stmt = stmt.where(owner_clause)
        if date_range:
            stmt = stmt.where(model.occurred_at >= date_range.start, model.occurred_at <= date_range.end)
        return stmt

    def _link_scope(self, stmt, link_id: uuid.UUID, date_range: Optional[DateRange]):
        return self._filter(stmt, ClickEvent, ClickEvent.link_id == link_id, date_range)

    def _user_scope(self, stmt, user_id: uuid.UUID, date_range: Optional[DateRange]):
        stmt = stmt.join(Link, ClickEvent.link_id == Link.id)
        return self._filter(stmt, ClickEvent, Link.owner_id == user_id, date_range)

    def _views_scope(self, stmt, user_id: uuid.UUID, date_range: Optional[DateRange]):
        return self._filter(stmt, ProfileViewEvent, ProfileViewEvent.user_id == user_id, date_range)

    async def _time_series(self, model, scope, owner_id, date_range: DateRange) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            day = utc_day(model.occurred_at, session.bind.dialect.name)
            stmt = scope(select(day.label("date"), func.count().label("count")).select_from(model), owner_id, date_range)
            stmt = stmt.group_by(day).order_by(day)
            result = await session.execute(stmt)
            return [{"date": str(row.date), "count": int(row.count)} for row in result]

    async def _breakdown(self, model, scope, owner_id, dimension: str, date_range: Optional[DateRange]):
        column = getattr(model, dimension)
        stmt = scope(select(column, func.count()).select_from(model), owner_id, date_range)
        stmt = stmt.group_by(column)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return _merge_breakdown(result.all(), dimension)

    async def _count(self, model, scope, owner_id, date_range: Optional[DateRange]) -> int:
        stmt = scope(select(func.count()).select_from(model), owner_id, date_range)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one() or 0)

    # ------------------------------------------------------------------
    # Per link
    # ------------------------------------------------------------------

    async def link_clicks_over_time(self, link_id: uuid.UUID, date_range: DateRange):
        return await self._time_series(ClickEvent, self._link_scope, link_id, date_range)

    async def link_clicks_by_country(self, link_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._link_scope, link_id, "country", date_range)

    async def link_clicks_by_device(self, link_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._link_scope, link_id, "device_type", date_range)

    async def link_clicks_by_browser(self, link_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._link_scope, link_id, "browser", date_range)

    async def link_clicks_by_referrer(self, link_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._link_scope, link_id, "referrer_domain", date_range)

    async def link_click_count(self, link_id: uuid.UUID, date_range: Optional[DateRange] = None) -> int:
        return await self._count(ClickEvent, self._link_scope, link_id, date_range)

    # ------------------------------------------------------------------
    # Per user, across all of their links
    # ------------------------------------------------------------------

    async def user_clicks_over_time(self, user_id: uuid.UUID, date_range: DateRange):
        return await self._time_series(ClickEvent, self._user_scope, user_id, date_range)

    async def user_clicks_by_country(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._user_scope, user_id, "country", date_range)

    async def user_clicks_by_device(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._user_scope, user_id, "device_type", date_range)

    async def user_clicks_by_browser(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._user_scope, user_id, "browser", date_range)

    async def user_clicks_by_referrer(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ClickEvent, self._user_scope, user_id, "referrer_domain", date_range)

    async def user_total_clicks(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None) -> int:
        return await self._count(ClickEvent, self._user_scope, user_id, date_range)

    async def user_top_links(
        self, user_id: uuid.UUID, date_range: Optional[DateRange] = None, limit: int = 10
    ) -> List[Dict[str, Any]]:
        clicks = func.count(ClickEvent.id).label("clicks")
        stmt = self._user_scope(select(Link.id, Link.title, Link.url, clicks).select_from(ClickEvent), user_id, date_range)
        stmt = stmt.group_by(Link.id, Link.title, Link.url).order_by(desc(clicks)).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                {"link_id": row.id, "title": row.title, "url": row.url, "clicks": int(row.clicks)}
                for row in result
            ]

    # ------------------------------------------------------------------
    # Profile views
    # ------------------------------------------------------------------

    async def profile_views_over_time(self, user_id: uuid.UUID, date_range: DateRange):
        return await self._time_series(ProfileViewEvent, self._views_scope, user_id, date_range)

    async def profile_view_count(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None) -> int:
        return await self._count(ProfileViewEvent, self._views_scope, user_id, date_range)

    async def profile_views_by_country(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ProfileViewEvent, self._views_scope, user_id, "country", date_range)

    async def profile_views_by_referrer(self, user_id: uuid.UUID, date_range: Optional[DateRange] = None):
        return await self._breakdown(ProfileViewEvent, self._views_scope, user_id, "referrer_domain", date_range)


async def get_user_analytics_summary(store: AnalyticsStore, user_id: uuid.UUID, date_range: DateRange) -> Dict[str, Any]:
    """Totals, period-over-period deltas, top breakdowns and raw time series.

    Time series are returned as stored; callers fill missing days.
    """
    previous_range = date_range.previous()

    (
        total_clicks,
        previous_clicks,
        total_views,
        previous_views,
        top_countries,
        top_devices,
        top_referrers,
        top_links,
        clicks_over_time,
        views_over_time,
    ) = await asyncio.gather(
        store.user_total_clicks(user_id, date_range),
        store.user_total_clicks(user_id, previous_range),
        store.profile_view_count(user_id, date_range),
        store.profile_view_count(user_id, previous_range),
        store.user_clicks_by_country(user_id, date_range),
        store.user_clicks_by_device(user_id, date_range),
        store.user_clicks_by_referrer(user_id, date_range),
        store.user_top_links(user_id, date_range, SUMMARY_TOP_N),
        store.user_clicks_over_time(user_id, date_range),
        store.profile_views_over_time(user_id, date_range),
    )

    return {
        "total_clicks": total_clicks,
        "total_profile_views": total_views,
        "clicks_change": percentage_change(total_clicks, previous_clicks),
        "views_change": percentage_change(total_views, previous_views),
        "top_countries": top_countries[:SUMMARY_TOP_N],
        "top_devices": top_devices[:SUMMARY_TOP_N],
        "top_referrers": top_referrers[:SUMMARY_TOP_N],
        "top_links": top_links,
        "clicks_over_time": clicks_over_time,
        "views_over_time": views_over_time,
    }
