import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import UserStatus


class PendingUserData(BaseModel):
    # Identity-provider details carried through register / login
    renaissance_id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    pfp_url: Optional[str] = None
    account_address: Optional[str] = None


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    pin: Optional[str] = None
    email: Optional[str] = None
    pending_user_data: Optional[PendingUserData] = None


class PhoneLoginRequest(BaseModel):
    phone: Optional[str] = None
    pin: Optional[str] = None
    pending_user_data: Optional[PendingUserData] = None


class SetPinRequest(BaseModel):
    phone: Optional[str] = None
    pin: Optional[str] = None
    pending_user_data: Optional[PendingUserData] = None


class ContextUser(BaseModel):
    username: Optional[str] = None
    display_name: Optional[str] = None
    pfp_url: Optional[str] = None
    public_address: Optional[str] = None


class ContextAuthRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    renaissance_user_id: Optional[str] = None
    user: Optional[ContextUser] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    renaissance_id: Optional[str] = Field(None, validation_alias="external_id")
    username: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    pfp_url: Optional[str] = None
    profile_picture: Optional[str] = None
    account_address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: str
    role: str


class UserResponse(BaseModel):
    success: bool = True
    user: UserOut


class MeResponse(BaseModel):
    user: Optional[UserOut] = None


class LoginStatusResponse(BaseModel):
    """Step one of phone login: what the client must ask for next."""
    user_id: uuid.UUID
    has_pin: bool
    requires_pin: bool = False
    needs_set_pin: bool = False
    is_locked: bool = False
    display_name: Optional[str] = None


class LinkCreate(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None
    is_public: Optional[bool] = None


class LinkUpdate(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None
    is_public: Optional[bool] = None


class LinkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: uuid.UUID
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None
    position: int
    is_public: bool
    click_count: int
    created_at: datetime
    updated_at: datetime


class LinkResponse(BaseModel):
    link: LinkOut


class LinkListResponse(BaseModel):
    links: List[LinkOut]


class LinkStats(BaseModel):
    total_links: int
    public_links: int
    total_clicks: int


class ReorderRequest(BaseModel):
    link_ids: Optional[List[uuid.UUID]] = None


class SuccessResponse(BaseModel):
    success: bool = True


class MetadataRequest(BaseModel):
    url: Optional[str] = None


class MetadataOut(BaseModel):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None


class MetadataResponse(BaseModel):
    metadata: MetadataOut


class PublicLink(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None


class PublicProfile(BaseModel):
    username: Optional[str] = None
    display_name: Optional[str] = None
    pfp_url: Optional[str] = None


class PublicProfileResponse(BaseModel):
    profile: PublicProfile
    links: List[PublicLink]


class StatusUpdate(BaseModel):
    status: UserStatus


class DateRangeOut(BaseModel):
    start: datetime
    end: datetime


class TimeSeriesPoint(BaseModel):
    date: str
    count: int


class BreakdownEntry(BaseModel):
    value: str
    count: int


class TopLink(BaseModel):
    link_id: uuid.UUID
    title: Optional[str] = None
    url: str
    clicks: int


class AnalyticsSummary(BaseModel):
    total_clicks: int
    total_profile_views: int
    clicks_change: int
    views_change: int
    top_countries: List[BreakdownEntry]
    top_devices: List[BreakdownEntry]
    top_referrers: List[BreakdownEntry]
    top_links: List[TopLink]
    clicks_over_time: List[TimeSeriesPoint]
    views_over_time: List[TimeSeriesPoint]
    date_range: DateRangeOut


class LinkClickAnalytics(BaseModel):
    link_id: uuid.UUID
    link_title: Optional[str] = None
    link_url: str
    total_clicks: int
    clicks_over_time: List[TimeSeriesPoint]
    by_country: List[BreakdownEntry]
    by_device: List[BreakdownEntry]
    by_browser: List[BreakdownEntry]
    by_referrer: List[BreakdownEntry]
    date_range: DateRangeOut


class ProfileViewAnalytics(BaseModel):
    total_views: int
    views_over_time: List[TimeSeriesPoint]
    by_country: List[BreakdownEntry]
    by_referrer: List[BreakdownEntry]
    date_range: DateRangeOut
