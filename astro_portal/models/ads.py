from sqlmodel import SQLModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum

class AdType(str, Enum):
    IMAGE = "image"
    SVG = "svg"
    HTML = "html"
    TEXT = "text"

class AdEventType(str, Enum):
    VIEW = "view"
    CLICK = "click"


class AdBanner(SQLModel):
    """A row of `ad_banners`. `content` is an image URL, SVG markup, HTML or plain text."""
    id: str
    title: str
    ad_type: AdType
    content: str
    cta_text: Optional[str] = None
    target_url: Optional[str] = None
    zones: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: int = 0
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AdZone(SQLModel):
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    max_width: Optional[int] = None
    max_height: Optional[int] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

class AdAnalytics(SQLModel):
    id: str
    ad_banner_id: str
    event_type: AdEventType
    user_id: Optional[str] = None
    zone: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None


class AdBannerFormData(SQLModel):
    title: str = Field(min_length=1)
    ad_type: AdType
    content: str
    cta_text: Optional[str] = None
    target_url: Optional[str] = None
    zones: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: int = 0
    is_active: bool = True

class AdBannerUpdate(SQLModel):
    title: Optional[str] = None
    ad_type: Optional[AdType] = None
    content: Optional[str] = None
    cta_text: Optional[str] = None
    target_url: Optional[str] = None
    zones: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class AdPerformance(SQLModel):
    id: str
    title: str
    views: int = 0
    clicks: int = 0
    ctr: float = 0

class ZonePerformance(SQLModel):
    zone: str
    views: int = 0
    clicks: int = 0
    ctr: float = 0

class AdStats(SQLModel):
    total_ads: int = 0
    active_ads: int = 0
    total_views: int = 0
    total_clicks: int = 0
    ctr: float = 0
    top_performing_ads: List[AdPerformance] = Field(default_factory=list)
    zone_performance: List[ZonePerformance] = Field(default_factory=list)

class DateRange(SQLModel):
    start: datetime
    end: datetime
