# astro_portal/services/ad_banner_service.py
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from supabase import AsyncClient

from astro_portal.core.config import settings
from astro_portal.core.exceptions import BackendError
from astro_portal.database.supabase_client import (
    AD_ANALYTICS,
    AD_BANNERS,
    AD_ZONES,
    RPC_ACTIVE_ADS_FOR_ZONE,
    RPC_TRACK_AD_EVENT,
    execute,
    validate_row,
)
from astro_portal.models.ads import (
    AdBanner,
    AdBannerFormData,
    AdBannerUpdate,
    AdEventType,
    AdPerformance,
    AdStats,
    AdZone,
    DateRange,
    ZonePerformance,
)
from astro_portal.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

ALL_ZONES_KEY = "all"


def click_through_rate(clicks: int, views: int) -> float:
    """Percentage of views that were clicked, 2 decimals; 0 when there were no views."""
    if views <= 0:
        return 0.0
    return round(clicks / views * 100, 2)


class AdBannerService:
    """
    Ad banner CRUD, zone lookup, event tracking and statistics.

    Reads degrade to empty or default values when Supabase fails, writes
    return None/False, and tracking never raises. Active ads per zone and the
    zone list are cached in memory; any banner write clears the ad cache.
    """

    def __init__(
        self,
        client: AsyncClient,
        ad_cache: Optional[TTLCache] = None,
        zone_cache: Optional[TTLCache] = None,
    ):
        self.client = client
        self.ad_cache: TTLCache[List[AdBanner]] = ad_cache or TTLCache(settings.AD_CACHE_TTL_SECONDS, name="ad-cache")
        self.zone_cache: TTLCache[List[AdZone]] = zone_cache or TTLCache(settings.ZONE_CACHE_TTL_SECONDS, name="zone-cache")

    # Banners

    async def get_ad_banners(
        self,
        zone: Optional[str] = None,
        active: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[AdBanner]:
        try:
            query = (
                self.client.table(AD_BANNERS)
                .select("*")
                .order("priority", desc=True)
                .order("created_at", desc=True)
            )
            if active is not None:
                query = query.eq("is_active", active)
            if zone:
                query = query.contains("zones", [zone])
            if limit:
                query = query.limit(limit)

            response = await execute(query, "fetching ad banners")
            return [validate_row(AdBanner, row) for row in response.data or []]
        except BackendError as e:
            logger.error(f"Error fetching ad banners: {str(e)}")
            return []

    async def get_active_ads_for_zone(self, zone: str, limit: Optional[int] = None) -> List[AdBanner]:
        """Active banners for a placement, in the RPC's order (priority, then recency)."""
        limit = limit or settings.DEFAULT_ADS_PER_ZONE
        cache_key = f"{zone}-{limit}"

        cached = self.ad_cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Ad cache hit for {cache_key}")
            return list(cached)

        generation = self.ad_cache.generation
        try:
            response = await execute(
                self.client.rpc(RPC_ACTIVE_ADS_FOR_ZONE, {"zone_name": zone}).limit(limit),
                f"fetching active ads for zone {zone}",
            )
            ads = [validate_row(AdBanner, row) for row in response.data or []]
        except BackendError as e:
            logger.error(f"Error fetching active ads for zone: {str(e)}")
            return []

        self.ad_cache.set(cache_key, ads, generation=generation)
        return list(ads)

    async def create_ad_banner(self, ad_data: AdBannerFormData) -> Optional[AdBanner]:
        try:
            response = await execute(
                self.client.table(AD_BANNERS).insert(ad_data.model_dump(mode="json")),
                "creating ad banner",
            )
        except BackendError as e:
            logger.error(f"Error creating ad banner: {str(e)}")
            return None

        self.ad_cache.clear()
        if not response.data:
            return None
        try:
            banner = validate_row(AdBanner, response.data[0])
        except BackendError:
            return None
        logger.info(f"Created ad banner {banner.id} ({banner.title})")
        return banner

    async def update_ad_banner(self, ad_id: str, updates: AdBannerUpdate) -> Optional[AdBanner]:
        payload = updates.model_dump(mode="json", exclude_unset=True)
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            response = await execute(
                self.client.table(AD_BANNERS).update(payload).eq("id", ad_id),
                f"updating ad banner {ad_id}",
            )
        except BackendError as e:
            logger.error(f"Error updating ad banner: {str(e)}")
            return None

        self.ad_cache.clear()
        if not response.data:
            logger.warning(f"Ad banner {ad_id} not found for update")
            return None
        try:
            return validate_row(AdBanner, response.data[0])
        except BackendError:
            return None

    async def delete_ad_banner(self, ad_id: str) -> bool:
        try:
            await execute(self.client.table(AD_BANNERS).delete().eq("id", ad_id), f"deleting ad banner {ad_id}")
        except BackendError as e:
            logger.error(f"Error deleting ad banner: {str(e)}")
            return False

        self.ad_cache.clear()
        logger.info(f"Deleted ad banner {ad_id}")
        return True

    # Zones

    async def get_ad_zones(self) -> List[AdZone]:
        cached = self.zone_cache.get(ALL_ZONES_KEY)
        if cached is not None:
            return list(cached)

        generation = self.zone_cache.generation
        try:
            response = await execute(
                self.client.table(AD_ZONES).select("*").eq("is_active", True).order("display_name"),
                "fetching ad zones",
            )
            zones = [validate_row(AdZone, row) for row in response.data or []]
        except BackendError as e:
            logger.error(f"Error fetching ad zones, using defaults: {str(e)}")
            return self.get_default_zones()

        self.zone_cache.set(ALL_ZONES_KEY, zones, generation=generation)
        return list(zones)

    @staticmethod
    def get_default_zones() -> List[AdZone]:
        """Placements offered when the zones table cannot be read."""
        now = datetime.now(timezone.utc)
        return [
            AdZone(id="1", name="homepage-hero", display_name="Homepage Hero",
                   description="Large banner on homepage hero section",
                   max_width=1200, max_height=400, is_active=True, created_at=now),
            AdZone(id="2", name="sidebar", display_name="Sidebar",
                   description="Sidebar banner",
                   max_width=300, max_height=250, is_active=True, created_at=now),
            AdZone(id="3", name="article-top", display_name="Article Top",
                   description="Banner at top of articles",
                   max_width=728, max_height=90, is_active=True, created_at=now),
        ]

    # Tracking and analytics

    async def track_ad_event(
        self,
        ad_id: str,
        event_type: AdEventType,
        zone: Optional[str] = None,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        try:
            await execute(
                self.client.rpc(RPC_TRACK_AD_EVENT, {
                    "p_ad_banner_id": ad_id,
                    "p_event_type": AdEventType(event_type).value,
                    "p_user_id": user_id,
                    "p_zone": zone,
                    "p_user_agent": user_agent,
                }),
                "tracking ad event",
            )
        except Exception as e:
            logger.error(f"Error tracking ad event: {str(e)}")

    async def get_ad_stats(self, date_range: Optional[DateRange] = None) -> AdStats:
        try:
            banners = await execute(self.client.table(AD_BANNERS).select("id, is_active"), "fetching banner stats")

            query = self.client.table(AD_ANALYTICS).select("ad_banner_id, event_type, zone, ad_banners!inner(title)")
            if date_range:
                query = query.gte("created_at", date_range.start.isoformat()).lte("created_at", date_range.end.isoformat())
            analytics = await execute(query, "fetching ad analytics")
        except BackendError as e:
            logger.error(f"Error fetching ad stats: {str(e)}")
            return AdStats()

        banner_rows = banners.data or []
        events = analytics.data or []

        per_ad: Dict[str, AdPerformance] = {}
        per_zone: Dict[str, ZonePerformance] = {}
        total_views = total_clicks = 0

        for event in events:
            ad_id = event.get("ad_banner_id")
            title = (event.get("ad_banners") or {}).get("title") or "Unknown"
            zone = event.get("zone") or "unknown"
            ad = per_ad.setdefault(ad_id, AdPerformance(id=ad_id, title=title))
            zone_stats = per_zone.setdefault(zone, ZonePerformance(zone=zone))

            if event.get("event_type") == AdEventType.VIEW.value:
                total_views += 1
                ad.views += 1
                zone_stats.views += 1
            elif event.get("event_type") == AdEventType.CLICK.value:
                total_clicks += 1
                ad.clicks += 1
                zone_stats.clicks += 1

        for stats in (*per_ad.values(), *per_zone.values()):
            stats.ctr = click_through_rate(stats.clicks, stats.views)

        top_ads = sorted(per_ad.values(), key=lambda a: a.ctr, reverse=True)[:settings.TOP_PERFORMING_ADS_LIMIT]
        zones = sorted(per_zone.values(), key=lambda z: z.views, reverse=True)

        return AdStats(
            total_ads=len(banner_rows),
            active_ads=sum(1 for b in banner_rows if b.get("is_active")),
            total_views=total_views,
            total_clicks=total_clicks,
            ctr=click_through_rate(total_clicks, total_views),
            top_performing_ads=top_ads,
            zone_performance=zones,
        )
