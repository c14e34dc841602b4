import random
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from astro_portal.database.supabase_client import get_supabase
from astro_portal.dependencies.services import get_preferences_service, reset_service_instances
from astro_portal.main import app
from astro_portal.services.ad_banner_service import AdBannerService
from astro_portal.services.astrology_store import AstrologyStore
from astro_portal.services.chart_data import ChartDataGenerator
from astro_portal.services.notifications import NotificationQueue
from astro_portal.services.preferences_service import PreferencesService
from astro_portal.services.report_export import ReportExporter
from astro_portal.services.ttl_cache import TTLCache
from tests.fakes import FakeSupabase

USER_ID = "user-1"
USER_TOKEN = "user-token"
ADMIN_TOKEN = "admin-token"

# -----------------------
# Backend Fixtures
# -----------------------
@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()

@pytest.fixture
def generator() -> ChartDataGenerator:
    return ChartDataGenerator(random.Random(42))

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

# -----------------------
# Service Fixtures
# -----------------------
@pytest.fixture
def notifications() -> NotificationQueue:
    return NotificationQueue()

@pytest.fixture
def exporter(notifications: NotificationQueue) -> ReportExporter:
    return ReportExporter(notifications, timeout_seconds=10)

@pytest.fixture
def store(fake_db, generator, exporter, notifications) -> AstrologyStore:
    return AstrologyStore(fake_db, user_id=USER_ID, generator=generator, exporter=exporter, notifications=notifications)

@pytest.fixture
def ad_service(fake_db, clock) -> AdBannerService:
    return AdBannerService(
        fake_db,
        ad_cache=TTLCache(300, clock=clock, name="ad-cache"),
        zone_cache=TTLCache(600, clock=clock, name="zone-cache"),
    )

@pytest.fixture
def preferences_path(tmp_path):
    return str(tmp_path / "preferences.json")

# -----------------------
# HTTP Client Fixture
# -----------------------
@pytest_asyncio.fixture(scope="function")
async def client(fake_db: FakeSupabase, preferences_path: str) -> AsyncGenerator[AsyncClient, None]:
    fake_db.auth.add_user(USER_TOKEN, USER_ID, email="ada@example.com")
    fake_db.auth.add_user(ADMIN_TOKEN, "admin-1", email="admin@example.com", role="admin")

    async def override_get_supabase():
        return fake_db

    def override_get_preferences_service():
        return PreferencesService(path=preferences_path)

    reset_service_instances()
    app.dependency_overrides[get_supabase] = override_get_supabase
    app.dependency_overrides[get_preferences_service] = override_get_preferences_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    reset_service_instances()

@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {USER_TOKEN}"}

@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
