from datetime import date

import pytest

from astro_portal.core.exceptions import BackendError, NotFoundError, PlanLimitExceeded, ValidationFailure
from astro_portal.models.astrology import BirthLocation, ForecastPeriod
from astro_portal.schemas.chart import BirthChartUpdate, BirthDataCreate, TemplateReportOptions
from astro_portal.schemas.export import ExportOptions
from astro_portal.services.astrology_store import PLACEHOLDER_CONTENT, AstrologyStore, StoreRegistry
from tests.fakes import chart_row, report_row

USER_ID = "user-1"

BIRTH_DATA = BirthDataCreate(
    name="Grace",
    birth_date=date(1985, 12, 9),
    birth_time="08:15",
    location=BirthLocation(city="New York", country="USA", latitude=40.71, longitude=-74.0, timezone="America/New_York"),
)


def _seed_charts(fake_db, generator, *ids, user_id=USER_ID):
    fake_db.tables.setdefault("birth_charts", []).extend(
        chart_row(generator, chart_id, user_id=user_id, name=f"Chart {chart_id}") for chart_id in ids
    )


def _template_row(**overrides):
    row = {
        "id": "tpl-1",
        "name": "Career Blueprint",
        "report_type": "career",
        "is_active": True,
        "sections": [
            {"id": "s2", "name": "Strengths", "order": 2, "type": "text"},
            {"id": "s1", "name": "Introduction", "order": 1, "content": "Hello from the template."},
        ],
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
class TestBirthCharts:

    async def test_fetch_replaces_collection(self, store: AstrologyStore, fake_db, generator):
        _seed_charts(fake_db, generator, "c1", "c2")
        _seed_charts(fake_db, generator, "other", user_id="someone-else")

        charts = await store.fetch_birth_charts(USER_ID)

        assert {c.id for c in charts} == {"c1", "c2"}
        assert store.state.birth_charts == charts
        assert not store.state.birth_charts_loading
        assert store.state.birth_charts_error is None

    async def test_fetch_failure_keeps_collection_and_records_error(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        await store.fetch_birth_charts(USER_ID)
        fake_db.fail("birth_charts", "connection reset")

        with pytest.raises(BackendError):
            await store.fetch_birth_charts(USER_ID)

        assert [c.id for c in store.state.birth_charts] == ["c1"]
        assert store.state.birth_charts_error == "connection reset"
        assert store.state.error == "connection reset"
        assert not store.state.birth_charts_loading

    async def test_first_load_failure_leaves_empty_collection(self, store, fake_db):
        fake_db.fail("birth_charts", "connection reset")

        with pytest.raises(BackendError):
            await store.fetch_birth_charts(USER_ID)

        assert store.state.birth_charts == []
        assert store.state.birth_charts_error == "connection reset"

    async def test_create_prepends_and_sets_current(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        await store.fetch_birth_charts(USER_ID)

        chart = await store.create_birth_chart(BIRTH_DATA, USER_ID)

        assert store.state.birth_charts[0].id == chart.id
        assert len(store.state.birth_charts) == 2
        assert store.state.current_chart == chart
        assert chart.birth_date == "1985-12-09"
        assert chart.birth_location.city == "New York"
        assert len(chart.chart_data.planets) == 13
        stored = fake_db.tables["birth_charts"][-1]
        assert stored["user_id"] == USER_ID
        assert stored["chart_type"] == "natal"

    async def test_create_blocked_by_plan_limit(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, *[f"c{i}" for i in range(5)])

        with pytest.raises(PlanLimitExceeded):
            await store.create_birth_chart(BIRTH_DATA, USER_ID)

        assert len(fake_db.tables["birth_charts"]) == 5
        assert "monthly limit of 5 birth charts" in store.state.birth_charts_error

    async def test_update_replaces_chart_everywhere(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        await store.fetch_birth_charts(USER_ID)
        await store.fetch_birth_chart("c1")

        updated = await store.update_birth_chart("c1", BirthChartUpdate(name="Renamed"))

        assert updated.name == "Renamed"
        assert store.state.birth_charts[0].name == "Renamed"
        assert store.state.current_chart.name == "Renamed"

    async def test_update_without_changes_is_rejected(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        with pytest.raises(ValidationFailure):
            await store.update_birth_chart("c1", BirthChartUpdate())

    async def test_update_of_someone_elses_chart_is_not_found(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "theirs", user_id="someone-else")
        with pytest.raises(NotFoundError):
            await store.update_birth_chart("theirs", BirthChartUpdate(name="Mine now"))
        assert fake_db.tables["birth_charts"][0]["name"] == "Chart theirs"

    async def test_delete_clears_current(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1", "c2")
        await store.fetch_birth_charts(USER_ID)
        await store.fetch_birth_chart("c1")

        await store.delete_birth_chart("c1")

        assert [c.id for c in store.state.birth_charts] == ["c2"]
        assert store.state.current_chart is None
        assert [row["id"] for row in fake_db.tables["birth_charts"]] == ["c2"]

    async def test_fetch_missing_chart(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            await store.fetch_birth_chart("nope")
        assert exc_info.value.message == "Birth chart not found: nope"


@pytest.mark.asyncio
class TestReports:

    async def test_first_load_failure_leaves_empty_collection(self, store, fake_db):
        fake_db.fail("astrology_reports", "relation does not exist")

        with pytest.raises(BackendError):
            await store.fetch_reports(USER_ID)

        assert store.state.reports == []
        assert store.state.reports_error == "relation does not exist"
        assert not store.state.reports_loading

    async def test_natal_report_is_filled_after_placeholder(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        report = await store.create_natal_chart_report("c1", USER_ID)

        assert report.report_type == "natal"
        assert report.title == "Chart c1's Natal Chart Report"
        assert not report.is_premium
        assert report.content.startswith("# Natal Chart Report for Chart c1")
        assert fake_db.tables["astrology_reports"][0]["content"] != PLACEHOLDER_CONTENT
        assert fake_db.call_count("astrology_reports", "insert") == 1
        assert fake_db.call_count("astrology_reports", "update") == 1
        assert store.state.reports[0].id == report.id

    async def test_premium_natal_report(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        report = await store.create_natal_chart_report("c1", USER_ID, is_premium=True)

        assert report.report_type == "natal-premium"
        assert report.is_premium
        assert "## House Cusps" in report.content

    async def test_generic_report_is_single_insert(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        report = await store.create_report("c1", "career", "", USER_ID)

        assert report.is_premium
        assert report.title == "Chart c1's Career & Life Purpose Report"
        assert report.content.startswith("Complete career report:")
        assert fake_db.call_count("astrology_reports", "update") == 0

    async def test_vedic_report(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        report = await store.create_vedic_report("c1", USER_ID, is_premium=True)

        assert report.report_type == "vedic"
        assert "## Vimshottari Dasha Analysis" in report.content

    async def test_report_limit(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["astrology_reports"] = [report_row(f"r{i}", "c1") for i in range(5)]

        with pytest.raises(PlanLimitExceeded):
            await store.create_natal_chart_report("c1", USER_ID)

        assert store.state.reports_error.startswith("You've reached your monthly limit of 5 reports")

    async def test_subscription_raises_limits(self, store, fake_db, generator):
        fake_db.tables["user_subscriptions"] = [{
            "id": "sub-1", "user_id": USER_ID, "status": "active",
            "subscription_plans": {"astrology_features": {"birth_charts_limit": 50, "compatibility_reports_limit": None}},
        }]
        _seed_charts(fake_db, generator, *[f"c{i}" for i in range(5)])

        limits = await store.check_plan_limits(USER_ID)

        assert limits.can_create_chart
        assert limits.chart_limit == 50
        assert limits.report_limit == 999
        assert limits.chart_count == 5

    async def test_limit_lookup_failure_uses_free_plan(self, store, fake_db):
        fake_db.fail("user_subscriptions")

        limits = await store.check_plan_limits(USER_ID)

        assert limits.chart_limit == 5
        assert limits.report_limit == 5
        assert limits.can_create_chart and limits.can_create_report

    async def test_report_from_template(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["report_templates"] = [_template_row()]

        report = await store.create_report_from_template("tpl-1", "c1", USER_ID)

        assert report.template_id == "tpl-1"
        assert report.report_type == "career"
        assert report.title == "Chart c1's Career Blueprint"
        assert report.content.index("## Introduction") < report.content.index("## Strengths")
        assert "Hello from the template." in report.content

    async def test_report_from_template_with_options(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["report_templates"] = [_template_row()]

        report = await store.create_report_from_template(
            "tpl-1", "c1", USER_ID, TemplateReportOptions(title="Custom", is_premium=True, use_section_content=False)
        )

        assert report.title == "Custom"
        assert report.is_premium
        assert "Hello from the template." not in report.content

    async def test_fill_failure_leaves_placeholder(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["report_templates"] = [_template_row()]
        original_table = fake_db.table

        def table(name):
            query = original_table(name)
            if name == "astrology_reports":
                real_update = query.update

                def failing_update(payload):
                    fake_db.fail("astrology_reports", "write timeout")
                    return real_update(payload)
                query.update = failing_update
            return query

        fake_db.table = table

        with pytest.raises(BackendError):
            await store.create_report_from_template("tpl-1", "c1", USER_ID)

        assert fake_db.tables["astrology_reports"][0]["content"] == PLACEHOLDER_CONTENT
        assert store.state.reports_error == "write timeout"

    async def test_missing_template(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        with pytest.raises(NotFoundError):
            await store.create_report_from_template("missing", "c1", USER_ID)

    async def test_delete_report(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["astrology_reports"] = [report_row("r1", "c1"), report_row("r2", "c1")]
        await store.fetch_reports(USER_ID)

        await store.delete_report("r1")

        assert [r.id for r in store.state.reports] == ["r2"]


@pytest.mark.asyncio
class TestTemplates:

    async def test_only_active_templates_of_type(self, store, fake_db):
        fake_db.tables["report_templates"] = [
            _template_row(id="t1", name="B", report_type="career"),
            _template_row(id="t2", name="A", report_type="career"),
            _template_row(id="t3", name="C", report_type="natal"),
            _template_row(id="t4", name="D", report_type="career", is_active=False),
        ]

        templates = await store.fetch_templates("career")

        assert [t.id for t in templates] == ["t2", "t1"]
        assert not store.state.templates_loading

    async def test_categories_sorted(self, store, fake_db):
        fake_db.tables["template_categories"] = [
            {"id": "k1", "name": "Zodiac", "sort_order": 1},
            {"id": "k2", "name": "Love", "sort_order": 2},
            {"id": "k3", "name": "Career", "sort_order": 1},
        ]

        categories = await store.fetch_template_categories()

        assert [c.id for c in categories] == ["k3", "k1", "k2"]


@pytest.mark.asyncio
class TestCompatibility:

    async def test_first_load_failure_is_surfaced(self, store, fake_db):
        fake_db.fail("compatibility_reports", "permission denied")

        with pytest.raises(BackendError):
            await store.fetch_compatibility_reports(USER_ID)

        assert store.state.compatibility_reports == []
        assert store.state.compatibility_error == "permission denied"
        assert store.state.error == "permission denied"
        assert not store.state.compatibility_loading

    async def test_create_compatibility_report(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1", "c2")

        report = await store.create_compatibility_report("c1", "c2", USER_ID)

        assert 0 <= report.compatibility_score <= 100
        assert report.detailed_analysis.score == report.compatibility_score
        assert "Chart c1 and Chart c2" in report.report_content
        assert store.state.compatibility_reports[0].id == report.id

    async def test_same_chart_twice_is_rejected(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        with pytest.raises(ValidationFailure):
            await store.create_compatibility_report("c1", "c1", USER_ID)
        assert store.state.compatibility_error == "Select two different birth charts to compare"

    async def test_missing_partner_chart(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        with pytest.raises(NotFoundError):
            await store.create_compatibility_report("c1", "c9", USER_ID)


@pytest.mark.asyncio
class TestExportAndState:

    async def test_export_report_to_pdf(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["astrology_reports"] = [report_row("r1", "c1", title="Grace Natal")]

        exported = await store.export_report_to_pdf("r1", ExportOptions(file_name="grace"))

        assert exported.filename == "grace.pdf"
        assert exported.content.startswith(b"%PDF")
        assert not store.state.pdf_exporting
        assert store.state.pdf_error is None

    async def test_export_missing_report_records_pdf_error(self, store):
        with pytest.raises(NotFoundError):
            await store.export_report_to_pdf("missing")
        assert store.state.pdf_error == "Report not found: missing"
        assert not store.state.pdf_exporting

    async def test_batch_export(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1", "c2")
        fake_db.tables["astrology_reports"] = [report_row("r1", "c1"), report_row("r2", "c2")]

        exported = await store.export_reports_to_pdf(["r1", "r2", "r1"])

        assert exported.filename == "astrology_reports_collection.pdf"
        assert exported.content.startswith(b"%PDF")

    async def test_export_html(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")
        fake_db.tables["astrology_reports"] = [report_row("r1", "c1", title="Grace")]

        exported = await store.export_report_to_html("r1", legacy=True)

        assert exported.filename == "grace.html"
        assert b'class="section"' in exported.content

    async def test_clear_error_and_snapshot(self, store, fake_db):
        fake_db.fail("birth_charts")
        with pytest.raises(BackendError):
            await store.fetch_birth_charts(USER_ID)

        snapshot = store.snapshot()
        store.clear_error()

        assert snapshot.birth_charts_error == "backend unavailable"
        assert store.state.birth_charts_error is None
        assert store.state.error is None


class TestStoreRegistry:

    def _registry(self, fake_db, clock, **kwargs):
        return StoreRegistry(lambda user_id: AstrologyStore(fake_db, user_id=user_id), clock=clock, **kwargs)

    def test_same_store_per_user(self, fake_db, clock):
        registry = self._registry(fake_db, clock, idle_seconds=60, max_stores=10)

        first = registry.get("u1")

        assert registry.get("u1") is first
        assert registry.get("u2") is not first
        assert len(registry) == 2

    def test_idle_store_is_replaced(self, fake_db, clock):
        registry = self._registry(fake_db, clock, idle_seconds=60, max_stores=10)
        stale = registry.get("u1")
        registry.get("u2")

        clock.advance(30)
        registry.get("u2")
        clock.advance(30)

        assert registry.get("u1") is not stale
        assert "u2" in registry

    def test_least_recently_used_evicted_when_full(self, fake_db, clock):
        registry = self._registry(fake_db, clock, idle_seconds=600, max_stores=2)
        registry.get("u1")
        registry.get("u2")
        registry.get("u1")

        registry.get("u3")

        assert "u1" in registry
        assert "u2" not in registry
        assert len(registry) == 2

    def test_discard(self, fake_db, clock):
        registry = self._registry(fake_db, clock)
        registry.get("u1")

        assert registry.discard("u1") is True
        assert registry.discard("u1") is False
        assert len(registry) == 0


@pytest.mark.asyncio
class TestInsights:

    async def test_interpretation_is_stored_and_listed(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        interpretation = await store.generate_interpretation("c1", "personality")
        listed = await store.fetch_interpretations("c1")

        assert interpretation.birth_chart_id == "c1"
        assert interpretation.confidence_score == 85
        assert "personality interpretation for Chart c1's chart" in interpretation.content
        assert [i.id for i in listed] == [interpretation.id]
        assert store.state.interpretations == listed

    async def test_interpretation_for_missing_chart(self, store, fake_db):
        with pytest.raises(NotFoundError):
            await store.generate_interpretation("ghost", "career")

        assert store.state.insights_error == "Birth chart not found: ghost"
        assert fake_db.call_count("astrological_interpretations") == 0

    async def test_stored_horoscope_is_returned(self, store, fake_db):
        fake_db.tables["daily_horoscopes"] = [{
            "id": "h1", "zodiac_sign": "Leo", "date": "2024-08-01", "content": "Shine.",
            "love_score": 90, "career_score": 80, "health_score": 85,
            "lucky_numbers": [7], "lucky_colors": ["Gold"],
        }]

        horoscope = await store.fetch_daily_horoscope("Leo", "2024-08-01")

        assert horoscope.id == "h1"
        assert not horoscope.is_fallback
        assert [h.id for h in store.state.daily_horoscopes] == ["h1"]

    async def test_missing_horoscope_falls_back(self, store, fake_db):
        horoscope = await store.fetch_daily_horoscope("Virgo", "2024-08-01")

        assert horoscope.id == "fallback-Virgo-2024-08-01"
        assert horoscope.is_fallback
        assert "organization and attention to detail" in horoscope.content
        assert all(75 <= score < 95 for score in (horoscope.love_score, horoscope.career_score, horoscope.health_score))
        assert len(horoscope.lucky_numbers) == 3
        assert store.state.daily_horoscopes == []

    async def test_horoscope_backend_failure_falls_back(self, store, fake_db):
        fake_db.fail("daily_horoscopes")

        horoscope = await store.fetch_daily_horoscope("Aries", "2024-08-01")

        assert horoscope.is_fallback
        assert store.state.insights_error is None

    async def test_generate_daily_horoscopes_upserts_per_sign(self, store, fake_db):
        first = await store.generate_daily_horoscopes("2024-08-01")
        second = await store.generate_daily_horoscopes("2024-08-01")

        assert len(first) == 12
        assert len(fake_db.tables["daily_horoscopes"]) == 12
        assert {h.id for h in first} == {h.id for h in second}
        assert len(store.state.daily_horoscopes) == 12
        assert all(70 <= h.love_score < 100 for h in second)

    async def test_generate_daily_horoscopes_failure(self, store, fake_db):
        fake_db.fail("daily_horoscopes", "upsert rejected")

        with pytest.raises(BackendError):
            await store.generate_daily_horoscopes("2024-08-01")

        assert store.state.insights_error == "upsert rejected"
        assert not store.state.insights_loading

    async def test_transit_forecasts(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        older = await store.generate_transit_forecast("c1", "2024-01-01", ForecastPeriod.WEEKLY)
        newer = await store.generate_transit_forecast("c1", "2024-06-01", "yearly")
        listed = await store.fetch_transit_forecasts("c1")

        assert older.forecast_content.startswith("This week's cosmic influences starting 2024-01-01")
        assert newer.forecast_period == "yearly"
        assert newer.planetary_transits == {"transits": []}
        assert [f.id for f in listed] == [newer.id, older.id]

    async def test_forecasts_of_someone_elses_chart(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "theirs", user_id="someone-else")

        with pytest.raises(NotFoundError):
            await store.fetch_transit_forecasts("theirs")

    async def test_unknown_forecast_period(self, store, fake_db, generator):
        _seed_charts(fake_db, generator, "c1")

        with pytest.raises(ValidationFailure):
            await store.generate_transit_forecast("c1", "2024-01-01", "hourly")

        assert store.state.insights_error == "Unknown forecast period: hourly"
