# astro_portal/services/astrology_store.py
import logging
import time
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlmodel import SQLModel
from supabase import AsyncClient

from astro_portal.core.config import settings
from astro_portal.core.exceptions import (
    AstroPortalError,
    BackendError,
    NotFoundError,
    PlanLimitExceeded,
    ValidationFailure,
)
from astro_portal.core.logging_config import log_error
from astro_portal.database.supabase_client import (
    ASTROLOGICAL_INTERPRETATIONS,
    ASTROLOGY_REPORTS,
    BIRTH_CHARTS,
    COMPATIBILITY_REPORTS,
    DAILY_HOROSCOPES,
    REPORT_TEMPLATES,
    TEMPLATE_CATEGORIES,
    TRANSIT_FORECASTS,
    USER_SUBSCRIPTIONS,
    execute,
    validate_row,
)
from astro_portal.models.astrology import (
    AstrologicalInterpretation,
    AstrologyReport,
    AstrologyState,
    BirthChart,
    CompatibilityReport,
    DailyHoroscope,
    ForecastPeriod,
    PlanLimits,
    ReportTemplate,
    TemplateCategory,
    TransitForecast,
    ZodiacSign,
)
from astro_portal.schemas.chart import BirthChartUpdate, BirthDataCreate, TemplateReportOptions
from astro_portal.schemas.export import ExportedFile, ExportOptions
from astro_portal.services.chart_data import ChartDataGenerator
from astro_portal.services.notifications import NotificationQueue
from astro_portal.services.report_content import (
    auto_report_title,
    build_template_content,
    compatibility_analysis_text,
    daily_horoscope_text,
    fallback_horoscope_text,
    generic_report_content,
    interpretation_text,
    is_natal_report_type,
    is_premium_report_type,
    natal_report_content,
    transit_forecast_text,
    vedic_report_content,
)
from astro_portal.services.report_export import ReportExporter

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SQLModel)

PLACEHOLDER_CONTENT = "Generating report..."


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


_validate = validate_row


class AstrologyStore:
    """
    A signed-in user's astrology collections and the commands that change them.

    Every command records failures on `state` (the collection's `*_error`
    field and the general `error`) and re-raises them as `AstroPortalError`.
    Collections are only replaced on success. Concurrent calls are not
    sequenced: the last response to arrive wins.
    """

    def __init__(
        self,
        client: AsyncClient,
        user_id: Optional[str] = None,
        generator: Optional[ChartDataGenerator] = None,
        exporter: Optional[ReportExporter] = None,
        notifications: Optional[NotificationQueue] = None,
    ):
        self.client = client
        self.user_id = user_id
        self.generator = generator or ChartDataGenerator()
        self.notifications = notifications or NotificationQueue()
        self.exporter = exporter or ReportExporter(self.notifications)
        self.state = AstrologyState()

    # --- helpers ---

    @contextmanager
    def _operation(self, action: str, error_field: str = "error", loading_field: Optional[str] = None):
        if loading_field:
            setattr(self.state, loading_field, True)
        setattr(self.state, error_field, None)
        self.state.error = None
        try:
            yield
        except AstroPortalError as e:
            self._record_error(error_field, e.message)
            log_error(logger, e, context={"action": action, "user_id": self.user_id}, level=logging.WARNING)
            raise
        except Exception as e:
            error = BackendError(f"Unexpected error while {action}: {str(e)}")
            self._record_error(error_field, error.message)
            log_error(logger, e, context={"action": action, "user_id": self.user_id})
            raise error from e
        finally:
            if loading_field:
                setattr(self.state, loading_field, False)

    def _record_error(self, error_field: str, message: str):
        setattr(self.state, error_field, message)
        self.state.error = message

    def _scoped(self, query):
        return query.eq("user_id", self.user_id) if self.user_id else query

    async def _fetch_one(self, table: str, row_id: str, resource: str, owned: bool = True) -> Dict[str, Any]:
        query = self.client.table(table).select("*").eq("id", row_id)
        if owned:
            query = self._scoped(query)
        response = await execute(query.limit(1), f"fetching {resource.lower()} {row_id}")
        if not response.data:
            raise NotFoundError(resource, row_id)
        return response.data[0]

    async def _fetch_many(self, table: str, ids: Sequence[str], resource: str) -> Dict[str, Dict[str, Any]]:
        query = self._scoped(self.client.table(table).select("*").in_("id", list(ids)))
        response = await execute(query, f"fetching {resource.lower()}s")
        rows = {row["id"]: row for row in response.data or []}
        for row_id in ids:
            if row_id not in rows:
                raise NotFoundError(resource, row_id)
        return rows

    async def _insert(self, table: str, row: Dict[str, Any], action: str) -> Dict[str, Any]:
        response = await execute(self.client.table(table).insert(row), action)
        if not response.data:
            raise BackendError(f"No row returned while {action}")
        return response.data[0]

    async def _list_for_user(self, table: str, model: Type[M], user_id: str, resource: str) -> List[M]:
        response = await execute(
            self.client.table(table).select("*").eq("user_id", user_id).order("created_at", desc=True),
            f"fetching {resource}",
        )
        return [_validate(model, row) for row in response.data or []]

    # --- plan limits ---

    async def check_plan_limits(self, user_id: str) -> PlanLimits:
        """Monthly chart/report allowance of the user's active plan; free limits when the lookup fails."""
        try:
            subscription = await execute(
                self.client.table(USER_SUBSCRIPTIONS)
                .select("*, subscription_plans!inner(astrology_features)")
                .eq("user_id", user_id)
                .eq("status", "active")
                .limit(1),
                "fetching subscription",
            )
            chart_limit = settings.FREE_CHART_LIMIT
            report_limit = settings.FREE_REPORT_LIMIT
            if subscription.data:
                features = (subscription.data[0].get("subscription_plans") or {}).get("astrology_features")
                if features:
                    # an empty limit means the plan is unlimited
                    chart_limit = features.get("birth_charts_limit") or settings.UNLIMITED_PLAN_LIMIT
                    report_limit = features.get("compatibility_reports_limit") or settings.UNLIMITED_PLAN_LIMIT

            month_start = datetime.now(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
            counts = {}
            for table in (BIRTH_CHARTS, ASTROLOGY_REPORTS):
                response = await execute(
                    self.client.table(table)
                    .select("*", count="exact", head=True)
                    .eq("user_id", user_id)
                    .gte("created_at", month_start.isoformat()),
                    f"counting {table}",
                )
                counts[table] = response.count or 0
        except BackendError as e:
            logger.error(f"Error checking plan limitations: {str(e)}")
            return PlanLimits(chart_limit=settings.FREE_CHART_LIMIT, report_limit=settings.FREE_REPORT_LIMIT)

        return PlanLimits(
            can_create_chart=counts[BIRTH_CHARTS] < chart_limit,
            can_create_report=counts[ASTROLOGY_REPORTS] < report_limit,
            chart_limit=chart_limit,
            report_limit=report_limit,
            chart_count=counts[BIRTH_CHARTS],
            report_count=counts[ASTROLOGY_REPORTS],
        )

    async def _ensure_report_allowed(self, user_id: str):
        limits = await self.check_plan_limits(user_id)
        if not limits.can_create_report:
            raise PlanLimitExceeded(
                f"You've reached your monthly limit of {limits.report_limit} reports. "
                "Upgrade your plan to create more."
            )

    # --- birth charts ---

    async def fetch_birth_charts(self, user_id: str) -> List[BirthChart]:
        with self._operation("fetching birth charts", "birth_charts_error", "birth_charts_loading"):
            self.state.birth_charts = await self._list_for_user(BIRTH_CHARTS, BirthChart, user_id, "birth charts")
        return self.state.birth_charts

    async def fetch_birth_chart(self, chart_id: str) -> BirthChart:
        with self._operation("fetching birth chart", "birth_charts_error", "birth_charts_loading"):
            chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart"))
            self.state.current_chart = chart
        return chart

    async def create_birth_chart(self, birth_data: BirthDataCreate, user_id: str) -> BirthChart:
        with self._operation("creating birth chart", "birth_charts_error", "birth_charts_loading"):
            limits = await self.check_plan_limits(user_id)
            if not limits.can_create_chart:
                raise PlanLimitExceeded(
                    f"You've reached your monthly limit of {limits.chart_limit} birth charts. "
                    "Upgrade your plan to create more."
                )

            chart_data = self.generator.generate(birth_data.location)
            row = await self._insert(BIRTH_CHARTS, {
                "user_id": user_id,
                "name": birth_data.name,
                "birth_date": birth_data.birth_date.isoformat(),
                "birth_time": birth_data.birth_time,
                "birth_location": birth_data.location.model_dump(),
                "chart_data": chart_data.model_dump(mode="json", exclude_none=True),
                "chart_type": "natal",
            }, "creating birth chart")
            chart = _validate(BirthChart, row)

            self.state.birth_charts = [chart] + self.state.birth_charts
            self.state.current_chart = chart
        logger.info(f"Created birth chart {chart.id} for user {user_id}")
        return chart

    async def update_birth_chart(self, chart_id: str, updates: BirthChartUpdate) -> BirthChart:
        with self._operation("updating birth chart", "birth_charts_error", "birth_charts_loading"):
            payload = updates.model_dump(mode="json", exclude_unset=True)
            if not payload:
                raise ValidationFailure("No changes supplied for the birth chart")
            payload["updated_at"] = _now()
            response = await execute(
                self._scoped(self.client.table(BIRTH_CHARTS).update(payload).eq("id", chart_id)),
                f"updating birth chart {chart_id}",
            )
            if not response.data:
                raise NotFoundError("Birth chart", chart_id)
            chart = _validate(BirthChart, response.data[0])

            self.state.birth_charts = [chart if c.id == chart_id else c for c in self.state.birth_charts]
            if self.state.current_chart and self.state.current_chart.id == chart_id:
                self.state.current_chart = chart
        return chart

    async def delete_birth_chart(self, chart_id: str) -> None:
        with self._operation("deleting birth chart", "birth_charts_error", "birth_charts_loading"):
            await execute(
                self._scoped(self.client.table(BIRTH_CHARTS).delete().eq("id", chart_id)),
                f"deleting birth chart {chart_id}",
            )
            self.state.birth_charts = [c for c in self.state.birth_charts if c.id != chart_id]
            if self.state.current_chart and self.state.current_chart.id == chart_id:
                self.state.current_chart = None
        logger.info(f"Deleted birth chart {chart_id}")

    # --- templates ---

    async def fetch_templates(self, report_type: Optional[str] = None) -> List[ReportTemplate]:
        with self._operation("fetching report templates", "templates_error", "templates_loading"):
            query = self.client.table(REPORT_TEMPLATES).select("*").eq("is_active", True)
            if report_type:
                query = query.eq("report_type", report_type)
            response = await execute(query.order("name"), "fetching report templates")
            self.state.templates = [_validate(ReportTemplate, row) for row in response.data or []]
        return self.state.templates

    async def fetch_template_categories(self) -> List[TemplateCategory]:
        with self._operation("fetching template categories", "templates_error", "templates_loading"):
            response = await execute(
                self.client.table(TEMPLATE_CATEGORIES).select("*").order("sort_order").order("name"),
                "fetching template categories",
            )
            self.state.template_categories = [_validate(TemplateCategory, row) for row in response.data or []]
        return self.state.template_categories

    # --- reports ---

    async def fetch_reports(self, user_id: str) -> List[AstrologyReport]:
        with self._operation("fetching reports", "reports_error", "reports_loading"):
            self.state.reports = await self._list_for_user(ASTROLOGY_REPORTS, AstrologyReport, user_id, "reports")
        return self.state.reports

    async def _insert_then_fill(self, row: Dict[str, Any], build_content: Callable[[], str]) -> AstrologyReport:
        """
        Insert a placeholder report, then write its content in a second round trip.

        A failure in the second step leaves the placeholder row in place.
        """
        placeholder = _validate(AstrologyReport, await self._insert(
            ASTROLOGY_REPORTS, {**row, "content": PLACEHOLDER_CONTENT}, "creating report",
        ))
        content = build_content()
        response = await execute(
            self.client.table(ASTROLOGY_REPORTS).update({"content": content, "updated_at": _now()}).eq("id", placeholder.id),
            f"writing content of report {placeholder.id}",
        )
        if response.data:
            report = _validate(AstrologyReport, response.data[0])
        else:
            report = placeholder.model_copy(update={"content": content})
        self.state.reports = [report] + self.state.reports
        return report

    async def create_report_from_template(
        self,
        template_id: str,
        birth_chart_id: str,
        user_id: str,
        options: Optional[TemplateReportOptions] = None,
    ) -> AstrologyReport:
        options = options or TemplateReportOptions()
        with self._operation("creating report from template", "reports_error", "reports_loading"):
            template = _validate(ReportTemplate, await self._fetch_one(REPORT_TEMPLATES, template_id, "Template", owned=False))
            chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, birth_chart_id, "Birth chart"))
            report = await self._insert_then_fill(
                {
                    "user_id": user_id,
                    "birth_chart_id": chart.id,
                    "report_type": template.report_type,
                    "title": options.title or f"{chart.name}'s {template.name}",
                    "is_premium": options.is_premium,
                    "template_id": template.id,
                },
                lambda: build_template_content(template, chart, options.use_section_content),
            )
        logger.info(f"Created report {report.id} from template {template_id}")
        return report

    async def create_report(self, chart_id: str, report_type: str, title: str, user_id: str) -> AstrologyReport:
        with self._operation(f"creating {report_type} report", "reports_error", "reports_loading"):
            await self._ensure_report_allowed(user_id)
            chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart"))

            title = title or auto_report_title(chart.name, report_type)
            is_premium = is_premium_report_type(report_type)
            row = {
                "user_id": user_id,
                "birth_chart_id": chart.id,
                "report_type": report_type,
                "title": title,
                "is_premium": is_premium,
            }
            if report_type == "vedic":
                report = await self._insert_then_fill(row, lambda: vedic_report_content(chart, is_premium))
            elif is_natal_report_type(report_type):
                report = await self._insert_then_fill(row, lambda: natal_report_content(chart, is_premium))
            else:
                report = _validate(AstrologyReport, await self._insert(
                    ASTROLOGY_REPORTS,
                    {**row, "content": generic_report_content(report_type, title)},
                    "creating report",
                ))
                self.state.reports = [report] + self.state.reports
        return report

    async def create_natal_chart_report(self, chart_id: str, user_id: str, is_premium: bool = False) -> AstrologyReport:
        return await self.create_report(chart_id, "natal-premium" if is_premium else "natal", "", user_id)

    async def create_vedic_report(self, chart_id: str, user_id: str, is_premium: bool = False) -> AstrologyReport:
        with self._operation("creating vedic report", "reports_error", "reports_loading"):
            await self._ensure_report_allowed(user_id)
            chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart"))
            report = await self._insert_then_fill(
                {
                    "user_id": user_id,
                    "birth_chart_id": chart.id,
                    "report_type": "vedic",
                    "title": auto_report_title(chart.name, "vedic"),
                    "is_premium": is_premium,
                },
                lambda: vedic_report_content(chart, is_premium),
            )
        return report

    async def delete_report(self, report_id: str) -> None:
        with self._operation("deleting report", "reports_error", "reports_loading"):
            await execute(
                self._scoped(self.client.table(ASTROLOGY_REPORTS).delete().eq("id", report_id)),
                f"deleting report {report_id}",
            )
            self.state.reports = [r for r in self.state.reports if r.id != report_id]

    # --- compatibility ---

    async def fetch_compatibility_reports(self, user_id: str) -> List[CompatibilityReport]:
        with self._operation("fetching compatibility reports", "compatibility_error", "compatibility_loading"):
            self.state.compatibility_reports = await self._list_for_user(
                COMPATIBILITY_REPORTS, CompatibilityReport, user_id, "compatibility reports",
            )
        return self.state.compatibility_reports

    async def create_compatibility_report(self, chart1_id: str, chart2_id: str, user_id: str) -> CompatibilityReport:
        with self._operation("creating compatibility report", "compatibility_error", "compatibility_loading"):
            if chart1_id == chart2_id:
                raise ValidationFailure("Select two different birth charts to compare")
            rows = await self._fetch_many(BIRTH_CHARTS, [chart1_id, chart2_id], "Birth chart")
            chart1 = _validate(BirthChart, rows[chart1_id])
            chart2 = _validate(BirthChart, rows[chart2_id])

            analysis = self.generator.analyze_compatibility(chart1.chart_data, chart2.chart_data)
            row = await self._insert(COMPATIBILITY_REPORTS, {
                "user_id": user_id,
                "chart1_id": chart1_id,
                "chart2_id": chart2_id,
                "compatibility_score": analysis.score,
                "detailed_analysis": analysis.model_dump(),
                "report_content": compatibility_analysis_text(chart1.name, chart2.name, analysis.score),
                "astrology_system": "western",
            }, "creating compatibility report")
            report = _validate(CompatibilityReport, row)
            self.state.compatibility_reports = [report] + self.state.compatibility_reports
        return report

    # --- interpretations, horoscopes and transit forecasts ---

    async def generate_interpretation(self, chart_id: str, interpretation_type: str) -> AstrologicalInterpretation:
        with self._operation("generating interpretation", "insights_error", "insights_loading"):
            chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart"))
            row = await self._insert(ASTROLOGICAL_INTERPRETATIONS, {
                "birth_chart_id": chart.id,
                "interpretation_type": interpretation_type,
                "content": interpretation_text(chart, interpretation_type),
                "ai_generated": True,
                "astrology_system": "western",
                "confidence_score": 85,
            }, "creating interpretation")
            interpretation = _validate(AstrologicalInterpretation, row)
            self.state.interpretations = self.state.interpretations + [interpretation]
        return interpretation

    async def fetch_interpretations(self, chart_id: str) -> List[AstrologicalInterpretation]:
        with self._operation("fetching interpretations", "insights_error", "insights_loading"):
            await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart")
            response = await execute(
                self.client.table(ASTROLOGICAL_INTERPRETATIONS)
                .select("*")
                .eq("birth_chart_id", chart_id)
                .order("created_at", desc=True),
                "fetching interpretations",
            )
            self.state.interpretations = [_validate(AstrologicalInterpretation, row) for row in response.data or []]
        return self.state.interpretations

    def _remember_horoscopes(self, horoscopes: Sequence[DailyHoroscope]):
        ids = {h.id for h in horoscopes}
        self.state.daily_horoscopes = [h for h in self.state.daily_horoscopes if h.id not in ids] + list(horoscopes)

    def fallback_horoscope(self, zodiac_sign: str, date: str) -> DailyHoroscope:
        """A horoscope made up on the spot; it is returned to the caller but never stored."""
        return DailyHoroscope(
            id=f"fallback-{zodiac_sign}-{date}",
            zodiac_sign=zodiac_sign,
            date=date,
            content=fallback_horoscope_text(zodiac_sign),
            lucky_colors=["Purple", "Gold"],
            created_at=datetime.now(timezone.utc),
            **self.generator.horoscope_scores(75, 20),
        )

    async def fetch_daily_horoscope(self, zodiac_sign: str, date: str) -> DailyHoroscope:
        """
        The stored horoscope for a sign and day, or a fallback one.

        Never raises: a missing row, a backend failure and an unreadable row
        all produce the fallback horoscope.
        """
        try:
            response = await execute(
                self.client.table(DAILY_HOROSCOPES)
                .select("*")
                .eq("zodiac_sign", zodiac_sign)
                .eq("date", date)
                .limit(1),
                f"fetching {zodiac_sign} horoscope for {date}",
            )
            if response.data:
                horoscope = _validate(DailyHoroscope, response.data[0])
                self._remember_horoscopes([horoscope])
                return horoscope
        except BackendError as e:
            logger.warning(f"Failed to fetch horoscope, using fallback: {str(e)}")
        return self.fallback_horoscope(zodiac_sign, date)

    async def generate_daily_horoscopes(self, date: str) -> List[DailyHoroscope]:
        """Write one horoscope per sign for `date`, replacing any already stored for that day."""
        with self._operation("generating daily horoscopes", "insights_error", "insights_loading"):
            rows = [
                {
                    "zodiac_sign": sign.value,
                    "date": date,
                    "content": daily_horoscope_text(sign.value),
                    "lucky_colors": ["Purple", "Gold"],
                    "ai_generated": True,
                    **self.generator.horoscope_scores(70, 30),
                }
                for sign in ZodiacSign
            ]
            response = await execute(
                self.client.table(DAILY_HOROSCOPES).upsert(rows, on_conflict="zodiac_sign,date"),
                f"generating horoscopes for {date}",
            )
            horoscopes = [_validate(DailyHoroscope, row) for row in response.data or []]
            self._remember_horoscopes(horoscopes)
        logger.info(f"Generated {len(horoscopes)} daily horoscopes for {date}")
        return horoscopes

    async def generate_transit_forecast(self, chart_id: str, forecast_date: str, period: ForecastPeriod) -> TransitForecast:
        with self._operation("generating transit forecast", "insights_error", "insights_loading"):
            try:
                period = ForecastPeriod(period).value
            except ValueError:
                raise ValidationFailure(f"Unknown forecast period: {period}")
            chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart"))
            row = await self._insert(TRANSIT_FORECASTS, {
                "birth_chart_id": chart.id,
                "forecast_date": forecast_date,
                "forecast_period": period,
                "planetary_transits": {"transits": []},
                "forecast_content": transit_forecast_text(forecast_date, period),
                "significance_level": "medium",
            }, "creating transit forecast")
            forecast = _validate(TransitForecast, row)
            self.state.transit_forecasts = self.state.transit_forecasts + [forecast]
        return forecast

    async def fetch_transit_forecasts(self, chart_id: str) -> List[TransitForecast]:
        with self._operation("fetching transit forecasts", "insights_error", "insights_loading"):
            await self._fetch_one(BIRTH_CHARTS, chart_id, "Birth chart")
            response = await execute(
                self.client.table(TRANSIT_FORECASTS)
                .select("*")
                .eq("birth_chart_id", chart_id)
                .order("forecast_date", desc=True),
                "fetching transit forecasts",
            )
            self.state.transit_forecasts = [_validate(TransitForecast, row) for row in response.data or []]
        return self.state.transit_forecasts

    # --- export ---

    async def _report_with_chart(self, report_id: str):
        report = _validate(AstrologyReport, await self._fetch_one(ASTROLOGY_REPORTS, report_id, "Report"))
        chart = _validate(BirthChart, await self._fetch_one(BIRTH_CHARTS, report.birth_chart_id, "Birth chart"))
        return report, chart

    async def export_report_to_pdf(self, report_id: str, options: Optional[ExportOptions] = None) -> ExportedFile:
        self.state.pdf_exporting = True
        try:
            with self._operation("exporting report to PDF", "pdf_error"):
                report, chart = await self._report_with_chart(report_id)
                exported = await self.exporter.export_pdf(report, chart, options)
        finally:
            self.state.pdf_exporting = False
        return exported

    async def export_reports_to_pdf(self, report_ids: Sequence[str], options: Optional[ExportOptions] = None) -> ExportedFile:
        self.state.pdf_exporting = True
        try:
            with self._operation("exporting reports to PDF", "pdf_error"):
                if not report_ids:
                    raise ValidationFailure("Select at least one report to export")
                ids = list(dict.fromkeys(report_ids))
                report_rows = await self._fetch_many(ASTROLOGY_REPORTS, ids, "Report")
                reports = [_validate(AstrologyReport, report_rows[i]) for i in ids]
                chart_ids = list(dict.fromkeys(r.birth_chart_id for r in reports))
                chart_rows = await self._fetch_many(BIRTH_CHARTS, chart_ids, "Birth chart")
                items = [(r, _validate(BirthChart, chart_rows[r.birth_chart_id])) for r in reports]
                exported = await self.exporter.export_many_pdf(items, options)
        finally:
            self.state.pdf_exporting = False
        return exported

    async def export_report_to_html(
        self,
        report_id: str,
        legacy: bool = False,
        options: Optional[ExportOptions] = None,
    ) -> ExportedFile:
        with self._operation("exporting report to HTML", "pdf_error"):
            report, chart = await self._report_with_chart(report_id)
            exported = self.exporter.export_html(report, chart, options, legacy=legacy)
        return exported

    # --- local state ---

    def set_current_chart(self, chart: Optional[BirthChart]) -> None:
        self.state.current_chart = chart

    def clear_error(self) -> None:
        self.state.error = None
        self.state.birth_charts_error = None
        self.state.reports_error = None
        self.state.compatibility_error = None
        self.state.templates_error = None
        self.state.insights_error = None
        self.state.pdf_error = None

    def snapshot(self) -> AstrologyState:
        return self.state.model_copy(deep=True)


class StoreRegistry:
    """
    One AstrologyStore per signed-in user, created on first use.

    A store untouched for `idle_seconds` is dropped on the next lookup, and
    past `max_stores` the least recently used one goes first. A dropped user
    simply gets a fresh store with empty collections.
    """

    def __init__(
        self,
        factory: Callable[[str], AstrologyStore],
        idle_seconds: Optional[float] = None,
        max_stores: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self.idle_seconds = settings.STORE_IDLE_TTL_SECONDS if idle_seconds is None else idle_seconds
        self.max_stores = settings.MAX_ACTIVE_STORES if max_stores is None else max_stores
        self._clock = clock
        self._stores: "OrderedDict[str, Tuple[AstrologyStore, float]]" = OrderedDict()

    def get(self, user_id: str) -> AstrologyStore:
        now = self._clock()
        self._evict_idle(now)

        entry = self._stores.pop(user_id, None)
        if entry is None:
            store = self._factory(user_id)
            logger.debug(f"Created astrology store for user {user_id}")
        else:
            store = entry[0]
        self._stores[user_id] = (store, now)

        while len(self._stores) > self.max_stores:
            evicted, _ = self._stores.popitem(last=False)
            logger.info(f"Evicted astrology store of user {evicted} (registry full)")
        return store

    def discard(self, user_id: str) -> bool:
        return self._stores.pop(user_id, None) is not None

    def _evict_idle(self, now: float):
        # entries are kept in last-used order, so idle ones sit at the front
        while self._stores:
            user_id, (_, last_used) = next(iter(self._stores.items()))
            if now - last_used < self.idle_seconds:
                break
            del self._stores[user_id]
            logger.debug(f"Evicted idle astrology store of user {user_id}")

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._stores

    def __len__(self) -> int:
        return len(self._stores)
