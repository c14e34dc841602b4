import logging
import time
from typing import Any, Dict, List, Optional

from supabase import AsyncClient

from astro_portal.core.config import settings
from astro_portal.core.exceptions import BackendError
from astro_portal.models.astrology import BirthChart
from astro_portal.schemas.chat import ChatReply, ChatTurn
from astro_portal.services.chart_data import ChartDataGenerator

logger = logging.getLogger(__name__)

# conversation turns forwarded to the edge function
HISTORY_WINDOW = 6


class ChatService:
    """Chat with the AI astrologer through the Supabase edge function."""

    def __init__(self, client: AsyncClient):
        self.client = client

    @staticmethod
    def chart_context(chart: Optional[BirthChart]) -> Optional[Dict[str, Any]]:
        if chart is None:
            return None
        data = chart.chart_data
        sun = data.planet("Sun")
        moon = data.planet("Moon")
        return {
            "name": chart.name,
            "birthDate": chart.birth_date,
            "birthTime": chart.birth_time,
            "location": chart.birth_location.model_dump(),
            "sunSign": sun.sign if sun else None,
            "moonSign": moon.sign if moon else None,
            "risingSign": ChartDataGenerator.sign_for_longitude(data.ascendant),
            "planets": [p.model_dump() for p in data.planets],
            "aspects": [a.model_dump(exclude_none=True) for a in data.aspects[:12]],
        }

    async def send_message(
        self,
        message: str,
        history: Optional[List[ChatTurn]] = None,
        birth_chart: Optional[BirthChart] = None,
    ) -> ChatReply:
        body = {
            "chartData": self.chart_context(birth_chart),
            "userQuestion": message,
            "conversationHistory": [turn.model_dump(mode="json") for turn in (history or [])[-HISTORY_WINDOW:]],
        }
        start_time = time.perf_counter()
        try:
            data = await self.client.functions.invoke(
                settings.CHAT_FUNCTION_NAME,
                invoke_options={"body": body, "responseType": "json"},
            )
        except Exception as e:
            logger.error(f"Error invoking {settings.CHAT_FUNCTION_NAME}: {str(e)}")
            raise BackendError(f"Failed to get astrological advice: {str(e)}") from e

        content = None
        if isinstance(data, dict):
            content = data.get("response") or data.get("content")
        if not content:
            logger.error("Chat function returned no content")
            raise BackendError("No response received from the astrologer")

        processing_time = round(time.perf_counter() - start_time, 3)
        logger.info(f"Astrologer replied in {processing_time}s")
        return ChatReply(content=content, processing_time=processing_time)
