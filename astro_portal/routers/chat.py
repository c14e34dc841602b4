# astro_portal/routers/chat.py
from fastapi import APIRouter, Depends
import logging

from astro_portal.dependencies.services import get_astrology_store, get_chat_service
from astro_portal.schemas.chat import ChatReply, ChatRequest
from astro_portal.services.astrology_store import AstrologyStore
from astro_portal.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])

@router.post("", response_model=ChatReply)
async def send_message(
    request: ChatRequest,
    store: AstrologyStore = Depends(get_astrology_store),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Ask the AI astrologer a question.

    The chart named by `birth_chart_id`, or else the current chart, is sent
    along as context.
    """
    chart = store.state.current_chart
    if request.birth_chart_id:
        chart = await store.fetch_birth_chart(request.birth_chart_id)

    reply = await chat_service.send_message(request.message, request.history, chart)
    if chart is not None:
        reply.metadata["birth_chart_id"] = chart.id
    return reply
