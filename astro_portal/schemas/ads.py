from pydantic import BaseModel, Field
from typing import Optional

from astro_portal.models.ads import AdEventType

class TrackEventRequest(BaseModel):
    ad_id: str = Field(..., min_length=1)
    event_type: AdEventType
    zone: Optional[str] = None
