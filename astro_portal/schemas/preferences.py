from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List

class AccessibilitySettings(BaseModel):
    """Stored under `accessibility-settings` with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    high_contrast: bool = False
    large_text: bool = False
    reduced_motion: bool = False
    sound_enabled: bool = True
    keyboard_navigation: bool = False

class DismissedAds(BaseModel):
    ad_ids: List[str] = Field(default_factory=list)

class OnboardingStatus(BaseModel):
    user_id: str
    seen: bool
