import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from astro_portal.core.config import settings
from astro_portal.schemas.preferences import AccessibilitySettings

logger = logging.getLogger(__name__)

DISMISSED_ADS_KEY = "dismissedAds"
ACCESSIBILITY_KEY = "accessibility-settings"
ONBOARDING_KEY_PREFIX = "onboarding-seen-"
DEFAULT_PROFILE = "anonymous"

# serialises read-modify-write cycles on the shared file
_file_lock = threading.Lock()


class PreferencesService:
    """
    Small client-side preferences kept in a JSON file.

    The file maps a profile (usually a user id) to unversioned blobs under the
    same keys the web client keeps in localStorage. An unreadable file is
    treated as empty.
    """

    def __init__(self, path: Optional[str] = None, profile: str = DEFAULT_PROFILE):
        self.path = Path(path or settings.PREFERENCES_PATH)
        self.profile = profile

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable preferences file {self.path}, using defaults: {str(e)}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Preferences file {self.path} does not hold an object, using defaults")
            return {}
        return data

    def _load(self) -> Dict[str, Any]:
        profile = self._read_all().get(self.profile)
        return profile if isinstance(profile, dict) else {}

    def _update(self, key: str, value: Any) -> None:
        with _file_lock:
            data = self._read_all()
            profile = data.get(self.profile)
            if not isinstance(profile, dict):
                profile = {}
            profile[key] = value
            data[self.profile] = profile

            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)

    # Dismissed ads

    def get_dismissed_ads(self) -> List[str]:
        value = self._load().get(DISMISSED_ADS_KEY)
        if not isinstance(value, list):
            return []
        return [str(ad_id) for ad_id in value]

    def dismiss_ad(self, ad_id: str) -> List[str]:
        dismissed = self.get_dismissed_ads()
        if ad_id not in dismissed:
            dismissed.append(ad_id)
            self._update(DISMISSED_ADS_KEY, dismissed)
        return dismissed

    # Accessibility

    def get_accessibility_settings(self) -> AccessibilitySettings:
        raw = self._load().get(ACCESSIBILITY_KEY) or {}
        try:
            return AccessibilitySettings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid accessibility settings: {e.error_count()} errors")
            return AccessibilitySettings()

    def save_accessibility_settings(self, accessibility: AccessibilitySettings) -> AccessibilitySettings:
        self._update(ACCESSIBILITY_KEY, accessibility.model_dump(by_alias=True))
        return accessibility

    # Onboarding

    def has_seen_onboarding(self, user_id: str) -> bool:
        value = self._load().get(f"{ONBOARDING_KEY_PREFIX}{user_id}")
        return value is True or value == "true"

    def mark_onboarding_seen(self, user_id: str) -> None:
        self._update(f"{ONBOARDING_KEY_PREFIX}{user_id}", "true")
