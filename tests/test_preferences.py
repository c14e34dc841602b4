import json

from astro_portal.schemas.preferences import AccessibilitySettings
from astro_portal.services.preferences_service import PreferencesService


class TestPreferencesService:

    def test_defaults_without_file(self, preferences_path):
        preferences = PreferencesService(path=preferences_path)

        assert preferences.get_dismissed_ads() == []
        assert preferences.get_accessibility_settings() == AccessibilitySettings()
        assert not preferences.has_seen_onboarding("user-1")

    def test_dismiss_ad_is_idempotent(self, preferences_path):
        preferences = PreferencesService(path=preferences_path)

        preferences.dismiss_ad("ad-1")
        preferences.dismiss_ad("ad-2")
        assert preferences.dismiss_ad("ad-1") == ["ad-1", "ad-2"]

        stored = json.loads(open(preferences_path, encoding="utf-8").read())
        assert stored["anonymous"]["dismissedAds"] == ["ad-1", "ad-2"]

    def test_accessibility_round_trip_uses_camel_case(self, preferences_path):
        preferences = PreferencesService(path=preferences_path)

        preferences.save_accessibility_settings(AccessibilitySettings(high_contrast=True, sound_enabled=False))

        stored = json.loads(open(preferences_path, encoding="utf-8").read())
        assert stored["anonymous"]["accessibility-settings"]["highContrast"] is True
        assert stored["anonymous"]["accessibility-settings"]["soundEnabled"] is False
        reloaded = PreferencesService(path=preferences_path).get_accessibility_settings()
        assert reloaded.high_contrast and not reloaded.sound_enabled

    def test_onboarding_flag_per_user(self, preferences_path):
        preferences = PreferencesService(path=preferences_path)

        preferences.mark_onboarding_seen("user-1")

        assert preferences.has_seen_onboarding("user-1")
        assert not preferences.has_seen_onboarding("user-2")
        stored = json.loads(open(preferences_path, encoding="utf-8").read())
        assert stored["anonymous"]["onboarding-seen-user-1"] == "true"

    def test_profiles_are_isolated(self, preferences_path):
        PreferencesService(path=preferences_path, profile="user-1").dismiss_ad("ad-1")

        assert PreferencesService(path=preferences_path, profile="user-2").get_dismissed_ads() == []
        assert PreferencesService(path=preferences_path, profile="user-1").get_dismissed_ads() == ["ad-1"]

    def test_corrupt_file_reads_as_empty(self, preferences_path):
        with open(preferences_path, "w", encoding="utf-8") as f:
            f.write("{not json")
        preferences = PreferencesService(path=preferences_path)

        assert preferences.get_dismissed_ads() == []
        assert preferences.dismiss_ad("ad-1") == ["ad-1"]

    def test_invalid_accessibility_blob_falls_back(self, preferences_path):
        with open(preferences_path, "w", encoding="utf-8") as f:
            json.dump({"anonymous": {"accessibility-settings": {"highContrast": "very"}}}, f)

        assert PreferencesService(path=preferences_path).get_accessibility_settings() == AccessibilitySettings()
