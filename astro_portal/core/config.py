# astro_portal/core/config.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Settings(BaseSettings):
    # --- Application Core Settings ---
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    BACKEND_CORS_ORIGINS: List[str] = Field(default=["http://localhost:5173"])

    # --- Project Metadata ---
    PROJECT_NAME: str = Field(default="Astro Portal")
    PROJECT_VERSION: str = Field(default="0.1.0")
    API_V1_STR: str = Field(default="/api")

    # --- Supabase Settings ---
    SUPABASE_URL: str = Field(default="http://localhost:54321")
    SUPABASE_KEY: str = Field(default="", description="Anon or service role key")

    # --- Ad Banner Caches ---
    AD_CACHE_TTL_SECONDS: int = Field(default=300)  # 5 minutes
    ZONE_CACHE_TTL_SECONDS: int = Field(default=600)  # 10 minutes
    DEFAULT_ADS_PER_ZONE: int = Field(default=5)
    TOP_PERFORMING_ADS_LIMIT: int = Field(default=10)

    # --- Report Export ---
    PDF_EXPORT_TIMEOUT_SECONDS: float = Field(default=20.0)
    PDF_FALLBACK_LINES_PER_PAGE: int = Field(default=50)

    # --- Plan Limits ---
    FREE_CHART_LIMIT: int = Field(default=5)
    FREE_REPORT_LIMIT: int = Field(default=5)
    UNLIMITED_PLAN_LIMIT: int = Field(default=999)

    # --- Per-user Stores ---
    STORE_IDLE_TTL_SECONDS: int = Field(default=1800)  # 30 minutes
    MAX_ACTIVE_STORES: int = Field(default=1000)

    # --- Local Preferences ---
    PREFERENCES_PATH: str = Field(default=".astro_portal/preferences.json")

    # --- Edge Functions ---
    CHAT_FUNCTION_NAME: str = Field(default="supabase-functions-chat-with-astrologer")

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Derived properties
    @property
    def IS_PRODUCTION(self):
        return self.ENVIRONMENT == "production"

    @property
    def IS_DEVELOPMENT(self):
        return self.ENVIRONMENT == "development"

# Create a global settings instance
settings = Settings()
