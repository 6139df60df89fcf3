import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field("sqlite:///./recipe_importer.db", alias="DATABASE_URL")
    redis_host: str = Field("localhost", alias="REDIS_HOST")
    redis_port: int = Field(6379, alias="REDIS_PORT")
    auth_secret_key: str = Field("change-me", alias="AUTH_SECRET_KEY")
    auth_algorithm: str = Field("HS256", alias="AUTH_ALGORITHM")
    media_root: Path = Field(Path("media"), alias="MEDIA_ROOT")
    llm_base_url: str | None = Field(None, alias="LLM_BASE_URL")
    llm_api_key: str | None = Field(None, alias="LLM_API_KEY")
    llm_model_name: str = Field("openai/gpt-oss-20b", alias="LLM_MODEL_NAME")
    llm_vision_model_name: str = Field("meta-llama/llama-4-maverick", alias="LLM_VISION_MODEL_NAME")
    llm_timeout_seconds: float = Field(60.0, alias="LLM_TIMEOUT_SECONDS")
    apify_api_key: str | None = Field(None, alias="APIFY_API_KEY")
    scraper_user_agent: str = Field(
        "Mozilla/5.0 (compatible; RecipeImporter/0.1; +https://example.com/bot)",
        alias="SCRAPER_USER_AGENT",
    )
    import_max_retries: int = Field(3, alias="IMPORT_MAX_RETRIES")
    free_monthly_import_limit: int = Field(15, alias="FREE_MONTHLY_IMPORT_LIMIT")
    failed_import_retention_minutes: int = Field(60 * 24, alias="FAILED_IMPORT_RETENTION_MINUTES")
    import_text_max_chars: int = Field(50_000, alias="IMPORT_TEXT_MAX_CHARS")
    import_image_max_bytes: int = Field(15 * 1024 * 1024, alias="IMPORT_IMAGE_MAX_BYTES")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()
    except PermissionError:
        logger.warning("Unable to read .env; continuing with environment variables only")
        settings = Settings(_env_file=None)
    settings.media_root.mkdir(parents=True, exist_ok=True)
    return settings
