"""Configuration settings for the draft publisher."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Filesystem layout
    project_root: Path = Path(".")
    drafts_dir: Path = Path("drafts")
    content_dir: Path = Path("src/content")
    library_path: Path = Path("data/media-library.json")
    registry_path: Path = Path("data/metadata-registry.json")
    temp_dir: Path = Path(".temp-uploads")

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    extraction_context_chars: int = 500
    enable_llm_extraction: bool = True

    # Cloudflare Images / Stream
    cloudflare_account_id: str = ""
    cloudflare_api_token: str = ""
    cloudflare_images_account_hash: str = ""
    cloudflare_stream_customer_code: str = ""

    # Cloudflare R2 (S3 compatible)
    r2_bucket: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_public_url: str = ""

    # Limits
    max_concurrent_uploads: int = 3
    http_timeout_seconds: float = 60.0
    lock_timeout_seconds: float = 10.0

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the project root."""
        if path.is_absolute():
            return path
        return self.project_root / path

    @property
    def r2_endpoint_url(self) -> str:
        return f"https://{self.cloudflare_account_id}.r2.cloudflarestorage.com"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
