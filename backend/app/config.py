from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration using Pydantic Settings.
    Environment variables are loaded from .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Meta Graph API
    meta_graph_url: str = "https://graph.facebook.com"
    meta_api_version: str = "v21.0"
    meta_request_timeout_seconds: float = 15.0
    meta_request_deadline_seconds: float = 30.0
    meta_page_limit: int = 100
    meta_max_pages: int = 10
    meta_max_retries: int = 0
    meta_retry_base_delay_seconds: float = 1.0
    meta_rate_limit_usage_threshold: float = 95.0

    # Response cache
    cache_max_entries: int = 100
    cache_sweep_interval_seconds: int = 60

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_cors_origins: str = "http://localhost:3000,http://localhost:5173"
    log_level: str = "INFO"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.api_cors_origins.split(",")]

    @property
    def meta_base_url(self) -> str:
        """Versioned Graph API root, e.g. https://graph.facebook.com/v21.0."""
        return f"{self.meta_graph_url.rstrip('/')}/{self.meta_api_version}"


# Global settings instance
def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()


settings = get_settings()
