from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Sentinel master key that leaves /v1/* open to anonymous callers.
OPEN_ACCESS_KEY = "1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    host: str = "0.0.0.0"
    port: int = 3000
    api_master_key: str = OPEN_ACCESS_KEY
    upstream_url: str = "https://www.writecream.com/wp-admin/admin-ajax.php"
    upstream_origin: str = "https://www.writecream.com"
    upstream_link: str = "writecream.com"
    upstream_user_agent: str = DEFAULT_USER_AGENT
    upstream_timeout_s: float = Field(default=60.0, gt=0)
    models: str = Field(default="writecream-chat", description="Comma separated model ids")
    default_model: str = "writecream-chat"
    stream_by_default: bool = False
    stream_chunk_delay_ms: int = Field(default=20, ge=0)
    cors_allow_origins: str = "*"
    log_level: str = "INFO"
    metrics_enabled: bool = True

    @property
    def configured_models(self) -> list[str]:
        return [item.strip() for item in self.models.split(",") if item.strip()]

    @property
    def auth_enabled(self) -> bool:
        return self.api_master_key != OPEN_ACCESS_KEY

    @property
    def cors_origin_list(self) -> list[str]:
        return [item.strip() for item in self.cors_allow_origins.split(",") if item.strip()]

    @property
    def stream_chunk_delay_s(self) -> float:
        return self.stream_chunk_delay_ms / 1000.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
