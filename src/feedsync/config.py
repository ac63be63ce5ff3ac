"""应用配置管理."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 应用配置
    database_url: str = "sqlite+aiosqlite:///./feedsync.db"
    sync_interval_minutes: int = 30
    sync_concurrency: int = 2

    # HTTP 配置
    http_timeout_seconds: float = 30.0
    user_agent: str = "feedsync/0.1 (+https://github.com/feedsync/feedsync)"

    # 同步配置
    freshrss_max_items: int = 5000
    read_speed_wpm: int = 200
    resolve_favicons: bool = True


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
