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
    database_url: str = "sqlite+aiosqlite:///./randomapi.db"
    base_url: str = "http://localhost:8000"

    # OAuth 配置
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    oauth_authorize_url: str = "https://connect.czl.net/oauth2/authorize"
    oauth_token_url: str = "https://connect.czl.net/api/oauth2/token"
    oauth_userinfo_url: str = "https://connect.czl.net/api/oauth2/userinfo"
    oauth_state_ttl_seconds: int = 600
    oauth_require_state: bool = False  # 回调缺少 state 时是否直接拒绝

    # 管理后台认证
    admin_auth_enabled: bool = True
    admin_token_ttl_hours: int = 168

    # 解析与同步
    resolve_timeout_seconds: float = 10.0
    preload_interval_minutes: int = 30
    default_cache_duration: int = 3600

    # 外部请求
    http_timeout_seconds: float = 30.0
    lankong_timeout_seconds: float = 60.0
    lankong_max_retries: int = 7


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
