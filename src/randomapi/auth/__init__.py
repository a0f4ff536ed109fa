"""管理后台认证."""

from functools import lru_cache

from randomapi.auth.client import OAuthClient, OAuthError
from randomapi.auth.state import OAuthState, OAuthStateStore
from randomapi.auth.tokens import AdminToken, AdminTokenStore
from randomapi.config import get_settings


@lru_cache
def get_state_store() -> OAuthStateStore:
    """全局 state 存储."""
    settings = get_settings()
    return OAuthStateStore(
        ttl_seconds=settings.oauth_state_ttl_seconds,
        require_state=settings.oauth_require_state,
    )


@lru_cache
def get_token_store() -> AdminTokenStore:
    """全局管理员令牌存储."""
    return AdminTokenStore(ttl_hours=get_settings().admin_token_ttl_hours)


__all__ = [
    "AdminToken",
    "AdminTokenStore",
    "OAuthClient",
    "OAuthError",
    "OAuthState",
    "OAuthStateStore",
    "get_state_store",
    "get_token_store",
]
