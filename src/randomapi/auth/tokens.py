"""管理后台访问令牌."""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from randomapi.utils.timeutil import utcnow


@dataclass
class AdminToken:
    """已登录管理员的令牌."""

    token: str
    user: dict[str, Any]
    expires_at: datetime


class AdminTokenStore:
    """内存令牌存储，服务重启后需要重新登录."""

    def __init__(self, ttl_hours: int = 168) -> None:
        self.ttl = timedelta(hours=ttl_hours)
        self._tokens: dict[str, AdminToken] = {}

    def issue(self, user: dict[str, Any], now: datetime | None = None) -> AdminToken:
        now = now or utcnow()
        token = AdminToken(
            token=secrets.token_urlsafe(32),
            user=user,
            expires_at=now + self.ttl,
        )
        self._tokens[token.token] = token
        return token

    def validate(self, token: str, now: datetime | None = None) -> AdminToken | None:
        """令牌有效时返回令牌信息，过期的令牌会被移除."""
        now = now or utcnow()
        found = self._tokens.get(token)
        if found is None:
            return None
        if now >= found.expires_at:
            del self._tokens[token]
            return None
        return found

    def revoke(self, token: str) -> None:
        self._tokens.pop(token, None)
