"""OAuth state 管理 - 防止登录回调被伪造."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from randomapi.core.errors import OAuthStateError
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class OAuthState:
    """一次登录发起时签发的 state."""

    value: str
    session_id: str
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class OAuthStateStore:
    """
    内存中的 state 存储.

    state 与浏览器的登录会话 ID（Cookie）绑定，一个会话同时只有一个有效 state，
    校验后立即清除，不能重放。
    """

    def __init__(self, ttl_seconds: int = 600, require_state: bool = False) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self.require_state = require_state
        self._states: dict[str, OAuthState] = {}

    def issue(self, session_id: str, now: datetime | None = None) -> OAuthState:
        """为登录会话签发新的 state（覆盖旧的）."""
        now = now or utcnow()
        self._purge(now)
        state = OAuthState(
            value=secrets.token_urlsafe(24),
            session_id=session_id,
            expires_at=now + self.ttl,
        )
        self._states[session_id] = state
        return state

    def verify(
        self,
        session_id: str | None,
        received: str | None,
        now: datetime | None = None,
    ) -> None:
        """
        校验回调中的 state.

        state 不匹配、已过期或从未签发都会失败；回调未携带 state 时
        只记录警告（require_state=True 时同样失败）。无论结果如何都会清除 state。
        """
        now = now or utcnow()
        issued = self._states.pop(session_id, None) if session_id else None

        if not received:
            if self.require_state:
                msg = "回调缺少 state 参数"
                raise OAuthStateError(msg)
            logger.warning("OAuth 回调缺少 state 参数，已跳过校验")
            return

        if issued is None:
            msg = "state 未签发或已使用"
            raise OAuthStateError(msg)
        if issued.expired(now):
            msg = "state 已过期，请重新登录"
            raise OAuthStateError(msg)
        if not secrets.compare_digest(issued.value, received):
            msg = "state 不匹配"
            raise OAuthStateError(msg)

    def clear(self, session_id: str) -> None:
        self._states.pop(session_id, None)

    def _purge(self, now: datetime) -> None:
        expired = [key for key, state in self._states.items() if state.expired(now)]
        for key in expired:
            del self._states[key]
