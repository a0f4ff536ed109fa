"""管理后台登录 API（OAuth 授权码流程）."""

import logging
import secrets
from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, Header
from fastapi.responses import RedirectResponse

from randomapi.api.deps import http_error, require_admin
from randomapi.auth import (
    AdminTokenStore,
    OAuthClient,
    OAuthError,
    OAuthStateStore,
    get_state_store,
    get_token_store,
)
from randomapi.config import get_settings
from randomapi.core.errors import OAuthStateError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# 绑定 state 的登录会话 Cookie
SESSION_COOKIE = "randomapi_oauth_session"


async def get_oauth_client() -> AsyncGenerator[OAuthClient, None]:
    """每次请求创建 OAuth 客户端，用完关闭."""
    client = OAuthClient(get_settings())
    try:
        yield client
    finally:
        await client.close()


def _admin_redirect(**params: str) -> RedirectResponse:
    response = RedirectResponse(url=f"/admin?{urlencode(params)}", status_code=302)
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/api/oauth-config")
async def get_oauth_config() -> dict:
    """OAuth 公开配置（不含 client_secret）."""
    settings = get_settings()
    return {
        "client_id": settings.oauth_client_id,
        "base_url": settings.base_url,
    }


@router.get("/api/admin/oauth/login")
async def oauth_login(
    session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE),
    state_store: OAuthStateStore = Depends(get_state_store),
    client: OAuthClient = Depends(get_oauth_client),
) -> RedirectResponse:
    """签发 state 并跳转到授权页面."""
    session_id = session_id or secrets.token_urlsafe(16)
    state = state_store.issue(session_id)

    response = RedirectResponse(url=client.authorization_url(state.value), status_code=302)
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=get_settings().oauth_state_ttl_seconds,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/api/admin/oauth/callback")
async def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE),
    state_store: OAuthStateStore = Depends(get_state_store),
    token_store: AdminTokenStore = Depends(get_token_store),
    client: OAuthClient = Depends(get_oauth_client),
) -> RedirectResponse:
    """处理授权回调，登录成功后带着令牌跳转到管理后台."""
    if error:
        return _admin_redirect(error=error)
    if not code:
        return _admin_redirect(error="no_code")

    try:
        state_store.verify(session_id, state)
    except OAuthStateError as e:
        logger.warning(f"OAuth state 校验失败: {e}")
        raise http_error(e) from e

    try:
        access_token = await client.exchange_code(code)
    except OAuthError as e:
        logger.warning(f"换取访问令牌失败: {e}")
        return _admin_redirect(error="token_exchange_failed", details=str(e))

    try:
        user_info = await client.get_user_info(access_token)
    except OAuthError as e:
        logger.warning(f"获取用户信息失败: {e}")
        return _admin_redirect(error="userinfo_failed", details=str(e))

    admin_token = token_store.issue(user_info)
    username = str(user_info.get("username", ""))
    logger.info(f"管理员 {username} 登录成功")
    return _admin_redirect(token=admin_token.token, user=username)


@router.get("/api/admin/me")
async def current_admin(user: dict[str, Any] = Depends(require_admin)) -> dict:
    """当前登录的管理员."""
    return {"user": user}


@router.post("/api/admin/logout", dependencies=[Depends(require_admin)])
async def logout(
    authorization: str | None = Header(default=None),
    token_store: AdminTokenStore = Depends(get_token_store),
) -> dict:
    """注销当前令牌."""
    if authorization and authorization.startswith("Bearer "):
        token_store.revoke(authorization.removeprefix("Bearer ").strip())
    return {"success": True}
