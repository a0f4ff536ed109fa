"""OAuth 客户端."""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from randomapi.config import Settings
from randomapi.core.errors import RandomAPIError

logger = logging.getLogger(__name__)


class OAuthError(RandomAPIError):
    """与 OAuth 服务交互失败."""


class OAuthClient:
    """OAuth2 授权码流程客户端."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = settings.oauth_client_id
        self.client_secret = settings.oauth_client_secret
        self.authorize_url = settings.oauth_authorize_url
        self.token_url = settings.oauth_token_url
        self.userinfo_url = settings.oauth_userinfo_url
        self.redirect_uri = settings.base_url.rstrip("/") + "/api/admin/oauth/callback"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    async def close(self) -> None:
        """关闭客户端."""
        if self._owns_client:
            await self._client.aclose()

    def authorization_url(self, state: str) -> str:
        """构造跳转到授权页面的 URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """
        用授权码换取访问令牌.

        先用 Basic 认证，失败后把凭据放在表单中重试。
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }

        try:
            response = await self._client.post(
                self.token_url,
                data=form,
                auth=(self.client_id, self.client_secret),
            )
            if response.status_code != 200:
                logger.info(f"Basic 认证换取令牌失败 ({response.status_code})，改用表单凭据")
                response = await self._client.post(
                    self.token_url,
                    data={
                        **form,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                )
        except httpx.HTTPError as e:
            msg = f"请求令牌失败: {e}"
            raise OAuthError(msg) from e

        if response.status_code != 200:
            msg = f"获取访问令牌失败: {response.status_code}"
            raise OAuthError(msg)

        payload = self._json(response)
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            msg = "令牌响应中缺少 access_token"
            raise OAuthError(msg)
        return access_token

    async def get_user_info(self, access_token: str) -> dict[str, Any]:
        """获取当前用户信息."""
        try:
            response = await self._client.get(
                self.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            msg = f"请求用户信息失败: {e}"
            raise OAuthError(msg) from e

        if response.status_code != 200:
            msg = f"获取用户信息失败: {response.status_code}"
            raise OAuthError(msg)
        return self._json(response)

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            msg = "OAuth 服务返回了无效的 JSON"
            raise OAuthError(msg) from e
        if not isinstance(payload, dict):
            msg = "OAuth 服务响应格式错误"
            raise OAuthError(msg)
        return payload
