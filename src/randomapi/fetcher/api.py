"""GET/POST 接口数据源."""

import logging

import httpx

from randomapi.core.errors import FetchError
from randomapi.core.field_path import collect, parse_json_response
from randomapi.core.source_config import APIConfig
from randomapi.fetcher.base import SourceFetcher

logger = logging.getLogger(__name__)


class APIFetcher(SourceFetcher[APIConfig]):
    """请求通用 REST 接口，并按 url_field 从 JSON 响应中提取 URL."""

    def __init__(
        self,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """关闭客户端."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, config: APIConfig) -> list[str]:
        logger.info(f"请求 {config.method} 接口: {config.url}")

        headers = dict(config.headers)
        content: str | None = None
        if config.method == "POST" and config.body:
            content = config.body
            headers.setdefault("Content-Type", "application/json")

        try:
            response = await self._client.request(
                config.method,
                config.url,
                headers=headers,
                content=content,
            )
        except httpx.HTTPError as e:
            msg = f"请求接口失败: {e}"
            raise FetchError(msg) from e

        if response.status_code != 200:
            msg = f"接口返回状态码 {response.status_code}"
            raise FetchError(msg)

        data = parse_json_response(response.content)
        return collect(data, config.url_field)
