"""兰空图床数据源."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from randomapi.core.errors import FetchError, InvalidResponseError
from randomapi.core.field_path import parse_json_response
from randomapi.core.source_config import LankongConfig
from randomapi.fetcher.base import SourceFetcher

logger = logging.getLogger(__name__)

# 遇到 429 时的等待序列（秒），超出长度后使用最后一个值
RATE_LIMIT_DELAYS = (0, 15, 15, 30, 30, 60, 60, 180)


class RateLimitedError(FetchError):
    """图床返回 429."""


def rate_limit_delay(attempt: int) -> int:
    """第 attempt 次重试前的等待秒数（频率限制）."""
    if attempt < len(RATE_LIMIT_DELAYS):
        return RATE_LIMIT_DELAYS[attempt]
    return RATE_LIMIT_DELAYS[-1]


class LankongFetcher(SourceFetcher[LankongConfig]):
    """分页拉取兰空图床相册中的图片链接."""

    def __init__(
        self,
        timeout: float = 60.0,
        max_retries: int = 7,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.max_retries = max_retries
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    async def close(self) -> None:
        """关闭客户端."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, config: LankongConfig) -> list[str]:
        all_urls: list[str] = []
        failed_albums = 0

        for album_id in config.album_ids:
            logger.info(f"开始获取相册 {album_id} 的图片")
            try:
                album_urls = await self._fetch_album(config, album_id)
            except (FetchError, InvalidResponseError) as e:
                failed_albums += 1
                logger.warning(f"获取相册 {album_id} 失败: {e}")
                continue

            all_urls.extend(album_urls)
            logger.info(f"完成相册 {album_id}: 收集到 {len(album_urls)} 个URL")

        if failed_albums and failed_albums == len(config.album_ids):
            msg = f"所有相册均获取失败 ({failed_albums} 个)"
            raise FetchError(msg)

        return all_urls

    async def _fetch_album(self, config: LankongConfig, album_id: str) -> list[str]:
        """获取单个相册的所有页面."""
        first_page = await self._fetch_page_with_retry(config, album_id, 1)
        last_page = first_page.get("last_page") or 1
        if not isinstance(last_page, int) or last_page < 1:
            last_page = 1

        urls = self._extract_urls(first_page)
        for page in range(2, last_page + 1):
            try:
                data = await self._fetch_page_with_retry(config, album_id, page)
            except (FetchError, InvalidResponseError) as e:
                logger.warning(f"相册 {album_id} 第 {page} 页获取失败: {e}")
                continue

            urls.extend(self._extract_urls(data))
            if page % 10 == 0 or page == last_page:
                logger.info(
                    f"相册 {album_id}: 已处理 {page}/{last_page} 页，收集到 {len(urls)} 个URL"
                )

        return urls

    async def _fetch_page_with_retry(
        self, config: LankongConfig, album_id: str, page: int
    ) -> dict[str, Any]:
        """带重试的页面获取."""
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                return await self._fetch_page(config, album_id, page)
            except (FetchError, InvalidResponseError) as e:
                last_error = e
                if attempt == self.max_retries:
                    break

                if isinstance(e, RateLimitedError):
                    delay = rate_limit_delay(attempt)
                    logger.warning(
                        f"遇到频率限制 (尝试 {attempt + 1}/{self.max_retries + 1})，"
                        f"等待 {delay} 秒后重试"
                    )
                else:
                    delay = attempt + 1
                    logger.warning(
                        f"请求失败 (尝试 {attempt + 1}/{self.max_retries + 1}): {e}，"
                        f"{delay} 秒后重试"
                    )
                await self._sleep(delay)

        msg = f"重试 {self.max_retries} 次后仍然失败: {last_error}"
        raise FetchError(msg)

    async def _fetch_page(
        self, config: LankongConfig, album_id: str, page: int
    ) -> dict[str, Any]:
        """获取单页数据，返回响应中的 data 对象."""
        try:
            response = await self._client.get(
                config.effective_base_url,
                params={"album_id": album_id, "page": page},
                headers={
                    "Authorization": f"Bearer {config.api_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            msg = f"请求图床失败: {e}"
            raise FetchError(msg) from e

        if response.status_code == 429:
            msg = "rate limit exceeded (429)"
            raise RateLimitedError(msg)
        if response.status_code != 200:
            msg = f"图床返回状态码 {response.status_code}"
            raise FetchError(msg)

        payload = parse_json_response(response.content)
        if not isinstance(payload, dict):
            msg = "图床响应格式错误"
            raise InvalidResponseError(msg)
        if not payload.get("status"):
            msg = f"图床接口错误: {payload.get('message', '')}"
            raise FetchError(msg)

        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    def _extract_urls(self, data: dict[str, Any]) -> list[str]:
        urls: list[str] = []
        items = data.get("data")
        if not isinstance(items, list):
            return urls
        for item in items:
            if not isinstance(item, dict):
                continue
            links = item.get("links")
            url = links.get("url") if isinstance(links, dict) else None
            if isinstance(url, str) and url:
                urls.append(url)
        return urls
