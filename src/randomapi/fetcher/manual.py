"""手动配置数据源."""

from randomapi.core.source_config import ManualConfig
from randomapi.fetcher.base import SourceFetcher


class ManualFetcher(SourceFetcher[ManualConfig]):
    """直接返回配置中的 URL 列表."""

    async def fetch(self, config: ManualConfig) -> list[str]:
        return list(config.urls)
