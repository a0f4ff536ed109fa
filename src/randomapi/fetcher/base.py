"""数据源获取器抽象基类."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from randomapi.core.source_config import SourceConfig

ConfigT = TypeVar("ConfigT", bound=SourceConfig)


class SourceFetcher(ABC, Generic[ConfigT]):
    """从外部来源获取候选 URL 列表."""

    @abstractmethod
    async def fetch(self, config: ConfigT) -> list[str]:
        """获取候选 URL，失败时抛出 FetchError 或字段路径相关错误."""
        ...

    async def close(self) -> None:
        """释放资源."""
        return None
