"""数据源获取器工厂."""

from randomapi.config import Settings
from randomapi.core.errors import ValidationError
from randomapi.core.source_config import SourceType
from randomapi.fetcher.api import APIFetcher
from randomapi.fetcher.base import SourceFetcher
from randomapi.fetcher.lankong import LankongFetcher
from randomapi.fetcher.manual import ManualFetcher
from randomapi.fetcher.s3 import S3Fetcher


def create_fetcher(source_type: SourceType, settings: Settings) -> SourceFetcher:
    """根据数据源类型创建获取器（endpoint 类型在进程内解析，没有获取器）."""
    if source_type == SourceType.MANUAL:
        return ManualFetcher()

    if source_type == SourceType.LANKONG:
        return LankongFetcher(
            timeout=settings.lankong_timeout_seconds,
            max_retries=settings.lankong_max_retries,
        )

    if source_type in (SourceType.API_GET, SourceType.API_POST):
        return APIFetcher(timeout=settings.http_timeout_seconds)

    if source_type == SourceType.S3:
        return S3Fetcher(timeout=settings.http_timeout_seconds)

    msg = f"{source_type.value} 类型的数据源没有外部获取器"
    raise ValidationError(msg)
