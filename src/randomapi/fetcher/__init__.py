"""数据源获取模块."""

from randomapi.fetcher.api import APIFetcher
from randomapi.fetcher.base import SourceFetcher
from randomapi.fetcher.factory import create_fetcher
from randomapi.fetcher.lankong import LankongFetcher
from randomapi.fetcher.manual import ManualFetcher
from randomapi.fetcher.s3 import S3Fetcher

__all__ = [
    "APIFetcher",
    "LankongFetcher",
    "ManualFetcher",
    "S3Fetcher",
    "SourceFetcher",
    "create_fetcher",
]
