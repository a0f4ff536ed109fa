"""数据模型."""

from randomapi.models.cached_url import CachedURL
from randomapi.models.data_source import DataSource
from randomapi.models.database import get_session, init_db
from randomapi.models.endpoint import Endpoint
from randomapi.models.settings import ConfigItem
from randomapi.models.stats import DailyDomainStat, DomainStat, EndpointStat
from randomapi.models.sync import SyncRun
from randomapi.models.url_rule import URLReplaceRule

__all__ = [
    "CachedURL",
    "ConfigItem",
    "DailyDomainStat",
    "DataSource",
    "DomainStat",
    "Endpoint",
    "EndpointStat",
    "SyncRun",
    "URLReplaceRule",
    "get_session",
    "init_db",
]
