"""S3 兼容对象存储数据源."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from randomapi.core.errors import FetchError
from randomapi.core.source_config import S3Config
from randomapi.fetcher.base import SourceFetcher

logger = logging.getLogger(__name__)

# 路径段中保留不编码的字符
_PATH_SAFE = "$&+:=@"


def object_prefix(folder_path: str) -> str:
    """将文件夹路径转换为对象前缀: 去掉开头的 /，补全结尾的 /."""
    prefix = folder_path.lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


def normalize_extensions(extensions: list[str]) -> list[str]:
    """统一扩展名格式（小写，以 . 开头）."""
    normalized = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        normalized.append(ext)
    return normalized


def encode_path(path: str) -> str:
    """逐段编码路径，保留 / 分隔符."""
    return "/".join(quote(part, safe=_PATH_SAFE) if part else part for part in path.split("/"))


def build_object_url(key: str, config: S3Config) -> str:
    """生成对象的访问 URL."""
    if config.custom_domain:
        base_url = config.custom_domain.rstrip("/")
        path = key
        bucket_prefix = config.bucket_name + "/"
        if config.remove_bucket and path.startswith(bucket_prefix):
            path = path[len(bucket_prefix):]
        path = encode_path(path)
        if not path.startswith("/"):
            path = "/" + path
        return base_url + path

    encoded_key = encode_path(key)
    endpoint = config.endpoint.rstrip("/")
    if config.use_path_style:
        return f"{endpoint}/{config.bucket_name}/{encoded_key}"

    parsed = urlsplit(endpoint)
    scheme = parsed.scheme or "https"
    host = parsed.netloc or parsed.path
    if not host:
        return f"{endpoint}/{config.bucket_name}/{encoded_key}"
    return f"{scheme}://{config.bucket_name}.{host}/{encoded_key}"


def filter_object_urls(keys: list[str], config: S3Config) -> list[str]:
    """过滤目录与不匹配扩展名的对象，转换为 URL."""
    extensions = normalize_extensions(config.file_extensions)
    urls: list[str] = []
    for key in keys:
        if not key or key.endswith("/"):
            continue
        if extensions and not key.lower().endswith(tuple(extensions)):
            continue
        urls.append(build_object_url(key, config))
    return urls


class S3Fetcher(SourceFetcher[S3Config]):
    """
    列出存储桶中的对象并生成访问链接.

    boto3 是同步库，这里用线程池包装成异步。
    """

    def __init__(self, timeout: float = 30.0, client_factory: Any = None) -> None:
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=2)
        self._client_factory = client_factory or self._create_client

    async def close(self) -> None:
        """关闭线程池."""
        self._executor.shutdown(wait=False)

    async def fetch(self, config: S3Config) -> list[str]:
        loop = asyncio.get_running_loop()
        try:
            keys = await loop.run_in_executor(self._executor, self._list_keys, config)
        except (BotoCoreError, ClientError) as e:
            msg = f"获取对象列表失败: {e}"
            raise FetchError(msg) from e

        urls = filter_object_urls(keys, config)
        logger.info(f"从存储桶 {config.bucket_name} 获取到 {len(urls)} 个文件URL")
        return urls

    def _create_client(self, config: S3Config) -> Any:
        endpoint = config.endpoint
        if "://" not in endpoint:
            endpoint = "https://" + endpoint
        return boto3.client(
            "s3",
            endpoint_url=endpoint,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            config=BotoConfig(
                s3={"addressing_style": "path" if config.use_path_style else "virtual"},
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
            ),
        )

    def _list_keys(self, config: S3Config) -> list[str]:
        """同步列出对象（在线程池中执行）."""
        client = self._client_factory(config)
        operation = "list_objects" if config.list_objects_version == "v1" else "list_objects_v2"
        params: dict[str, Any] = {
            "Bucket": config.bucket_name,
            "Prefix": object_prefix(config.folder_path),
            "PaginationConfig": {"PageSize": 1000},
        }
        if not config.include_subfolders:
            params["Delimiter"] = "/"

        keys: list[str] = []
        for page in client.get_paginator(operation).paginate(**params):
            keys.extend(item["Key"] for item in page.get("Contents", []) if item.get("Key"))
        return keys
