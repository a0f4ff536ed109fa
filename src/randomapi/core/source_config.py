"""数据源配置 - 按 type 区分的配置变体及其解析/序列化.

每种数据源类型对应一个独立的 pydantic 模型：缺省的可选字段按类型填默认值，
类型不匹配（例如 album_ids 传了单个字符串）一律拒绝，不做隐式转换。
配置中出现其他类型的字段同样视为不匹配。
"""

import json
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from randomapi.core.errors import ValidationError
from randomapi.core.field_path import DEFAULT_URL_FIELD

DEFAULT_LANKONG_BASE_URL = "https://img.czl.net/api/v1/images"
DEFAULT_S3_REGION = "us-east-1"


class SourceType(StrEnum):
    """数据源类型."""

    MANUAL = "manual"
    LANKONG = "lankong"
    API_GET = "api_get"
    API_POST = "api_post"
    ENDPOINT = "endpoint"
    S3 = "s3"


def _require(value: str) -> str:
    value = value.strip()
    if not value:
        msg = "不能为空"
        raise ValueError(msg)
    return value


class SourceConfig(BaseModel):
    """配置变体基类."""

    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)


class ManualConfig(SourceConfig):
    """手动配置的 URL 列表."""

    urls: list[str]

    @field_validator("urls")
    @classmethod
    def _strip_urls(cls, urls: list[str]) -> list[str]:
        return [url.strip() for url in urls if url.strip()]


class LankongConfig(SourceConfig):
    """兰空图床配置."""

    api_token: str
    album_ids: list[str]
    base_url: str = ""

    @field_validator("api_token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        return _require(value)

    @field_validator("album_ids")
    @classmethod
    def _check_albums(cls, album_ids: list[str]) -> list[str]:
        cleaned = [album_id.strip() for album_id in album_ids if album_id.strip()]
        if not cleaned:
            msg = "至少需要一个相册 ID"
            raise ValueError(msg)
        return cleaned

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        return value.strip()

    @property
    def effective_base_url(self) -> str:
        """实际请求地址（未配置时使用默认图床）."""
        return self.base_url or DEFAULT_LANKONG_BASE_URL


class APIConfig(SourceConfig):
    """GET/POST 接口配置."""

    url: str
    method: Literal["GET", "POST"] = "GET"
    headers: dict[str, str] = {}
    body: str = ""
    url_field: str = DEFAULT_URL_FIELD

    @model_validator(mode="before")
    @classmethod
    def _fill_method(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        method = data.get("method")
        if isinstance(method, str):
            data["method"] = method.strip().upper()
        elif method is None and info.context:
            source_type = info.context.get("source_type")
            data["method"] = "POST" if source_type == SourceType.API_POST else "GET"
        return data

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _require(value)

    @field_validator("headers")
    @classmethod
    def _strip_headers(cls, headers: dict[str, str]) -> dict[str, str]:
        # 键或值为空的请求头直接丢弃
        return {
            key.strip(): value.strip()
            for key, value in headers.items()
            if key.strip() and value.strip()
        }

    @field_validator("url_field")
    @classmethod
    def _default_url_field(cls, value: str) -> str:
        return value.strip() or DEFAULT_URL_FIELD

    @model_validator(mode="after")
    def _check_body(self) -> "APIConfig":
        if self.method == "GET" and self.body:
            msg = "GET 请求不能携带 body"
            raise ValueError(msg)
        return self


class EndpointRefConfig(SourceConfig):
    """引用其他端点."""

    endpoint_ids: list[int]

    @field_validator("endpoint_ids")
    @classmethod
    def _check_ids(cls, endpoint_ids: list[int]) -> list[int]:
        if not endpoint_ids:
            msg = "至少需要引用一个端点"
            raise ValueError(msg)
        if any(endpoint_id <= 0 for endpoint_id in endpoint_ids):
            msg = "端点 ID 必须为正整数"
            raise ValueError(msg)
        return list(dict.fromkeys(endpoint_ids))


class S3Config(SourceConfig):
    """S3 兼容对象存储配置."""

    endpoint: str
    bucket_name: str
    region: str = DEFAULT_S3_REGION
    access_key_id: str
    secret_access_key: str

    list_objects_version: Literal["v1", "v2"] = "v2"
    use_path_style: bool = False
    remove_bucket: bool = False

    custom_domain: str = ""

    folder_path: str = ""
    include_subfolders: bool = False
    file_extensions: list[str] = []

    @field_validator("endpoint", "bucket_name", "access_key_id", "secret_access_key")
    @classmethod
    def _check_required(cls, value: str) -> str:
        return _require(value)

    @field_validator("region")
    @classmethod
    def _default_region(cls, value: str) -> str:
        return value.strip() or DEFAULT_S3_REGION

    @field_validator("custom_domain", "folder_path")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("file_extensions")
    @classmethod
    def _strip_extensions(cls, extensions: list[str]) -> list[str]:
        return [ext.strip() for ext in extensions if ext.strip()]


_CONFIG_MODELS: dict[SourceType, type[SourceConfig]] = {
    SourceType.MANUAL: ManualConfig,
    SourceType.LANKONG: LankongConfig,
    SourceType.API_GET: APIConfig,
    SourceType.API_POST: APIConfig,
    SourceType.ENDPOINT: EndpointRefConfig,
    SourceType.S3: S3Config,
}

_unhandled = set(SourceType) - set(_CONFIG_MODELS)
if _unhandled:
    msg = f"数据源类型缺少配置模型: {sorted(_unhandled)}"
    raise RuntimeError(msg)


def to_source_type(value: str) -> SourceType:
    """将字符串转换为 SourceType，未知类型抛出 ValidationError."""
    try:
        return SourceType(value)
    except ValueError as e:
        msg = f"不支持的数据源类型: {value!r}"
        raise ValidationError(msg) from e


def _format_errors(source_type: SourceType, error: PydanticValidationError) -> str:
    details = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        details.append(f"{location}: {item['msg']}")
    return f"{source_type.value} 配置无效: " + "; ".join(details)


def parse_config(source_type: SourceType | str, raw: str) -> SourceConfig:
    """将序列化的配置解析为对应类型的配置对象."""
    source_type = to_source_type(source_type)
    model = _CONFIG_MODELS[source_type]
    try:
        config = model.model_validate_json(raw, context={"source_type": source_type})
    except PydanticValidationError as e:
        raise ValidationError(_format_errors(source_type, e)) from e

    if isinstance(config, APIConfig):
        expected = "POST" if source_type == SourceType.API_POST else "GET"
        if config.method != expected:
            msg = f"{source_type.value} 的 method 必须为 {expected}"
            raise ValidationError(msg)
    return config


def serialize_config(config: SourceConfig) -> str:
    """序列化配置对象."""
    return config.model_dump_json()


def normalize_config(source_type: SourceType | str, raw: str | dict[str, Any]) -> str:
    """校验并规范化配置，返回可直接存储的字符串."""
    if isinstance(raw, dict):
        raw = json.dumps(raw, ensure_ascii=False)
    return serialize_config(parse_config(source_type, raw))


def manual_text_to_config(text: str) -> ManualConfig:
    """
    将多行文本转换为手动配置.

    每行去掉首尾空白，空行与 # 开头的注释行丢弃，保持原有顺序。
    """
    urls = [
        line.strip()
        for line in text.split("\n")
        if line.strip() and not line.strip().startswith("#")
    ]
    return ManualConfig(urls=urls)


def manual_config_to_text(config: ManualConfig) -> str:
    """将手动配置还原为多行文本（注释不会被还原）."""
    return "\n".join(config.urls)
