"""测试数据源配置解析."""

import json

import pytest

from randomapi.core.errors import ValidationError
from randomapi.core.source_config import (
    DEFAULT_LANKONG_BASE_URL,
    APIConfig,
    EndpointRefConfig,
    LankongConfig,
    ManualConfig,
    S3Config,
    SourceType,
    manual_config_to_text,
    manual_text_to_config,
    normalize_config,
    parse_config,
    serialize_config,
    to_source_type,
)


class TestSourceType:
    """类型转换."""

    def test_known_types(self):
        assert to_source_type("api_post") is SourceType.API_POST

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            to_source_type("ftp")


class TestManualConfig:
    """手动配置."""

    def test_strips_and_drops_empty(self):
        config = parse_config("manual", '{"urls": [" a ", "", "b"]}')
        assert isinstance(config, ManualConfig)
        assert config.urls == ["a", "b"]

    def test_text_conversion(self):
        """多行文本与配置互转."""
        config = manual_text_to_config("https://a\n\n  # 注释\n https://b  \n")
        assert config.urls == ["https://a", "https://b"]
        assert manual_config_to_text(config) == "https://a\nhttps://b"


class TestLankongConfig:
    """兰空图床配置."""

    def test_defaults(self):
        config = parse_config("lankong", '{"api_token": "t", "album_ids": ["1", " 2 "]}')
        assert isinstance(config, LankongConfig)
        assert config.album_ids == ["1", "2"]
        assert config.effective_base_url == DEFAULT_LANKONG_BASE_URL

    def test_single_string_album_rejected(self):
        """album_ids 必须是数组，不做隐式转换."""
        with pytest.raises(ValidationError):
            parse_config("lankong", '{"api_token": "t", "album_ids": "1"}')

    def test_empty_albums_rejected(self):
        with pytest.raises(ValidationError):
            parse_config("lankong", '{"api_token": "t", "album_ids": [" "]}')

    def test_missing_token_rejected(self):
        with pytest.raises(ValidationError):
            parse_config("lankong", '{"album_ids": ["1"]}')


class TestAPIConfig:
    """接口配置."""

    def test_method_filled_from_type(self):
        """缺省 method 按类型填充."""
        get_config = parse_config("api_get", '{"url": "https://x"}')
        post_config = parse_config("api_post", '{"url": "https://x", "body": "{}"}')
        assert isinstance(get_config, APIConfig)
        assert get_config.method == "GET"
        assert get_config.url_field == "url"
        assert isinstance(post_config, APIConfig)
        assert post_config.method == "POST"

    def test_method_must_match_type(self):
        with pytest.raises(ValidationError):
            parse_config("api_get", '{"url": "https://x", "method": "post"}')

    def test_get_with_body_rejected(self):
        with pytest.raises(ValidationError):
            parse_config("api_get", '{"url": "https://x", "body": "{}"}')

    def test_empty_headers_dropped(self):
        raw = json.dumps({"url": "https://x", "headers": {"X-Key": "v", "": "a", "Empty": " "}})
        config = parse_config("api_get", raw)
        assert isinstance(config, APIConfig)
        assert config.headers == {"X-Key": "v"}

    def test_blank_url_field_defaults(self):
        config = parse_config("api_get", '{"url": "https://x", "url_field": "  "}')
        assert isinstance(config, APIConfig)
        assert config.url_field == "url"


class TestEndpointRefConfig:
    """端点引用配置."""

    def test_dedupes_ids(self):
        config = parse_config("endpoint", '{"endpoint_ids": [3, 1, 3]}')
        assert isinstance(config, EndpointRefConfig)
        assert config.endpoint_ids == [3, 1]

    def test_string_ids_rejected(self):
        with pytest.raises(ValidationError):
            parse_config("endpoint", '{"endpoint_ids": ["1"]}')

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            parse_config("endpoint", '{"endpoint_ids": []}')


class TestS3Config:
    """对象存储配置."""

    def test_defaults(self):
        raw = json.dumps(
            {
                "endpoint": "https://s3.example.com",
                "bucket_name": "pics",
                "access_key_id": "ak",
                "secret_access_key": "sk",
                "region": "",
            }
        )
        config = parse_config("s3", raw)
        assert isinstance(config, S3Config)
        assert config.region == "us-east-1"
        assert config.list_objects_version == "v2"
        assert config.include_subfolders is False

    def test_missing_credentials_rejected(self):
        with pytest.raises(ValidationError):
            parse_config("s3", '{"endpoint": "e", "bucket_name": "b"}')


class TestCrossVariant:
    """配置与类型不匹配."""

    def test_field_of_other_variant_rejected(self):
        """manual 配置里出现 api 字段."""
        with pytest.raises(ValidationError):
            parse_config("manual", '{"urls": ["a"], "url_field": "data.url"}')

    def test_lankong_payload_as_api(self):
        with pytest.raises(ValidationError):
            parse_config("api_get", '{"api_token": "t", "album_ids": ["1"]}')

    def test_invalid_json(self):
        with pytest.raises(ValidationError):
            parse_config("manual", "not json")


class TestNormalizeConfig:
    """配置规范化."""

    def test_accepts_dict(self):
        normalized = normalize_config("manual", {"urls": [" a "]})
        assert json.loads(normalized) == {"urls": ["a"]}

    def test_reparse_is_stable(self):
        """规范化结果再次规范化不变."""
        once = normalize_config("api_post", '{"url": "https://x", "body": "{\\"a\\": 1}"}')
        assert normalize_config("api_post", once) == once


ROUND_TRIP_CASES = [
    ("manual", {"urls": ["https://a"]}),
    ("manual", {"urls": ["https://a", "https://b", "https://c"]}),
    ("lankong", {"api_token": "t", "album_ids": ["1"]}),
    (
        "lankong",
        {"api_token": "t", "album_ids": ["1", "2"], "base_url": "https://img.example.com/api/v1/images"},
    ),
    ("api_get", {"url": "https://api.example.com"}),
    (
        "api_get",
        {
            "url": "https://api.example.com",
            "method": "GET",
            "headers": {"X-Key": "k", "Accept": "application/json"},
            "url_field": "data.items[0].url",
        },
    ),
    ("api_post", {"url": "https://api.example.com"}),
    (
        "api_post",
        {
            "url": "https://api.example.com",
            "method": "POST",
            "headers": {"Authorization": "Bearer x"},
            "body": '{"count": 5}',
            "url_field": "urls",
        },
    ),
    ("endpoint", {"endpoint_ids": [1]}),
    ("endpoint", {"endpoint_ids": [3, 1, 2]}),
    (
        "s3",
        {
            "endpoint": "https://s3.example.com",
            "bucket_name": "pics",
            "access_key_id": "ak",
            "secret_access_key": "sk",
        },
    ),
    (
        "s3",
        {
            "endpoint": "https://s3.example.com",
            "bucket_name": "pics",
            "region": "ap-east-1",
            "access_key_id": "ak",
            "secret_access_key": "sk",
            "list_objects_version": "v1",
            "use_path_style": True,
            "remove_bucket": True,
            "custom_domain": "https://cdn.example.com",
            "folder_path": "/wallpapers",
            "include_subfolders": True,
            "file_extensions": [".jpg", "png"],
        },
    ),
]


class TestRoundTrip:
    """序列化后重新解析得到相同的配置."""

    @pytest.mark.parametrize(
        ("source_type", "raw"),
        ROUND_TRIP_CASES,
        ids=[
            f"{source_type}-{'minimal' if i % 2 == 0 else 'full'}"
            for i, (source_type, _) in enumerate(ROUND_TRIP_CASES)
        ],
    )
    def test_parse_serialize_parse(self, source_type: str, raw: dict):
        config = parse_config(source_type, json.dumps(raw))
        serialized = serialize_config(config)

        assert parse_config(source_type, serialized) == config
        assert serialize_config(parse_config(source_type, serialized)) == serialized
