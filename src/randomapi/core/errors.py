"""领域错误定义.

配置类错误（校验、不存在）总是返回给管理端调用方；
同步与解析类错误只记录下来，由解析器降级处理。
"""


class RandomAPIError(Exception):
    """所有领域错误的基类."""


class ValidationError(RandomAPIError):
    """配置格式错误或与数据源类型不匹配，拒绝写入."""


class NotFoundError(RandomAPIError):
    """端点、数据源或规则不存在."""


class FieldPathError(RandomAPIError):
    """字段路径解析失败."""


class PathNotFoundError(FieldPathError):
    """路径中某一段在当前值上不存在."""

    def __init__(self, path: str, segment: str) -> None:
        super().__init__(f"字段路径 {path!r} 在 {segment!r} 处不存在")
        self.path = path
        self.segment = segment


class TypeMismatchError(FieldPathError):
    """路径最终指向的值不是字符串."""

    def __init__(self, path: str, actual: str) -> None:
        super().__init__(f"字段路径 {path!r} 指向 {actual}，期望字符串")
        self.path = path
        self.actual = actual


class InvalidResponseError(FieldPathError):
    """响应不是合法 JSON."""


class FetchError(RandomAPIError):
    """外部数据源请求失败（网络错误、状态码异常等）."""


class CyclicReferenceError(RandomAPIError):
    """端点之间存在循环引用."""

    def __init__(self, chain: list[int]) -> None:
        path = " -> ".join(str(endpoint_id) for endpoint_id in chain)
        super().__init__(f"端点循环引用: {path}")
        self.chain = chain


class SyncInFlightError(RandomAPIError):
    """同一数据源已有同步任务在运行，稍后再试."""

    def __init__(self, data_source_id: int) -> None:
        super().__init__(f"数据源 {data_source_id} 正在同步中")
        self.data_source_id = data_source_id


class EmptyPoolError(RandomAPIError):
    """端点没有任何可用的候选 URL."""


class OAuthStateError(RandomAPIError):
    """OAuth state 校验失败."""
