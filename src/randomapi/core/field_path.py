"""字段路径解析 - 从任意 JSON 响应中按声明式路径取出 URL.

路径由 ``.`` 分隔，例如 ``data.url``、``urls.0``；``urls[0]`` 与 ``urls.0`` 等价。
当某一段是非负整数且当前值为数组时按下标取值，否则按对象键取值。
"""

import json
import re
from typing import Any

from randomapi.core.errors import (
    InvalidResponseError,
    PathNotFoundError,
    TypeMismatchError,
)

DEFAULT_URL_FIELD = "url"

_BRACKET_INDEX = re.compile(r"\[(\d+)\]")


def split_path(path: str | None) -> list[str]:
    """将路径字符串拆分为段列表（空路径视为默认的 ``url``）."""
    path = (path or "").strip()
    if not path:
        return [DEFAULT_URL_FIELD]

    normalized = _BRACKET_INDEX.sub(r".\1", path)
    if path.startswith("["):
        normalized = normalized[1:]
    return normalized.split(".")


def _is_index(segment: str) -> bool:
    return segment.isascii() and segment.isdigit()


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def _step(current: Any, segment: str) -> tuple[bool, Any]:
    """在当前值上走一段，返回 (是否存在, 下一个值)."""
    if isinstance(current, list) and _is_index(segment):
        index = int(segment)
        if index < len(current):
            return True, current[index]
        return False, None
    if isinstance(current, dict) and segment in current:
        return True, current[segment]
    return False, None


def resolve(root: Any, path: str | None = DEFAULT_URL_FIELD) -> str:
    """按路径取出单个字符串.

    - 任意一段不存在时抛出 PathNotFoundError
    - 最终值不是字符串时抛出 TypeMismatchError
    """
    raw_path = (path or "").strip() or DEFAULT_URL_FIELD
    current = root
    for segment in split_path(path):
        if not segment:
            raise PathNotFoundError(raw_path, segment)
        found, current = _step(current, segment)
        if not found:
            raise PathNotFoundError(raw_path, segment)

    if not isinstance(current, str):
        raise TypeMismatchError(raw_path, _json_type(current))
    return current


def collect(root: Any, path: str | None = DEFAULT_URL_FIELD) -> list[str]:
    """
    按路径收集所有字符串（用于构建候选池）.

    非下标段遇到数组时会对每个元素展开；叶子为数组时同样展开。
    结果按文档顺序去重，忽略空字符串。
    """
    raw_path = (path or "").strip() or DEFAULT_URL_FIELD
    segments = split_path(path)
    results: list[str] = []
    seen: set[str] = set()
    non_string_leaf: str | None = None
    missing: str | None = None

    stack: list[tuple[Any, int]] = [(root, 0)]
    while stack:
        value, depth = stack.pop()

        if depth == len(segments):
            if isinstance(value, str):
                if value and value not in seen:
                    seen.add(value)
                    results.append(value)
            elif isinstance(value, list):
                stack.extend((item, depth) for item in reversed(value))
            elif non_string_leaf is None:
                non_string_leaf = _json_type(value)
            continue

        segment = segments[depth]
        if not segment:
            missing = missing or segment
            continue

        if isinstance(value, list) and not _is_index(segment):
            stack.extend((item, depth) for item in reversed(value))
            continue

        found, child = _step(value, segment)
        if found:
            stack.append((child, depth + 1))
        elif missing is None:
            missing = segment

    if results:
        return results
    if non_string_leaf is not None:
        raise TypeMismatchError(raw_path, non_string_leaf)
    raise PathNotFoundError(raw_path, missing or segments[0])


def parse_json_response(text: str | bytes) -> Any:
    """解析响应体为 JSON，失败时抛出 InvalidResponseError."""
    try:
        return json.loads(text)
    except (ValueError, TypeError, RecursionError) as e:
        msg = f"响应不是合法的 JSON: {e}"
        raise InvalidResponseError(msg) from e
