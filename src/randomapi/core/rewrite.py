"""URL 替换规则匹配."""

from collections.abc import Collection, Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from randomapi.models.url_rule import URLReplaceRule


def applicable_rules(
    rules: Iterable["URLReplaceRule"],
    endpoint_id: int,
    live_endpoint_ids: Collection[int],
) -> list["URLReplaceRule"]:
    """
    筛选对指定端点生效的规则，按 id 升序返回.

    全局规则（endpoint_id 为空）对所有端点生效；
    指向已删除端点的规则视为失效，永不匹配。
    """
    selected = []
    for rule in rules:
        if not rule.is_active or not rule.from_url:
            continue
        if rule.endpoint_id is None:
            selected.append(rule)
        elif rule.endpoint_id == endpoint_id and rule.endpoint_id in live_endpoint_ids:
            selected.append(rule)
    return sorted(selected, key=lambda rule: rule.id or 0)


def apply_rewrite_rules(
    url: str,
    endpoint_id: int,
    rules: Iterable["URLReplaceRule"],
    live_endpoint_ids: Collection[int],
) -> str:
    """依次应用所有生效规则，后面的规则看到前面规则的输出."""
    result = url
    for rule in applicable_rules(rules, endpoint_id, live_endpoint_ids):
        if rule.from_url in result:
            result = result.replace(rule.from_url, rule.to_url)
    return result
