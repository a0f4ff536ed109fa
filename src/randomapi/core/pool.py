"""候选池存储 - 每个数据源最近一次成功同步的 URL 列表."""

from collections.abc import Iterable

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from randomapi.models.cached_url import CachedURL


async def load_pools(
    session: AsyncSession, data_source_ids: Iterable[int]
) -> dict[int, list[str]]:
    """批量读取候选池，没有缓存的数据源不会出现在结果中."""
    ids = list(data_source_ids)
    if not ids:
        return {}

    stmt = (
        select(CachedURL)
        .where(col(CachedURL.data_source_id).in_(ids))
        .order_by(col(CachedURL.data_source_id), col(CachedURL.position))
    )
    result = await session.execute(stmt)

    pools: dict[int, list[str]] = {}
    for cached in result.scalars().all():
        pools.setdefault(cached.data_source_id, []).append(cached.url)
    return pools


async def replace_pool(
    session: AsyncSession, data_source_id: int, urls: list[str]
) -> None:
    """替换候选池（不提交，由调用方控制事务）."""
    await clear_pool(session, data_source_id)
    session.add_all(
        CachedURL(data_source_id=data_source_id, url=url, position=position)
        for position, url in enumerate(urls)
    )


async def clear_pool(session: AsyncSession, data_source_id: int) -> None:
    """清空候选池（不提交）."""
    await session.execute(
        delete(CachedURL).where(col(CachedURL.data_source_id) == data_source_id)
    )


def dedupe(urls: Iterable[str]) -> list[str]:
    """保持顺序去重."""
    return list(dict.fromkeys(url for url in urls if url))
