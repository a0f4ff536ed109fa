"""测试请求统计."""

from datetime import date, datetime

import pytest
from sqlmodel import select

from randomapi.core.stats import StatsService, extract_domain
from randomapi.models.stats import DailyDomainStat

DAY1 = datetime(2024, 5, 1, 10, 0)
DAY2 = datetime(2024, 5, 2, 9, 0)


class TestExtractDomain:
    """Referer 域名提取."""

    @pytest.mark.parametrize(
        ("referer", "expected"),
        [
            (None, "direct"),
            ("", "direct"),
            ("https://Blog.Example.org/post?id=1", "blog.example.org"),
            ("http://example.com:8080/", "example.com"),
            ("not a url", "unknown"),
            ("http://[::1", "unknown"),
        ],
    )
    def test_extract(self, referer, expected):
        assert extract_domain(referer) == expected


class TestRecordCall:
    """调用计数."""

    async def test_counts_accumulate(self, session):
        stats = StatsService(session)
        for _ in range(3):
            await stats.record_call("pic/a", now=DAY1)
        await stats.record_call("pic/b", now=DAY1)

        result = await stats.endpoint_stats(now=DAY1)
        assert result["pic/a"]["total_calls"] == 3
        assert result["pic/a"]["today_calls"] == 3
        assert result["pic/b"]["total_calls"] == 1

    async def test_today_resets_on_new_day(self, session):
        stats = StatsService(session)
        await stats.record_call("pic/a", now=DAY1)
        await stats.record_call("pic/a", now=DAY1)

        # 第二天还没有调用时当日次数按 0 显示
        before = await stats.endpoint_stats(now=DAY2)
        assert before["pic/a"]["today_calls"] == 0
        assert before["pic/a"]["total_calls"] == 2

        await stats.record_call("pic/a", now=DAY2)
        after = await stats.endpoint_stats(now=DAY2)
        assert after["pic/a"]["today_calls"] == 1
        assert after["pic/a"]["total_calls"] == 3
        assert after["pic/a"]["last_reset_date"] == "2024-05-02"


class TestDomainStats:
    """来源域名排行."""

    async def test_recent_and_total(self, session):
        stats = StatsService(session)
        await stats.record_call("pic/a", "https://old.example.com/", now=datetime(2024, 4, 20))
        await stats.record_call("pic/a", "https://old.example.com/", now=datetime(2024, 4, 20))
        await stats.record_call("pic/a", "https://old.example.com/", now=datetime(2024, 4, 20))
        await stats.record_call("pic/a", "https://b.example.com/", now=DAY1)
        await stats.record_call("pic/a", "https://a.example.com/", now=DAY2)
        await stats.record_call("pic/a", None, now=DAY2)
        await stats.record_call("pic/a", None, now=DAY2)

        recent = await stats.top_recent_domains(now=DAY2)
        assert recent == [
            {"domain": "direct", "count": 2},
            {"domain": "a.example.com", "count": 1},
            {"domain": "b.example.com", "count": 1},
        ]

        total = await stats.top_total_domains()
        assert total[0] == {"domain": "old.example.com", "count": 3}
        assert len(total) == 4

    async def test_limit(self, session):
        stats = StatsService(session)
        for i in range(5):
            await stats.record_call("pic/a", f"https://s{i}.example.com/", now=DAY1)

        assert len(await stats.top_recent_domains(now=DAY1, limit=2)) == 2
        assert len(await stats.top_total_domains(limit=3)) == 3


class TestCleanup:
    """每日统计清理."""

    async def test_removes_expired_days(self, session):
        stats = StatsService(session)
        await stats.record_call("pic/a", "https://x.example.com/", now=datetime(2024, 3, 1))
        await stats.record_call("pic/a", "https://x.example.com/", now=DAY1)

        removed = await stats.cleanup_daily(now=DAY2, keep_days=30)
        assert removed == 1

        result = await session.execute(select(DailyDomainStat))
        assert [row.day for row in result.scalars().all()] == [date(2024, 5, 1)]

        # 累计排行不受影响
        assert (await stats.top_total_domains())[0]["count"] == 2
