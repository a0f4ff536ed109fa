"""同步协调器 - 保证同一数据源同一时刻最多只有一个同步任务."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from randomapi.core.errors import SyncInFlightError

logger = logging.getLogger(__name__)


@dataclass
class SyncTicket:
    """一次同步的占位凭证."""

    data_source_id: int
    cancelled: bool = False
    task: "asyncio.Task[Any] | None" = field(default=None, repr=False)


class SyncCoordinator:
    """
    按数据源 ID 管理正在运行的同步任务.

    锁只在登记/注销任务时短暂持有，网络请求期间不持锁。
    不同数据源的同步互不影响，可以完全并行。
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._tickets: dict[int, SyncTicket] = {}

    def is_running(self, data_source_id: int) -> bool:
        """该数据源是否正在同步."""
        return data_source_id in self._tickets

    def get_ticket(self, data_source_id: int) -> SyncTicket | None:
        """获取正在运行的同步凭证."""
        return self._tickets.get(data_source_id)

    async def start(
        self,
        data_source_id: int,
        run: Callable[[SyncTicket], Awaitable[Any]],
        join: bool = False,
    ) -> "asyncio.Task[Any]":
        """
        启动同步任务.

        已有任务运行时：join=True 返回现有任务，否则抛出 SyncInFlightError。
        """
        async with self._lock:
            existing = self._tickets.get(data_source_id)
            if existing is not None and existing.task is not None:
                if join:
                    return existing.task
                raise SyncInFlightError(data_source_id)

            ticket = SyncTicket(data_source_id=data_source_id)
            ticket.task = asyncio.create_task(self._run(ticket, run))
            self._tickets[data_source_id] = ticket
            return ticket.task

    async def _run(
        self, ticket: SyncTicket, run: Callable[[SyncTicket], Awaitable[Any]]
    ) -> Any:
        try:
            return await run(ticket)
        finally:
            async with self._lock:
                if self._tickets.get(ticket.data_source_id) is ticket:
                    del self._tickets[ticket.data_source_id]

    def cancel(self, data_source_id: int) -> bool:
        """标记数据源的同步结果作废（数据源被删除时调用），返回是否有任务在运行."""
        ticket = self._tickets.get(data_source_id)
        if ticket is None:
            return False
        ticket.cancelled = True
        logger.info(f"数据源 {data_source_id} 已删除，正在进行的同步结果将被丢弃")
        return True

    async def wait_all(self) -> None:
        """等待所有正在运行的同步结束（关闭时使用）."""
        tasks = [t.task for t in list(self._tickets.values()) if t.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


_coordinator: SyncCoordinator | None = None


def get_coordinator() -> SyncCoordinator:
    """获取全局同步协调器."""
    global _coordinator
    if _coordinator is None:
        _coordinator = SyncCoordinator()
    return _coordinator


def reset_coordinator() -> None:
    """重置全局协调器（测试使用）."""
    global _coordinator
    _coordinator = None
