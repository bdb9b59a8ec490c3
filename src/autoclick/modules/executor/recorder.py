"""
执行结果持久化观察者（非阻塞）

任务结束时把统计增量与执行日志写入数据库，并按保留策略清理旧日志。
写入通过 run_in_executor 提交到 I/O 线程池，不阻塞事件循环。
"""
from __future__ import annotations

import asyncio
from typing import List, Optional

from ...core.logger import logger
from ...core.thread_pool import get_io_pool
from ...db.base import SessionLocal
from ..tasks import store
from .observer import ExecutionObserver
from .types import ExecutionSummary

_log = logger.bind(module="RunRecorder")


class RunRecorder(ExecutionObserver):
    """在 on_completed 时持久化执行结果

    Args:
        session_factory: 数据库会话工厂
        max_entries: 日志最大保留条数（None 使用配置）
        max_age_days: 日志最大保留天数（None 使用配置）
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        *,
        max_entries: Optional[int] = None,
        max_age_days: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.max_entries = max_entries
        self.max_age_days = max_age_days
        self.pending: List[asyncio.Future] = []

    def _write_sync(self, summary: ExecutionSummary) -> None:
        try:
            store.record_run(summary, session_factory=self.session_factory)
            store.cleanup_logs(
                self.max_entries,
                self.max_age_days,
                session_factory=self.session_factory,
            )
        except Exception as exc:
            _log.warning(f"写入执行日志失败: {exc}")

    def on_completed(self, task, success, summary):
        task.record_execution(success, summary.finished_at)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write_sync(summary)
            return
        future = loop.run_in_executor(get_io_pool(), self._write_sync, summary)
        self.pending = [f for f in self.pending if not f.done()]
        self.pending.append(future)

    async def flush(self) -> None:
        """等待所有未完成的写入"""
        pending, self.pending = self.pending, []
        if pending:
            await asyncio.gather(*pending)


__all__ = ["RunRecorder"]
