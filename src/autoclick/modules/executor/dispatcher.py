"""
动作调度器接口定义

调度器负责执行单个步骤的实际效果（点击、滑动、按键、文字查找等），
以异步方式返回 StepOutcome。对于可预期的失败（无活动窗口、元素未找到、
权限不足、参数错误）应返回失败结果而不是抛出异常。
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ...core.logger import logger
from ..steps.models import Condition, Delay, StepAction
from .types import StepOutcome


class ActionDispatcher(ABC):
    """动作调度器抽象基类"""

    @abstractmethod
    async def perform(self, step: StepAction) -> StepOutcome:
        """
        执行单个步骤

        Args:
            step: 要执行的步骤

        Returns:
            执行结果；条件步骤通过 value 返回判定结果
        """
        pass


class MockDispatcher(ActionDispatcher):
    """模拟调度器（用于测试）

    Args:
        fail_steps: 返回失败结果的步骤 id
        raise_steps: 抛出异常的步骤 id
        hang_steps: 永不返回的步骤 id
        latency_ms: 每次调用的模拟耗时
        predicates: 条件步骤 id -> 判定结果（默认 True）
        honor_delays: Delay 步骤是否真实等待
    """

    def __init__(
        self,
        *,
        fail_steps: Iterable[Any] = (),
        raise_steps: Iterable[Any] = (),
        hang_steps: Iterable[Any] = (),
        latency_ms: int = 0,
        predicates: Optional[Dict[Any, bool]] = None,
        honor_delays: bool = True,
    ) -> None:
        self.fail_steps = set(fail_steps)
        self.raise_steps = set(raise_steps)
        self.hang_steps = set(hang_steps)
        self.latency_ms = latency_ms
        self.predicates = dict(predicates or {})
        self.honor_delays = honor_delays
        self.calls: List[StepAction] = []
        self.started_at: List[float] = []
        self.finished_at: List[float] = []
        self.cancelled: List[Any] = []
        self.logger = logger.bind(module="MockDispatcher")

    @property
    def call_ids(self) -> List[Any]:
        return [step.id for step in self.calls]

    async def perform(self, step: StepAction) -> StepOutcome:
        loop = asyncio.get_running_loop()
        self.calls.append(step)
        self.started_at.append(loop.time())
        self.logger.debug(f"[模拟] 执行步骤: {step.id} {step.type.value}")
        try:
            if step.id in self.hang_steps:
                await asyncio.Event().wait()
            if self.latency_ms > 0:
                await asyncio.sleep(self.latency_ms / 1000)
            if isinstance(step.kind, Delay) and self.honor_delays and step.kind.duration_ms > 0:
                await asyncio.sleep(step.kind.duration_ms / 1000)
        except asyncio.CancelledError:
            self.cancelled.append(step.id)
            raise
        finally:
            self.finished_at.append(loop.time())

        if step.id in self.raise_steps:
            raise RuntimeError(f"模拟异常: {step.id}")
        if step.id in self.fail_steps:
            return StepOutcome.fail(f"模拟失败: {step.id}")
        if isinstance(step.kind, Condition):
            return StepOutcome.ok(value=self.predicates.get(step.id, True))
        return StepOutcome.ok()


__all__ = ["ActionDispatcher", "MockDispatcher"]
