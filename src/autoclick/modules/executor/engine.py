"""
任务执行引擎

单任务、单线程协作式状态机：

    Idle --execute--> Running <--pause/resume--> Paused
    Running/Paused --stop--> Stopped
    Running --全部步骤完成--> Completed
    Running --步骤失败/异常/超时--> Failed

延时等待与调度器调用是仅有的挂起点，全部状态修改都发生在引擎所在的事件循环中。
跨线程调用请通过 EngineHost 转发。
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from ...core.config import settings
from ...core.constants import ExecutionStatus
from ...core.logger import logger
from ..steps.models import Condition, StepAction, Task, sort_steps
from .dispatcher import ActionDispatcher
from .errors import (
    ConcurrentRunError,
    ExecutionError,
    ObserverError,
    StepExecutionError,
    ValidationError,
)
from .observer import ExecutionObserver
from .types import ExecutionState, ExecutionSummary, LogEntry, StepOutcome


def _enabled_count(steps) -> int:
    return sum(1 for step in steps if step.enabled)


class _Run:
    """单次执行上下文（每次 execute 新建，终态后丢弃）"""

    def __init__(
        self,
        task: Task,
        dispatcher: ActionDispatcher,
        observer: ExecutionObserver,
    ) -> None:
        loop = asyncio.get_running_loop()
        self.task = task
        self.dispatcher = dispatcher
        self.observer = observer
        self.base_steps: List[StepAction] = sort_steps(task.steps)
        # 当前轮次的执行序列（包含拼接进来的条件分支）
        self.sequence: List[StepAction] = list(self.base_steps)
        self.state = ExecutionState(scheduled_step_count=_enabled_count(self.base_steps))
        self.log: List[LogEntry] = []
        self.resumed = asyncio.Event()
        self.resumed.set()
        self.wakeup = asyncio.Event()
        self.done: asyncio.Future = loop.create_future()
        self.driver: Optional[asyncio.Task] = None
        self.summary: Optional[ExecutionSummary] = None
        self.started_clock = loop.time()

    def position(self, index: int):
        """(序号, 总数)，只统计启用的步骤"""
        return _enabled_count(self.sequence[:index]) + 1, _enabled_count(self.sequence)


class ExecutionEngine:
    """任务执行引擎

    Args:
        dispatcher: 默认动作调度器，可在 execute 时覆盖
        observer: 默认观察者，可在 execute 时覆盖
        step_timeout_grace_ms: 步骤监督超时 = 步骤预估耗时 + 该值
    """

    def __init__(
        self,
        dispatcher: Optional[ActionDispatcher] = None,
        observer: Optional[ExecutionObserver] = None,
        *,
        step_timeout_grace_ms: Optional[int] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.observer = observer or ExecutionObserver()
        if step_timeout_grace_ms is None:
            step_timeout_grace_ms = settings.step_timeout_grace_ms
        self.step_timeout_grace_ms = step_timeout_grace_ms
        self.last_error: Optional[ExecutionError] = None
        self.last_summary: Optional[ExecutionSummary] = None
        self.log_entries: List[LogEntry] = []
        self._run: Optional[_Run] = None
        self._log = logger.bind(module="ExecutionEngine")

    # ── 查询 ──

    def status(self) -> ExecutionStatus:
        if self._run is None:
            return ExecutionStatus.IDLE
        return self._run.state.status

    @property
    def state(self) -> Optional[ExecutionState]:
        return self._run.state if self._run else None

    @property
    def task(self) -> Optional[Task]:
        return self._run.task if self._run else None

    def is_running(self) -> bool:
        return self.status().is_active

    def progress(self) -> int:
        """当前轮次进度（0-100），只按启用的步骤计算"""
        run = self._run
        if run is None:
            return 0
        if run.state.status is ExecutionStatus.COMPLETED:
            return 100
        total = _enabled_count(run.sequence)
        if total == 0:
            return 0
        passed = _enabled_count(run.sequence[:run.state.current_step_index])
        return passed * 100 // total

    def current_step(self) -> Optional[StepAction]:
        run = self._run
        if run is None or not run.state.status.is_active:
            return None
        index = run.state.current_step_index
        if index < len(run.sequence):
            return run.sequence[index]
        return None

    # ── 控制 ──

    def execute(
        self,
        task: Task,
        *,
        dispatcher: Optional[ActionDispatcher] = None,
        observer: Optional[ExecutionObserver] = None,
    ) -> bool:
        """开始执行任务（需在事件循环中调用）。

        Returns:
            是否成功启动；被拒绝时通过 on_error 通知，错误保存在 last_error
        """
        observer = observer or self.observer
        dispatcher = dispatcher or self.dispatcher

        if self._run is not None and self._run.state.status.is_active:
            self._reject(ConcurrentRunError("已有任务正在执行"), observer)
            return False

        try:
            self._validate(task, dispatcher)
        except ValidationError as e:
            self._run = None
            self._reject(e, observer)
            return False

        run = _Run(task, dispatcher, observer)
        run.state.status = ExecutionStatus.RUNNING
        run.state.started_at = datetime.utcnow()
        self._run = run
        self.log_entries = run.log
        self.last_error = None

        self._log.info(f"开始执行任务: {task.name}")
        self._notify(run, "on_started", task)
        run.driver = asyncio.get_running_loop().create_task(self._drive(run))
        return True

    def pause(self) -> bool:
        run = self._run
        if run is None or run.state.status is not ExecutionStatus.RUNNING:
            return False
        run.state.status = ExecutionStatus.PAUSED
        run.resumed.clear()
        run.wakeup.set()
        self._log.info(f"暂停执行: {run.task.name}")
        self._notify(run, "on_paused", run.task)
        return True

    def resume(self) -> bool:
        run = self._run
        if run is None or run.state.status is not ExecutionStatus.PAUSED:
            return False
        run.state.status = ExecutionStatus.RUNNING
        run.resumed.set()
        self._log.info(f"恢复执行: {run.task.name}")
        self._notify(run, "on_resumed", run.task)
        return True

    def stop(self) -> bool:
        run = self._run
        if run is None or not run.state.status.is_active:
            return False
        self._log.info(f"停止执行: {run.task.name}")
        self._finish(run, ExecutionStatus.STOPPED, error="任务已停止")
        run.state.current_step_index = 0
        run.state.successful_step_count = 0
        run.resumed.set()
        run.wakeup.set()
        if run.driver is not None and not run.driver.done():
            run.driver.cancel()
        return True

    async def wait(self) -> Optional[ExecutionSummary]:
        """等待当前执行结束并返回汇总"""
        run = self._run
        if run is None:
            return self.last_summary
        return await asyncio.shield(run.done)

    async def run(self, task: Task, **kwargs) -> ExecutionSummary:
        """execute + wait；被拒绝时返回失败汇总"""
        if not self.execute(task, **kwargs):
            return ExecutionSummary(
                task_id=getattr(task, "id", None),
                task_name=getattr(task, "name", ""),
                status=self.status(),
                success=False,
                steps_completed=0,
                duration_ms=0,
                error=str(self.last_error),
            )
        return await self.wait()

    # ── 内部 ──

    @staticmethod
    def _validate(task: Optional[Task], dispatcher: Optional[ActionDispatcher]) -> None:
        if task is None:
            raise ValidationError("未提供任务")
        if dispatcher is None:
            raise ValidationError("未配置动作调度器")
        if not task.enabled:
            raise ValidationError("任务已禁用")
        if not task.steps:
            raise ValidationError("任务没有步骤")
        task.validate()

    def _reject(self, error: ExecutionError, observer: ExecutionObserver) -> None:
        self.last_error = error
        self._log.warning(f"拒绝执行: {error}")
        self._call_observer(observer, "on_error", str(error))

    def _call_observer(self, observer: ExecutionObserver, name: str, *args) -> None:
        try:
            getattr(observer, name)(*args)
        except Exception as e:
            self._log.error(str(ObserverError(name, e)))

    def _notify(self, run: _Run, name: str, *args) -> None:
        self._call_observer(run.observer, name, *args)

    def _append_log(
        self,
        run: _Run,
        success: bool,
        message: str,
        step: Optional[StepAction] = None,
        error: Optional[str] = None,
    ) -> None:
        run.log.append(
            LogEntry(
                timestamp=datetime.utcnow(),
                task_id=run.task.id,
                step_id=step.id if step else None,
                success=success,
                message=message,
                error_detail=error,
            )
        )

    def _step_timeout(self, step: StepAction) -> float:
        return (step.expected_duration_ms() + self.step_timeout_grace_ms) / 1000

    async def _drive(self, run: _Run) -> None:
        try:
            await self._loop(run)
        except asyncio.CancelledError:
            # 非 stop() 引起的取消（例如事件循环关闭）同样按停止处理
            if run.state.status.is_active:
                self._finish(run, ExecutionStatus.STOPPED, error="执行被取消")
            raise
        except Exception as e:
            self._log.exception(f"执行引擎异常: {e}")
            if run.state.status.is_active:
                self._fail(run, None, f"执行引擎异常: {e}")

    async def _sleep(self, run: _Run, delay_ms: int) -> bool:
        """可被 pause/stop 打断的等待；完整等待结束返回 True"""
        run.wakeup.clear()
        if run.state.status is not ExecutionStatus.RUNNING:
            return False
        try:
            await asyncio.wait_for(run.wakeup.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            return run.state.status is ExecutionStatus.RUNNING
        return False

    async def _perform(self, run: _Run, step: StepAction) -> StepOutcome:
        timeout = self._step_timeout(step)
        try:
            outcome = await asyncio.wait_for(run.dispatcher.perform(step), timeout=timeout)
        except asyncio.TimeoutError:
            return StepOutcome.fail(f"步骤执行超时 ({timeout:.1f}s)")
        except Exception as e:
            self._log.error(f"步骤 {step.id} 执行异常: {e}")
            return StepOutcome.fail(f"步骤执行异常: {e}")
        if not isinstance(outcome, StepOutcome):
            return StepOutcome(success=bool(outcome))
        return outcome

    async def _loop(self, run: _Run) -> None:
        state = run.state
        task = run.task

        while state.status.is_active:
            if state.status is ExecutionStatus.PAUSED:
                await run.resumed.wait()
                continue

            if state.awaiting_repeat_delay:
                if not await self._sleep(run, task.repeat_delay_ms):
                    continue
                state.awaiting_repeat_delay = False

            if state.current_step_index >= len(run.sequence):
                if state.current_repeat_iteration < task.repeat_count:
                    state.current_repeat_iteration += 1
                    state.current_step_index = 0
                    run.sequence = list(run.base_steps)
                    state.scheduled_step_count += _enabled_count(run.base_steps)
                    state.awaiting_repeat_delay = task.repeat_delay_ms > 0
                    self._log.debug(f"开始第 {state.current_repeat_iteration}/{task.repeat_count} 轮")
                    continue
                self._complete(run)
                return

            step = run.sequence[state.current_step_index]
            if not step.enabled:
                state.current_step_index += 1
                continue

            position, total = run.position(state.current_step_index)
            self._notify(run, "on_step_started", step, position, total)
            if state.status is not ExecutionStatus.RUNNING:
                continue

            if step.delay_before_ms > 0 and not await self._sleep(run, step.delay_before_ms):
                # 被暂停则恢复后重新执行该步骤，被停止则丢弃
                continue

            state.last_step_at = datetime.utcnow()
            outcome = await self._perform(run, step)
            if not outcome.success:
                self._fail(run, step, outcome.message or "步骤执行失败")
                return

            state.successful_step_count += 1
            self._append_log(run, True, outcome.message or f"步骤完成: {step.summary()}", step)

            if isinstance(step.kind, Condition):
                branch = step.kind.branch(bool(outcome.value))
                index = state.current_step_index + 1
                run.sequence[index:index] = branch
                state.scheduled_step_count += _enabled_count(branch)

            self._notify(run, "on_step_completed", step, True)
            if state.status.is_active:
                state.current_step_index += 1

    def _fail(self, run: _Run, step: Optional[StepAction], reason: str) -> None:
        run.state.status = ExecutionStatus.FAILED
        error = StepExecutionError(reason, step_id=step.id if step else None)
        self.last_error = error
        self._log.warning(f"任务执行失败: {run.task.name}: {reason}")
        if step is not None:
            self._append_log(run, False, f"步骤失败: {step.summary()}", step, reason)
            self._notify(run, "on_step_completed", step, False)
        self._notify(run, "on_error", reason)
        self._finish(run, ExecutionStatus.FAILED, error=reason, failed_step=step)

    def _complete(self, run: _Run) -> None:
        state = run.state
        success = state.successful_step_count == state.scheduled_step_count
        self._finish(
            run,
            ExecutionStatus.COMPLETED,
            error=None if success else "部分步骤未成功",
        )

    def _finish(
        self,
        run: _Run,
        status: ExecutionStatus,
        *,
        error: Optional[str] = None,
        failed_step: Optional[StepAction] = None,
    ) -> ExecutionSummary:
        """进入终态并且只通知一次 on_completed"""
        if run.summary is not None:
            return run.summary

        state = run.state
        state.status = status
        loop = asyncio.get_running_loop()
        completed = status is ExecutionStatus.COMPLETED
        summary = ExecutionSummary(
            task_id=run.task.id,
            task_name=run.task.name,
            status=status,
            success=completed and state.successful_step_count == state.scheduled_step_count,
            steps_completed=state.successful_step_count,
            duration_ms=int((loop.time() - run.started_clock) * 1000),
            iterations_completed=run.task.repeat_count if completed else state.current_repeat_iteration - 1,
            error=error,
            failed_step_id=failed_step.id if failed_step else None,
        )
        run.summary = summary
        self.last_summary = summary
        self._append_log(run, summary.success, f"任务结束: {status.value}", error=error)

        self._notify(run, "on_completed", run.task, summary.success, summary)
        if not run.done.done():
            run.done.set_result(summary)
        return summary


__all__ = ["ExecutionEngine"]
