"""
执行观察者

观察者是纯通知接收端，返回值不影响引擎行为。
回调中抛出的异常由引擎捕获并记录，不会中断执行。
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

from ...core.logger import get_task_logger, logger

if TYPE_CHECKING:
    from ..steps.models import StepAction, Task
    from .types import ExecutionSummary


class ExecutionObserver:
    """执行生命周期回调（默认全部为空实现）"""

    def on_started(self, task: "Task") -> None:
        pass

    def on_step_started(self, step: "StepAction", position: int, total: int) -> None:
        pass

    def on_step_completed(self, step: "StepAction", success: bool) -> None:
        pass

    def on_paused(self, task: "Task") -> None:
        pass

    def on_resumed(self, task: "Task") -> None:
        pass

    def on_completed(self, task: "Task", success: bool, summary: "ExecutionSummary") -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class CompositeObserver(ExecutionObserver):
    """将回调分发给多个观察者，单个观察者异常不影响其他观察者"""

    def __init__(self, observers: Iterable[ExecutionObserver] = ()) -> None:
        self.observers: List[ExecutionObserver] = list(observers)
        self._log = logger.bind(module="CompositeObserver")

    def add(self, observer: ExecutionObserver) -> None:
        self.observers.append(observer)

    def _fan_out(self, name: str, *args) -> None:
        for observer in self.observers:
            try:
                getattr(observer, name)(*args)
            except Exception as e:
                self._log.error(f"观察者 {type(observer).__name__}.{name} 异常: {e}")

    def on_started(self, task):
        self._fan_out("on_started", task)

    def on_step_started(self, step, position, total):
        self._fan_out("on_step_started", step, position, total)

    def on_step_completed(self, step, success):
        self._fan_out("on_step_completed", step, success)

    def on_paused(self, task):
        self._fan_out("on_paused", task)

    def on_resumed(self, task):
        self._fan_out("on_resumed", task)

    def on_completed(self, task, success, summary):
        self._fan_out("on_completed", task, success, summary)

    def on_error(self, message):
        self._fan_out("on_error", message)


class LoggingObserver(ExecutionObserver):
    """把执行过程写入日志（有任务 id 时同时写入任务专属日志文件）"""

    def __init__(self) -> None:
        self._log = logger.bind(module="Execution")

    def on_started(self, task):
        if task.id is not None:
            self._log = get_task_logger(task.id).bind(module="Execution")
        else:
            self._log = logger.bind(module="Execution")
        self._log.info(f"开始执行任务: {task.name} (id={task.id}, 重复={task.repeat_count})")

    def on_step_started(self, step, position, total):
        self._log.info(f"步骤 {position}/{total}: {step.summary()}")

    def on_step_completed(self, step, success):
        if success:
            self._log.debug(f"步骤完成: {step.id}")
        else:
            self._log.warning(f"步骤失败: {step.id} {step.summary()}")

    def on_paused(self, task):
        self._log.info(f"任务已暂停: {task.name}")

    def on_resumed(self, task):
        self._log.info(f"任务已恢复: {task.name}")

    def on_completed(self, task, success, summary):
        self._log.info(
            f"任务结束: {task.name}, 状态={summary.status.value}, "
            f"成功步骤={summary.steps_completed}, 耗时={summary.duration_ms}ms"
        )

    def on_error(self, message):
        self._log.error(f"执行错误: {message}")


__all__ = ["ExecutionObserver", "CompositeObserver", "LoggingObserver"]
