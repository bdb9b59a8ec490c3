"""
执行引擎错误类型
"""
from __future__ import annotations

from typing import Any, Optional


class ExecutionError(Exception):
    """执行相关错误的基类"""


class ValidationError(ExecutionError):
    """任务或步骤配置非法（任务禁用、无步骤、参数错误）"""


class StepExecutionError(ExecutionError):
    """步骤执行失败或超时"""

    def __init__(self, message: str, step_id: Optional[Any] = None) -> None:
        super().__init__(message)
        self.step_id = step_id


class ConcurrentRunError(ExecutionError):
    """已有任务在运行时再次调用 execute"""


class ObserverError(ExecutionError):
    """观察者回调抛出异常"""

    def __init__(self, callback: str, cause: BaseException) -> None:
        super().__init__(f"观察者回调 {callback} 异常: {cause}")
        self.callback = callback
        self.cause = cause


__all__ = [
    "ExecutionError",
    "ValidationError",
    "StepExecutionError",
    "ConcurrentRunError",
    "ObserverError",
]
