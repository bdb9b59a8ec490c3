"""
执行器模块

引擎、调度器等组件依赖 steps 模块，请从子模块直接导入：

    from autoclick.modules.executor.engine import ExecutionEngine
"""
from .errors import (
    ConcurrentRunError,
    ExecutionError,
    ObserverError,
    StepExecutionError,
    ValidationError,
)

__all__ = [
    "ExecutionError",
    "ValidationError",
    "StepExecutionError",
    "ConcurrentRunError",
    "ObserverError",
]
