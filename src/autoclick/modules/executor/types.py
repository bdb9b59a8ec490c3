"""
Executor types and data structures
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ...core.constants import ExecutionStatus


@dataclass
class StepOutcome:
    """Result reported by an ActionDispatcher for one step.

    ``value`` carries the predicate result for condition steps.
    """
    success: bool
    message: str = ""
    value: Optional[bool] = None

    @classmethod
    def ok(cls, message: str = "", value: Optional[bool] = None) -> "StepOutcome":
        return cls(success=True, message=message, value=value)

    @classmethod
    def fail(cls, message: str) -> "StepOutcome":
        return cls(success=False, message=message)


@dataclass
class ExecutionState:
    """Engine-owned run state, created fresh for every execute call."""
    status: ExecutionStatus = ExecutionStatus.IDLE
    current_step_index: int = 0
    current_repeat_iteration: int = 1
    successful_step_count: int = 0
    scheduled_step_count: int = 0
    started_at: Optional[datetime] = None
    last_step_at: Optional[datetime] = None
    awaiting_repeat_delay: bool = False


@dataclass
class LogEntry:
    timestamp: datetime
    task_id: Optional[Any]
    success: bool
    message: str
    step_id: Optional[Any] = None
    error_detail: Optional[str] = None


@dataclass
class ExecutionSummary:
    """Final report handed to the caller on completed/failed/stopped."""
    task_id: Optional[Any]
    task_name: str
    status: ExecutionStatus
    success: bool
    steps_completed: int
    duration_ms: int
    iterations_completed: int = 0
    error: Optional[str] = None
    failed_step_id: Optional[Any] = None
    finished_at: datetime = field(default_factory=datetime.utcnow)

    def stats_update(self) -> Dict[str, Any]:
        """Stat increments the persistence collaborator applies to the task."""
        return {
            "execution_count": 1,
            "success_count": 1 if self.success else 0,
            "last_executed_at": self.finished_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "status": self.status.value,
            "success": self.success,
            "steps_completed": self.steps_completed,
            "duration_ms": self.duration_ms,
            "iterations_completed": self.iterations_completed,
            "error": self.error,
            "failed_step_id": self.failed_step_id,
            "finished_at": self.finished_at.isoformat(),
        }


__all__ = ["StepOutcome", "ExecutionState", "LogEntry", "ExecutionSummary"]
