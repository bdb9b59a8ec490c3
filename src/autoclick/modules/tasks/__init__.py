"""
任务持久化模块
"""
from .store import (
    cleanup_logs,
    delete_task,
    list_logs,
    list_tasks,
    load_task,
    record_run,
    save_task,
    task_stats,
)

__all__ = [
    "save_task",
    "load_task",
    "list_tasks",
    "delete_task",
    "record_run",
    "list_logs",
    "task_stats",
    "cleanup_logs",
]
