"""
任务与执行日志持久化

所有函数都是同步的，调用方在事件循环中应通过 run_in_io 提交到线程池。
session_factory 参数便于测试时注入内存数据库。
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, desc, func

from ...core.config import settings
from ...core.constants import ExecutionStatus
from ...core.logger import logger
from ...db.base import SessionLocal
from ...db.models import ExecutionLog, TaskRecord
from ..executor.types import ExecutionSummary
from ..steps.models import Task
from ..steps.serializer import steps_from_json, steps_to_json

_log = logger.bind(module="TaskStore")

_RUN_MESSAGES = {
    ExecutionStatus.COMPLETED: "执行完成",
    ExecutionStatus.FAILED: "执行失败",
    ExecutionStatus.STOPPED: "执行已停止",
}


def _to_task(row: TaskRecord) -> Task:
    now = datetime.utcnow()
    return Task(
        id=row.id,
        name=row.name,
        description=row.description or "",
        steps=steps_from_json(row.steps),
        repeat_count=row.repeat_count or 1,
        repeat_delay_ms=row.repeat_delay_ms or 0,
        enabled=bool(row.enabled),
        execution_count=row.execution_count or 0,
        success_count=row.success_count or 0,
        last_executed_at=row.last_executed_at,
        created_at=row.created_at or now,
        updated_at=row.updated_at or now,
    )


def _log_to_dict(row: ExecutionLog) -> Dict[str, Any]:
    return {
        "id": row.id,
        "task_id": row.task_id,
        "task_name": row.task_name,
        "status": row.status,
        "success": bool(row.success),
        "steps_completed": row.steps_completed,
        "duration_ms": row.duration_ms,
        "step_id": row.step_id,
        "message": row.message,
        "error": row.error,
        "ts": row.ts.isoformat() if row.ts else None,
    }


def save_task(task: Task, *, session_factory=SessionLocal) -> Task:
    """新增或更新任务，返回带 id 的任务"""
    task.validate()
    with session_factory() as db:
        row = db.get(TaskRecord, task.id) if task.id is not None else None
        if row is None:
            row = TaskRecord(id=task.id, created_at=task.created_at)
            db.add(row)
        row.name = task.name
        row.description = task.description
        row.steps = steps_to_json(task.ordered_steps())
        row.repeat_count = task.repeat_count
        row.repeat_delay_ms = task.repeat_delay_ms
        row.enabled = task.enabled
        row.execution_count = task.execution_count
        row.success_count = task.success_count
        row.last_executed_at = task.last_executed_at
        row.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(row)

        task.id = row.id
        task.updated_at = row.updated_at
        for step in task.steps:
            step.task_id = row.id
    _log.info(f"任务已保存: id={task.id} name={task.name}")
    return task


def load_task(task_id: int, *, session_factory=SessionLocal) -> Optional[Task]:
    with session_factory() as db:
        row = db.get(TaskRecord, task_id)
        return _to_task(row) if row else None


def list_tasks(*, enabled_only: bool = False, session_factory=SessionLocal) -> List[Task]:
    with session_factory() as db:
        query = db.query(TaskRecord)
        if enabled_only:
            query = query.filter(TaskRecord.enabled.is_(True))
        return [_to_task(row) for row in query.order_by(TaskRecord.id).all()]


def delete_task(task_id: int, *, session_factory=SessionLocal) -> bool:
    """删除任务及其执行日志"""
    with session_factory() as db:
        row = db.get(TaskRecord, task_id)
        if row is None:
            return False
        db.query(ExecutionLog).filter(ExecutionLog.task_id == task_id).delete(synchronize_session=False)
        db.delete(row)
        db.commit()
    _log.info(f"任务已删除: id={task_id}")
    return True


def record_run(summary: ExecutionSummary, *, session_factory=SessionLocal) -> int:
    """写入一次执行结果：累加任务统计并追加一行执行日志，返回日志 id"""
    with session_factory() as db:
        if summary.task_id is not None:
            row = db.get(TaskRecord, summary.task_id)
            if row is not None:
                update = summary.stats_update()
                row.execution_count = (row.execution_count or 0) + update["execution_count"]
                row.success_count = (row.success_count or 0) + update["success_count"]
                row.last_executed_at = update["last_executed_at"]

        entry = ExecutionLog(
            task_id=summary.task_id,
            task_name=summary.task_name,
            status=summary.status.value,
            success=summary.success,
            steps_completed=summary.steps_completed,
            duration_ms=summary.duration_ms,
            step_id=str(summary.failed_step_id) if summary.failed_step_id is not None else None,
            message=_RUN_MESSAGES.get(summary.status, summary.status.value),
            error=summary.error,
            ts=summary.finished_at,
        )
        db.add(entry)
        db.commit()
        return entry.id


def list_logs(
    task_id: Optional[int] = None,
    *,
    limit: int = 100,
    offset: int = 0,
    session_factory=SessionLocal,
) -> List[Dict[str, Any]]:
    """按时间倒序返回执行日志"""
    with session_factory() as db:
        query = db.query(ExecutionLog)
        if task_id is not None:
            query = query.filter(ExecutionLog.task_id == task_id)
        rows = query.order_by(desc(ExecutionLog.ts), desc(ExecutionLog.id)).limit(limit).offset(offset).all()
        return [_log_to_dict(row) for row in rows]


def task_stats(task_id: int, *, session_factory=SessionLocal) -> Dict[str, Any]:
    """单个任务的执行日志统计"""
    with session_factory() as db:
        total, success, avg_duration, last_ts = (
            db.query(
                func.count(ExecutionLog.id),
                func.sum(case((ExecutionLog.success.is_(True), 1), else_=0)),
                func.avg(ExecutionLog.duration_ms),
                func.max(ExecutionLog.ts),
            )
            .filter(ExecutionLog.task_id == task_id)
            .one()
        )
    total = total or 0
    success = int(success or 0)
    return {
        "task_id": task_id,
        "total": total,
        "success": success,
        "failed": total - success,
        "success_rate": round(success / total * 100.0, 1) if total else 0.0,
        "avg_duration_ms": int(avg_duration or 0),
        "last_run_at": last_ts.isoformat() if last_ts else None,
    }


def cleanup_logs(
    max_count: Optional[int] = None,
    max_age_days: Optional[int] = None,
    *,
    session_factory=SessionLocal,
) -> int:
    """按数量和时间清理执行日志，返回删除的行数

    max_count/max_age_days 为 None 时取 settings 中的保留策略，<=0 表示不限制。
    """
    if max_count is None:
        max_count = settings.execution_log_max_entries
    if max_age_days is None:
        max_age_days = settings.execution_log_max_age_days

    deleted = 0
    with session_factory() as db:
        if max_age_days > 0:
            cutoff = datetime.utcnow() - timedelta(days=max_age_days)
            deleted += (
                db.query(ExecutionLog)
                .filter(ExecutionLog.ts < cutoff)
                .delete(synchronize_session=False)
            )
        if max_count > 0:
            stale_ids = [
                row.id
                for row in db.query(ExecutionLog.id)
                .order_by(desc(ExecutionLog.ts), desc(ExecutionLog.id))
                .offset(max_count)
                .all()
            ]
            if stale_ids:
                deleted += (
                    db.query(ExecutionLog)
                    .filter(ExecutionLog.id.in_(stale_ids))
                    .delete(synchronize_session=False)
                )
        db.commit()
    if deleted:
        _log.info(f"已清理执行日志 {deleted} 条")
    return deleted
