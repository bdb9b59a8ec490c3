"""
执行日志API
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ....db.base import get_session_factory
from ...tasks import store


router = APIRouter(prefix="/api/logs", tags=["logs"])


@router.get("")
async def list_logs(
    task_id: Optional[int] = Query(None, description="任务ID"),
    limit: int = Query(100, ge=1, le=1000, description="返回数量限制"),
    offset: int = Query(0, ge=0, description="偏移量"),
    session_factory=Depends(get_session_factory),
):
    """
    获取执行日志（按时间倒序）
    """
    logs = store.list_logs(task_id, limit=limit, offset=offset, session_factory=session_factory)
    return {"total": len(logs), "logs": logs}


@router.get("/stats/{task_id}")
async def get_task_stats(task_id: int, session_factory=Depends(get_session_factory)):
    """
    获取任务执行统计
    """
    return store.task_stats(task_id, session_factory=session_factory)


@router.post("/cleanup")
async def cleanup_logs(
    max_count: Optional[int] = Query(None, description="最多保留条数"),
    max_age_days: Optional[int] = Query(None, description="最多保留天数"),
    session_factory=Depends(get_session_factory),
):
    """
    清理执行日志
    """
    deleted = store.cleanup_logs(max_count, max_age_days, session_factory=session_factory)
    return {"deleted": deleted}
