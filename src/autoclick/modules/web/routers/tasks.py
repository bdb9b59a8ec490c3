"""
任务管理API
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ....core.config import settings
from ....db.base import get_session_factory
from ...executor.errors import ValidationError
from ...steps.loader import TaskFileLoader
from ...steps.models import Task
from ...steps.serializer import task_from_dict, task_to_dict
from ...tasks import store


router = APIRouter(prefix="/api/tasks", tags=["tasks"])

_loader: Optional[TaskFileLoader] = None


def get_task_loader() -> TaskFileLoader:
    """任务文件加载器（按 settings.tasks_dir 懒加载）"""
    global _loader
    if _loader is None:
        _loader = TaskFileLoader(settings.tasks_dir)
    return _loader


def _task_view(task: Task) -> Dict[str, Any]:
    data = task_to_dict(task)
    data.update(
        summary=task.summary(),
        step_count=len(task.steps),
        enabled_step_count=task.enabled_step_count(),
        estimated_duration_ms=task.estimated_duration_ms(),
        success_rate=round(task.success_rate(), 1),
    )
    return data


def _fresh_copy(data: Dict[str, Any]) -> Task:
    """按导入数据新建任务（忽略原 id 与统计）"""
    data = {k: v for k, v in data.items() if k not in ("id", "execution_count", "success_count", "last_executed_at")}
    return task_from_dict(data)


@router.get("")
async def list_tasks(
    enabled_only: bool = Query(False, description="仅返回启用的任务"),
    session_factory=Depends(get_session_factory),
):
    """
    获取任务列表
    """
    tasks = store.list_tasks(enabled_only=enabled_only, session_factory=session_factory)
    return {"total": len(tasks), "tasks": [_task_view(t) for t in tasks]}


@router.get("/files")
async def list_task_files(loader: TaskFileLoader = Depends(get_task_loader)):
    """
    列出任务目录中的任务文件
    """
    return {"dir": str(loader.base_dir), "files": loader.list_names()}


@router.post("/files/{name}/import")
async def import_task_file(
    name: str,
    loader: TaskFileLoader = Depends(get_task_loader),
    session_factory=Depends(get_session_factory),
):
    """
    从任务目录导入任务文件
    """
    task = loader.load(name)
    if task is None:
        raise HTTPException(status_code=404, detail=f"任务文件不存在或无效: {name}")
    saved = store.save_task(_fresh_copy(task_to_dict(task)), session_factory=session_factory)
    return _task_view(saved)


@router.get("/{task_id}")
async def get_task(task_id: int, session_factory=Depends(get_session_factory)):
    """
    获取任务详情
    """
    task = store.load_task(task_id, session_factory=session_factory)
    if task is None:
        raise HTTPException(status_code=404, detail="任务不存在")
    return _task_view(task)


@router.post("/import")
async def import_task(
    payload: Dict[str, Any] = Body(..., description="任务 JSON"),
    session_factory=Depends(get_session_factory),
):
    """
    导入任务（JSON）
    """
    try:
        task = _fresh_copy(payload)
        saved = store.save_task(task, session_factory=session_factory)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_view(saved)


@router.delete("/{task_id}")
async def delete_task(task_id: int, session_factory=Depends(get_session_factory)):
    """
    删除任务
    """
    if not store.delete_task(task_id, session_factory=session_factory):
        raise HTTPException(status_code=404, detail="任务不存在")
    return {"deleted": True, "task_id": task_id}


@router.get("/{task_id}/export")
async def export_task(
    task_id: int,
    to_file: bool = Query(False, description="同时写入任务目录"),
    loader: TaskFileLoader = Depends(get_task_loader),
    session_factory=Depends(get_session_factory),
):
    """
    导出任务（不含统计信息）
    """
    task = store.load_task(task_id, session_factory=session_factory)
    if task is None:
        raise HTTPException(status_code=404, detail="任务不存在")
    result = {"task": task_to_dict(task, include_stats=False)}
    if to_file:
        try:
            result["path"] = str(loader.export(task))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return result
