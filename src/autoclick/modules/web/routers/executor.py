"""
Executor control API
"""
from fastapi import APIRouter, Depends, HTTPException, Request

from ....db.base import get_session_factory
from ...executor.errors import ConcurrentRunError
from ...executor.host import EngineHost
from ...tasks import store


router = APIRouter(prefix="/api/executor", tags=["executor"])


def get_executor(request: Request) -> EngineHost:
    host = getattr(request.app.state, "executor", None)
    if host is None or not host.is_alive():
        raise HTTPException(status_code=503, detail="执行器未启动")
    return host


def _control_result(host: EngineHost, ok: bool):
    return {"ok": ok, "status": host.snapshot()}


@router.post("/run/{task_id}")
def run_task(
    task_id: int,
    host: EngineHost = Depends(get_executor),
    session_factory=Depends(get_session_factory),
):
    """执行任务"""
    task = store.load_task(task_id, session_factory=session_factory)
    if task is None:
        raise HTTPException(status_code=404, detail="任务不存在")
    error = host.try_execute(task)
    if error is not None:
        code = 409 if isinstance(error, ConcurrentRunError) else 400
        raise HTTPException(status_code=code, detail=str(error))
    return _control_result(host, True)


@router.post("/pause")
def pause(host: EngineHost = Depends(get_executor)):
    return _control_result(host, host.pause())


@router.post("/resume")
def resume(host: EngineHost = Depends(get_executor)):
    return _control_result(host, host.resume())


@router.post("/stop")
def stop(host: EngineHost = Depends(get_executor)):
    return _control_result(host, host.stop())


@router.get("/status")
def status(host: EngineHost = Depends(get_executor)):
    return host.snapshot()
