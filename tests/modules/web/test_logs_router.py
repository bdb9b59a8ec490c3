import asyncio
from datetime import datetime, timedelta

from autoclick.core.constants import ExecutionStatus
from autoclick.modules.executor.types import ExecutionSummary
from autoclick.modules.web.routers import logs as logs_router
from autoclick.modules.tasks import store


def _record(session_factory, task_id, success, finished_at):
    store.record_run(
        ExecutionSummary(
            task_id=task_id,
            task_name=f"任务{task_id}",
            status=ExecutionStatus.COMPLETED if success else ExecutionStatus.FAILED,
            success=success,
            steps_completed=1,
            duration_ms=200,
            finished_at=finished_at,
        ),
        session_factory=session_factory,
    )


def test_list_logs_filters_and_pages(session_factory):
    now = datetime.utcnow()
    for i in range(3):
        _record(session_factory, 1, True, now - timedelta(minutes=i))
    _record(session_factory, 2, False, now)

    result = asyncio.run(logs_router.list_logs(task_id=1, limit=2, offset=0, session_factory=session_factory))
    assert result["total"] == 2
    assert all(log["task_id"] == 1 for log in result["logs"])

    everything = asyncio.run(logs_router.list_logs(task_id=None, limit=100, offset=1, session_factory=session_factory))
    assert everything["total"] == 3


def test_stats_and_cleanup(session_factory):
    now = datetime.utcnow()
    _record(session_factory, 1, True, now - timedelta(days=10))
    _record(session_factory, 1, False, now)

    stats = asyncio.run(logs_router.get_task_stats(1, session_factory=session_factory))
    assert stats["total"] == 2
    assert stats["success_rate"] == 50.0

    result = asyncio.run(logs_router.cleanup_logs(max_count=0, max_age_days=5, session_factory=session_factory))
    assert result == {"deleted": 1}
    assert asyncio.run(logs_router.get_task_stats(1, session_factory=session_factory))["failed"] == 1
