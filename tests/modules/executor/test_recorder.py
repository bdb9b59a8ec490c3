import pytest

from autoclick.core.constants import ExecutionStatus
from autoclick.core.thread_pool import shutdown_pools
from autoclick.modules.executor.dispatcher import MockDispatcher
from autoclick.modules.executor.engine import ExecutionEngine
from autoclick.modules.executor.recorder import RunRecorder
from autoclick.modules.executor.types import ExecutionSummary
from autoclick.modules.steps.models import StepAction, Tap, Task
from autoclick.modules.tasks import store


@pytest.fixture(autouse=True)
def _reset_pools():
    shutdown_pools()
    yield
    shutdown_pools()


def _saved_task(session_factory, name="记录"):
    task = Task(name=name, steps=[StepAction(id=1, kind=Tap(1, 1)), StepAction(id=2, kind=Tap(2, 2), order=1)])
    return store.save_task(task, session_factory=session_factory)


@pytest.mark.asyncio
async def test_completed_run_is_persisted(session_factory):
    task = _saved_task(session_factory)
    recorder = RunRecorder(session_factory, max_entries=0, max_age_days=0)
    engine = ExecutionEngine(MockDispatcher(fail_steps={2}), recorder)

    for _ in range(2):
        await engine.run(task)
        await recorder.flush()

    assert task.execution_count == 2
    assert task.success_count == 0

    loaded = store.load_task(task.id, session_factory=session_factory)
    assert loaded.execution_count == 2
    assert loaded.success_count == 0

    logs = store.list_logs(task.id, session_factory=session_factory)
    assert [log["status"] for log in logs] == ["failed", "failed"]
    assert logs[0]["step_id"] == "2"


@pytest.mark.asyncio
async def test_retention_applied_after_write(session_factory):
    task = _saved_task(session_factory)
    recorder = RunRecorder(session_factory, max_entries=1, max_age_days=0)
    engine = ExecutionEngine(MockDispatcher(), recorder)

    for _ in range(3):
        await engine.run(task)
        await recorder.flush()

    assert len(store.list_logs(task.id, session_factory=session_factory)) == 1
    assert store.load_task(task.id, session_factory=session_factory).execution_count == 3


def test_records_synchronously_without_loop(session_factory):
    task = _saved_task(session_factory)
    summary = ExecutionSummary(
        task_id=task.id,
        task_name=task.name,
        status=ExecutionStatus.COMPLETED,
        success=True,
        steps_completed=2,
        duration_ms=10,
    )

    RunRecorder(session_factory).on_completed(task, True, summary)

    assert store.load_task(task.id, session_factory=session_factory).success_count == 1


def test_write_failure_is_logged_not_raised():
    def broken_factory():
        raise RuntimeError("database is locked")

    summary = ExecutionSummary(
        task_id=1,
        task_name="t",
        status=ExecutionStatus.STOPPED,
        success=False,
        steps_completed=0,
        duration_ms=0,
    )
    task = Task(name="t", steps=[StepAction(id=1, kind=Tap(1, 1))])

    RunRecorder(broken_factory).on_completed(task, False, summary)

    assert task.execution_count == 1
