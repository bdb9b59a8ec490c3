import pytest

from autoclick.core.constants import MAX_REPEAT_COUNT, SystemKeyAction
from autoclick.modules.executor.errors import ValidationError
from autoclick.modules.steps.models import (
    Condition,
    Delay,
    LaunchApp,
    LongPress,
    StepAction,
    Swipe,
    SystemKey,
    Tap,
    Task,
    TextSearch,
    sort_steps,
)


def _tap(step_id, order=0, **kwargs):
    return StepAction(id=step_id, kind=Tap(1, 2), order=order, **kwargs)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: Tap(-1, 5),
        lambda: Tap("1", 5),
        lambda: LongPress(1, 1, duration_ms=0),
        lambda: Swipe(0, 0, 10, 10, duration_ms=-5),
        lambda: TextSearch(""),
        lambda: SystemKey("volume_up"),
        lambda: LaunchApp("not a package"),
        lambda: Condition("image_exists", {"text": "x"}),
        lambda: Condition("text_exists", {}),
    ],
)
def test_malformed_parameters_rejected_at_construction(factory):
    with pytest.raises(ValidationError):
        factory()


def test_variant_values_are_normalized():
    assert SystemKey("back").action is SystemKeyAction.BACK
    assert Tap(10.4, 3.6) == Tap(10, 4)
    assert LaunchApp("com.example.app").package == "com.example.app"


def test_task_clamps_repeat_settings():
    task = Task(name="t", repeat_count=0, repeat_delay_ms=-100)
    assert task.repeat_count == 1
    assert task.repeat_delay_ms == 0

    task = Task(name="t", repeat_count=5000)
    assert task.repeat_count == MAX_REPEAT_COUNT


def test_step_delay_is_clamped():
    assert _tap(1, delay_before_ms=-10).delay_before_ms == 0


def test_ordering_breaks_ties_by_id():
    steps = [_tap("b"), _tap(10), _tap(2), _tap("a"), _tap(1, order=1)]
    assert [s.id for s in sort_steps(steps)] == [2, 10, "a", "b", 1]


def test_step_cannot_belong_to_two_tasks():
    step = _tap(1)
    Task(name="first", steps=[step])
    with pytest.raises(ValidationError):
        Task(name="second", steps=[step])


def test_step_becomes_free_after_removal():
    step = _tap(1)
    first = Task(name="first", steps=[step, _tap(2, order=1)])
    assert first.remove_step(0) is step
    second = Task(name="second")
    second.add_step(step)
    assert second.steps == [step]


def test_editing_keeps_order_dense():
    task = Task(name="t", steps=[_tap(1, order=0), _tap(2, order=5), _tap(3, order=9)])

    task.insert_step(1, _tap(4))
    assert [(s.id, s.order) for s in task.ordered_steps()] == [(1, 0), (4, 1), (2, 2), (3, 3)]

    assert task.move_step(3, 0)
    assert [s.id for s in task.ordered_steps()] == [3, 1, 4, 2]
    assert [s.order for s in task.ordered_steps()] == [0, 1, 2, 3]

    assert task.remove_step(99) is None
    assert not task.move_step(0, 0)


def test_validate_rejects_bad_tasks():
    with pytest.raises(ValidationError):
        Task(name="  ", steps=[_tap(1)]).validate()
    with pytest.raises(ValidationError):
        Task(name="x" * 101, steps=[_tap(1)]).validate()
    with pytest.raises(ValidationError):
        Task(name="t", description="d" * 501, steps=[_tap(1)]).validate()
    with pytest.raises(ValidationError):
        Task(name="t").validate()


def test_validate_rejects_duplicate_nested_ids():
    cond = StepAction(id=1, kind=Condition("text_exists", {"text": "ok"}, then_branch=(_tap(2),)))
    task = Task(name="t", steps=[cond, _tap(2, order=1)])
    with pytest.raises(ValidationError):
        task.validate()


def test_condition_branch_is_sorted():
    cond = Condition(
        "text_exists",
        {"text": "ok"},
        then_branch=(_tap("b", order=1), _tap("a", order=1), _tap(9, order=0)),
        else_branch=(),
    )
    assert [s.id for s in cond.branch(True)] == [9, "a", "b"]
    assert cond.branch(False) == []


def test_estimated_duration_includes_repeats():
    task = Task(
        name="t",
        steps=[
            _tap(1, delay_before_ms=200),
            StepAction(id=2, kind=Delay(1000), order=1),
            _tap(3, order=2, enabled=False),
        ],
        repeat_count=3,
        repeat_delay_ms=500,
    )
    assert task.estimated_duration_ms() == 1300 * 3 + 500 * 2


def test_record_execution_updates_stats():
    task = Task(name="t", steps=[_tap(1)])
    task.record_execution(True)
    task.record_execution(False)
    assert task.execution_count == 2
    assert task.success_count == 1
    assert task.success_rate() == 50.0
    assert task.last_executed_at is not None
    assert task.summary() == "1 steps • 50.0% success"
