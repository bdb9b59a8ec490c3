import json

import pytest

from autoclick.core.constants import PredicateKind, SystemKeyAction
from autoclick.modules.executor.errors import ValidationError
from autoclick.modules.steps.models import Condition, StepAction, SystemKey, Tap, Task
from autoclick.modules.steps.serializer import (
    dumps_task,
    loads_task,
    step_from_dict,
    step_to_dict,
    task_from_dict,
    task_to_dict,
)


def test_step_wire_shape():
    step = StepAction(id=3, kind=SystemKey("home"), order=2, delay_before_ms=150, description="回桌面")
    assert step_to_dict(step) == {
        "id": 3,
        "type": "system_key",
        "order": 2,
        "delay_ms": 150,
        "enabled": True,
        "description": "回桌面",
        "params": {"action": "home"},
    }


def test_condition_branches_nest_in_params():
    data = {
        "id": "c1",
        "type": "condition",
        "params": {
            "predicate": "text_exists",
            "params": {"text": "登录"},
            "then": [{"id": "t1", "type": "tap", "params": {"x": 1, "y": 2}}],
            "else": [{"id": "e1", "type": "delay", "params": {"duration_ms": 100}}],
        },
    }
    step = step_from_dict(data)
    assert isinstance(step.kind, Condition)
    assert step.kind.predicate is PredicateKind.TEXT_EXISTS
    assert [s.id for s in step.kind.then_branch] == ["t1"]
    assert [s.id for s in step.kind.else_branch] == ["e1"]

    params = step_to_dict(step)["params"]
    assert params["then"][0]["params"] == {"x": 1, "y": 2}
    assert params["else"][0]["type"] == "delay"


def test_missing_step_id_is_generated():
    step = step_from_dict({"type": "tap", "params": {"x": 0, "y": 0}})
    assert isinstance(step.id, str) and len(step.id) == 12


@pytest.mark.parametrize(
    "data",
    [
        {"type": "image_search", "params": {}},
        {"type": "tap", "params": {"x": 1}},
        {"type": "tap", "params": {"x": 1, "y": 2, "z": 3}},
        {"type": "tap", "params": [1, 2]},
        {"type": "system_key", "params": {"action": "volume_up"}},
        {"type": "tap", "order": "abc", "params": {"x": 1, "y": 2}},
        {"type": "tap", "delay_ms": None, "params": {"x": 1, "y": 2}},
        {"type": "tap", "delay_ms": "x", "params": {"x": 1, "y": 2}},
        {"type": "tap", "description": 7, "params": {"x": 1, "y": 2}},
        "tap",
    ],
)
def test_malformed_step_data_rejected(data):
    with pytest.raises(ValidationError):
        step_from_dict(data)


def test_task_dict_orders_steps_and_optional_stats():
    task = Task(
        id=5,
        name="签到",
        steps=[
            StepAction(id=2, kind=Tap(5, 5), order=1),
            StepAction(id=1, kind=Tap(1, 1), order=0),
        ],
        repeat_count=2,
        execution_count=4,
        success_count=3,
    )
    data = task_to_dict(task)
    assert [s["id"] for s in data["steps"]] == [1, 2]
    assert data["execution_count"] == 4

    bare = task_to_dict(task, include_stats=False)
    assert "execution_count" not in bare
    assert bare["repeat_count"] == 2


def test_task_json_text_preserves_definition():
    task = Task(
        name="飞行模式",
        description="切换飞行模式",
        steps=[
            StepAction(id=1, kind=SystemKey(SystemKeyAction.QUICK_SETTINGS)),
            StepAction(id=2, kind=Tap(300, 400), order=1, enabled=False),
        ],
        repeat_delay_ms=1000,
    )
    text = dumps_task(task)
    assert json.loads(text)["name"] == "飞行模式"

    restored = loads_task(text)
    assert restored.name == task.name
    assert restored.repeat_delay_ms == 1000
    assert [(s.id, s.enabled) for s in restored.ordered_steps()] == [(1, True), (2, False)]
    assert restored.ordered_steps()[0].kind == SystemKey("quick_settings")


def test_task_from_dict_rejects_bad_payloads():
    with pytest.raises(ValidationError):
        loads_task("{not json")
    with pytest.raises(ValidationError):
        task_from_dict({"name": "t", "steps": {"id": 1}})
    with pytest.raises(ValidationError):
        task_from_dict({"name": "t", "last_executed_at": "yesterday"})


@pytest.mark.parametrize(
    "field, value",
    [
        ("repeat_count", "many"),
        ("repeat_delay_ms", None),
        ("execution_count", "x"),
        ("success_count", [1]),
        ("name", 42),
    ],
)
def test_task_from_dict_rejects_non_integer_fields(field, value):
    data = {"name": "t", "steps": [{"id": 1, "type": "tap", "params": {"x": 1, "y": 2}}]}
    data[field] = value

    with pytest.raises(ValidationError):
        task_from_dict(data)


def test_numeric_strings_still_accepted():
    task = task_from_dict(
        {"name": "t", "repeat_count": "3", "steps": [{"id": 1, "type": "tap", "order": "2", "params": {"x": 1, "y": 2}}]}
    )

    assert task.repeat_count == 3
    assert task.steps[0].order == 2
