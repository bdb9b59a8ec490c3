"""
任务/步骤与字典、JSON 之间的转换

步骤的线上格式：
    {"id": ..., "type": "tap", "order": 0, "delay_ms": 0, "enabled": true,
     "description": "", "params": {"x": 1, "y": 2}}
条件步骤的分支嵌套在 params.then / params.else 中。
"""
from __future__ import annotations

import json
from dataclasses import fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from ...core.constants import StepType
from ..executor.errors import ValidationError
from .models import KIND_BY_TYPE, Condition, StepAction, Task, new_step_id


def _kind_params(kind) -> Dict[str, Any]:
    if isinstance(kind, Condition):
        return {
            "predicate": kind.predicate.value,
            "params": dict(kind.params),
            "then": [step_to_dict(s) for s in kind.then_branch],
            "else": [step_to_dict(s) for s in kind.else_branch],
        }
    params = {}
    for f in fields(kind):
        value = getattr(kind, f.name)
        params[f.name] = getattr(value, "value", value)
    return params


def _kind_from_params(step_type: StepType, params: Dict[str, Any]):
    kind_cls = KIND_BY_TYPE[step_type]
    if kind_cls is Condition:
        return Condition(
            predicate=params.get("predicate"),
            params=params.get("params") or {},
            then_branch=tuple(step_from_dict(d) for d in params.get("then") or []),
            else_branch=tuple(step_from_dict(d) for d in params.get("else") or []),
        )
    allowed = {f.name for f in fields(kind_cls)}
    unknown = set(params) - allowed
    if unknown:
        raise ValidationError(f"{step_type.value} 不支持的参数: {sorted(unknown)}")
    try:
        return kind_cls(**params)
    except TypeError as e:
        raise ValidationError(f"{step_type.value} 参数错误: {e}") from e


def step_to_dict(step: StepAction) -> Dict[str, Any]:
    return {
        "id": step.id,
        "type": step.type.value,
        "order": step.order,
        "delay_ms": step.delay_before_ms,
        "enabled": step.enabled,
        "description": step.description,
        "params": _kind_params(step.kind),
    }


def step_from_dict(data: Dict[str, Any]) -> StepAction:
    if not isinstance(data, dict):
        raise ValidationError(f"步骤数据必须是对象: {data!r}")
    try:
        step_type = StepType(data.get("type"))
    except ValueError as e:
        raise ValidationError(f"未知步骤类型: {data.get('type')!r}") from e
    params = data.get("params") or {}
    if not isinstance(params, dict):
        raise ValidationError("步骤 params 必须是对象")
    step_id = data.get("id")
    return StepAction(
        id=new_step_id() if step_id is None else step_id,
        kind=_kind_from_params(step_type, params),
        order=data.get("order", 0),
        delay_before_ms=data.get("delay_ms", 0),
        enabled=bool(data.get("enabled", True)),
        description=data.get("description", ""),
    )


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"非法时间格式: {value!r}") from e


def task_to_dict(task: Task, *, include_stats: bool = True) -> Dict[str, Any]:
    data = {
        "id": task.id,
        "name": task.name,
        "description": task.description,
        "enabled": task.enabled,
        "repeat_count": task.repeat_count,
        "repeat_delay_ms": task.repeat_delay_ms,
        "steps": [step_to_dict(s) for s in task.ordered_steps()],
    }
    if include_stats:
        data.update(
            execution_count=task.execution_count,
            success_count=task.success_count,
            last_executed_at=_dt(task.last_executed_at),
        )
    return data


def task_from_dict(data: Dict[str, Any]) -> Task:
    if not isinstance(data, dict):
        raise ValidationError("任务数据必须是对象")
    steps_data = data.get("steps") or []
    if not isinstance(steps_data, list):
        raise ValidationError("steps 必须是列表")
    return Task(
        id=data.get("id"),
        name=data.get("name") or "",
        description=data.get("description") or "",
        steps=[step_from_dict(d) for d in steps_data],
        repeat_count=data.get("repeat_count", 1),
        repeat_delay_ms=data.get("repeat_delay_ms", 0),
        enabled=bool(data.get("enabled", True)),
        execution_count=data.get("execution_count", 0),
        success_count=data.get("success_count", 0),
        last_executed_at=_parse_dt(data.get("last_executed_at")),
    )


def steps_to_json(steps: List[StepAction]) -> List[Dict[str, Any]]:
    return [step_to_dict(s) for s in steps]


def steps_from_json(items: Optional[List[Dict[str, Any]]]) -> List[StepAction]:
    return [step_from_dict(d) for d in items or []]


def dumps_task(task: Task, *, include_stats: bool = False) -> str:
    return json.dumps(task_to_dict(task, include_stats=include_stats), ensure_ascii=False, indent=2)


def loads_task(text: str) -> Task:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"JSON 解析失败: {e}") from e
    return task_from_dict(data)


__all__ = [
    "step_to_dict",
    "step_from_dict",
    "task_to_dict",
    "task_from_dict",
    "steps_to_json",
    "steps_from_json",
    "dumps_task",
    "loads_task",
]
