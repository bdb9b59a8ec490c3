"""
任务与步骤数据模型

步骤类型是一个封闭的变体集合，每个变体在构造时完成参数校验，
非法参数在创建时即被拒绝（抛出 ValidationError），而不是在执行时才发现。
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Union

from ...core.constants import (
    DEFAULT_LONG_PRESS_MS,
    DEFAULT_STEP_EXPECTED_MS,
    DEFAULT_SWIPE_MS,
    MAX_DESCRIPTION_LENGTH,
    MAX_REPEAT_COUNT,
    MAX_REPEAT_DELAY_MS,
    MAX_STEP_DELAY_MS,
    MAX_TASK_NAME_LENGTH,
    STEP_EXPECTED_MS,
    PredicateKind,
    StepType,
    SystemKeyAction,
)
from ..executor.errors import ValidationError

StepId = Union[int, str]

_PACKAGE_RE = re.compile(r"[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z][A-Za-z0-9_]*)+")


def new_step_id() -> str:
    return uuid.uuid4().hex[:12]


def _int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} 必须是整数: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} 必须是整数: {value!r}") from e


def _clamp(value: Any, low: int, high: int, name: str = "数值") -> int:
    return max(low, min(_int(name, value), high))


def _str(name: str, value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} 必须是字符串: {value!r}")
    return value.strip()


def _coord(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"坐标 {name} 必须是数字: {value!r}")
    if value < 0:
        raise ValidationError(f"坐标 {name} 不能为负数: {value}")
    return int(round(value))


def _duration(name: str, value: Any, *, allow_zero: bool) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} 必须是整数毫秒: {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} 超出范围: {value}")
    if value > MAX_STEP_DELAY_MS:
        raise ValidationError(f"{name} 不能超过 {MAX_STEP_DELAY_MS}ms: {value}")
    return value


def _text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{name} 必须是非空字符串")
    return value


def _package(value: Any) -> str:
    if not isinstance(value, str) or not _PACKAGE_RE.fullmatch(value):
        raise ValidationError(f"非法应用包名: {value!r}")
    return value


class _Kind:
    type: ClassVar[StepType]

    def expected_ms(self) -> int:
        """预估执行耗时（毫秒）"""
        base = STEP_EXPECTED_MS.get(self.type, DEFAULT_STEP_EXPECTED_MS)
        return base + int(getattr(self, "duration_ms", 0) or 0)


# --- 步骤变体 ---


@dataclass(frozen=True)
class Tap(_Kind):
    x: int
    y: int
    type: ClassVar[StepType] = StepType.TAP

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", _coord("x", self.x))
        object.__setattr__(self, "y", _coord("y", self.y))


@dataclass(frozen=True)
class LongPress(_Kind):
    x: int
    y: int
    duration_ms: int = DEFAULT_LONG_PRESS_MS
    type: ClassVar[StepType] = StepType.LONG_PRESS

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", _coord("x", self.x))
        object.__setattr__(self, "y", _coord("y", self.y))
        _duration("duration_ms", self.duration_ms, allow_zero=False)


@dataclass(frozen=True)
class Swipe(_Kind):
    x1: int
    y1: int
    x2: int
    y2: int
    duration_ms: int = DEFAULT_SWIPE_MS
    type: ClassVar[StepType] = StepType.SWIPE

    def __post_init__(self) -> None:
        for name in ("x1", "y1", "x2", "y2"):
            object.__setattr__(self, name, _coord(name, getattr(self, name)))
        _duration("duration_ms", self.duration_ms, allow_zero=False)


@dataclass(frozen=True)
class TextSearch(_Kind):
    text: str
    click_if_found: bool = True
    type: ClassVar[StepType] = StepType.TEXT_SEARCH

    def __post_init__(self) -> None:
        _text("text", self.text)


@dataclass(frozen=True)
class SystemKey(_Kind):
    action: SystemKeyAction
    type: ClassVar[StepType] = StepType.SYSTEM_KEY

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "action", SystemKeyAction(self.action))
        except ValueError as e:
            raise ValidationError(f"未知系统按键: {self.action!r}") from e


@dataclass(frozen=True)
class InputText(_Kind):
    text: str
    type: ClassVar[StepType] = StepType.INPUT_TEXT

    def __post_init__(self) -> None:
        _text("text", self.text)


@dataclass(frozen=True)
class Delay(_Kind):
    duration_ms: int
    type: ClassVar[StepType] = StepType.DELAY

    def __post_init__(self) -> None:
        _duration("duration_ms", self.duration_ms, allow_zero=True)


@dataclass(frozen=True)
class Condition(_Kind):
    """条件步骤：由调度器判定谓词，引擎把命中的分支拼接到当前位置之后"""

    predicate: PredicateKind
    params: Dict[str, Any] = field(default_factory=dict)
    then_branch: Tuple["StepAction", ...] = ()
    else_branch: Tuple["StepAction", ...] = ()
    type: ClassVar[StepType] = StepType.CONDITION

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "predicate", PredicateKind(self.predicate))
        except ValueError as e:
            raise ValidationError(f"未知条件类型: {self.predicate!r}") from e
        if not isinstance(self.params, dict):
            raise ValidationError("条件参数必须是字典")
        if self.predicate is PredicateKind.TEXT_EXISTS:
            _text("params.text", self.params.get("text"))
        for name in ("then_branch", "else_branch"):
            branch = tuple(getattr(self, name) or ())
            for step in branch:
                if not isinstance(step, StepAction):
                    raise ValidationError(f"{name} 只能包含步骤: {step!r}")
            object.__setattr__(self, name, branch)

    def branch(self, matched: bool) -> List["StepAction"]:
        """按 (order, id) 排序后的命中分支"""
        return sort_steps(self.then_branch if matched else self.else_branch)


@dataclass(frozen=True)
class LaunchApp(_Kind):
    package: str
    type: ClassVar[StepType] = StepType.LAUNCH_APP

    def __post_init__(self) -> None:
        _package(self.package)


@dataclass(frozen=True)
class CloseApp(_Kind):
    package: str
    type: ClassVar[StepType] = StepType.CLOSE_APP

    def __post_init__(self) -> None:
        _package(self.package)


@dataclass(frozen=True)
class ToggleAirplaneMode(_Kind):
    type: ClassVar[StepType] = StepType.TOGGLE_AIRPLANE_MODE


StepKind = Union[
    Tap, LongPress, Swipe, TextSearch, SystemKey, InputText,
    Delay, Condition, LaunchApp, CloseApp, ToggleAirplaneMode,
]

KIND_BY_TYPE: Dict[StepType, type] = {
    kind.type: kind
    for kind in (
        Tap, LongPress, Swipe, TextSearch, SystemKey, InputText,
        Delay, Condition, LaunchApp, CloseApp, ToggleAirplaneMode,
    )
}


# --- 步骤 ---


@dataclass(eq=False)
class StepAction:
    """任务中的单个步骤"""

    id: StepId
    kind: StepKind
    order: int = 0
    delay_before_ms: int = 0
    enabled: bool = True
    description: str = ""
    task_id: Optional[int] = None
    _owner: Optional["Task"] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.id is None or self.id == "" or isinstance(self.id, bool):
            raise ValidationError("步骤 id 不能为空")
        if not isinstance(self.kind, tuple(KIND_BY_TYPE.values())):
            raise ValidationError(f"未知步骤类型: {self.kind!r}")
        self.order = max(0, _int("order", self.order))
        self.delay_before_ms = _clamp(self.delay_before_ms, 0, MAX_STEP_DELAY_MS, "delay_before_ms")
        self.description = _str("description", self.description)

    @property
    def type(self) -> StepType:
        return self.kind.type

    def expected_duration_ms(self) -> int:
        return self.kind.expected_ms()

    def iter_nested(self) -> Iterator["StepAction"]:
        """遍历自身及条件分支中的所有步骤"""
        yield self
        if isinstance(self.kind, Condition):
            for child in self.kind.then_branch + self.kind.else_branch:
                yield from child.iter_nested()

    def summary(self) -> str:
        text = self.description or self.type.value
        if self.delay_before_ms > 0:
            text += f" (Delay: {self.delay_before_ms}ms)"
        return text


def step_sort_key(step: StepAction) -> Tuple[int, int, Any]:
    # 整数 id 按数值排序且排在字符串 id 之前
    if isinstance(step.id, int):
        return (step.order, 0, step.id)
    return (step.order, 1, str(step.id))


def sort_steps(steps) -> List[StepAction]:
    return sorted(steps, key=step_sort_key)


# --- 任务 ---


@dataclass(eq=False)
class Task:
    """自动化任务：有序步骤 + 重复策略"""

    name: str
    steps: List[StepAction] = field(default_factory=list)
    id: Optional[int] = None
    description: str = ""
    repeat_count: int = 1
    repeat_delay_ms: int = 0
    enabled: bool = True
    execution_count: int = 0
    success_count: int = 0
    last_executed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        self.name = _str("name", self.name)
        self.description = _str("description", self.description)
        self.repeat_count = _clamp(self.repeat_count, 1, MAX_REPEAT_COUNT, "repeat_count")
        self.repeat_delay_ms = _clamp(self.repeat_delay_ms, 0, MAX_REPEAT_DELAY_MS, "repeat_delay_ms")
        self.execution_count = max(0, _int("execution_count", self.execution_count))
        self.success_count = max(0, _int("success_count", self.success_count))
        self.steps = list(self.steps)
        for step in self.steps:
            self._claim(step)

    def _claim(self, step: StepAction) -> None:
        if step._owner is not None and step._owner is not self:
            raise ValidationError(f"步骤 {step.id} 已属于其他任务")
        step._owner = self
        step.task_id = self.id

    def _touch(self) -> None:
        self.updated_at = datetime.utcnow()

    def _renumber(self) -> None:
        for index, step in enumerate(self.steps):
            step.order = index

    def ordered_steps(self) -> List[StepAction]:
        """按 (order, id) 排序后的步骤"""
        return sort_steps(self.steps)

    def enabled_step_count(self) -> int:
        return sum(1 for step in self.steps if step.enabled)

    def step_ids(self) -> List[StepId]:
        return [s.id for step in self.steps for s in step.iter_nested()]

    # 编辑操作：保持 order 连续

    def add_step(self, step: StepAction) -> StepAction:
        self._claim(step)
        self.steps = self.ordered_steps()
        step.order = len(self.steps)
        self.steps.append(step)
        self._touch()
        return step

    def insert_step(self, position: int, step: StepAction) -> StepAction:
        self._claim(step)
        self.steps = self.ordered_steps()
        position = _clamp(position, 0, len(self.steps))
        self.steps.insert(position, step)
        self._renumber()
        self._touch()
        return step

    def remove_step(self, position: int) -> Optional[StepAction]:
        self.steps = self.ordered_steps()
        if not 0 <= position < len(self.steps):
            return None
        step = self.steps.pop(position)
        step._owner = None
        step.task_id = None
        self._renumber()
        self._touch()
        return step

    def move_step(self, from_position: int, to_position: int) -> bool:
        self.steps = self.ordered_steps()
        size = len(self.steps)
        if not (0 <= from_position < size and 0 <= to_position < size):
            return False
        if from_position == to_position:
            return False
        step = self.steps.pop(from_position)
        self.steps.insert(to_position, step)
        self._renumber()
        self._touch()
        return True

    # 统计

    def estimated_duration_ms(self) -> int:
        """预估完整执行耗时（含重复与重复间隔）"""
        per_iteration = sum(
            step.delay_before_ms + step.expected_duration_ms()
            for step in self.steps
            if step.enabled
        )
        return per_iteration * self.repeat_count + self.repeat_delay_ms * (self.repeat_count - 1)

    def success_rate(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return self.success_count / self.execution_count * 100.0

    def record_execution(self, success: bool, at: Optional[datetime] = None) -> None:
        self.execution_count += 1
        if success:
            self.success_count += 1
        self.last_executed_at = at or datetime.utcnow()
        self._touch()

    def validate(self) -> None:
        """校验任务配置，非法时抛出 ValidationError"""
        if not self.name:
            raise ValidationError("任务名称不能为空")
        if len(self.name) > MAX_TASK_NAME_LENGTH:
            raise ValidationError(f"任务名称不能超过 {MAX_TASK_NAME_LENGTH} 个字符")
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"任务描述不能超过 {MAX_DESCRIPTION_LENGTH} 个字符")
        if not self.steps:
            raise ValidationError("任务没有步骤")
        seen = set()
        for step_id in self.step_ids():
            if step_id in seen:
                raise ValidationError(f"步骤 id 重复: {step_id}")
            seen.add(step_id)

    def summary(self) -> str:
        return f"{len(self.steps)} steps • {self.success_rate():.1f}% success"


__all__ = [
    "StepId",
    "StepKind",
    "KIND_BY_TYPE",
    "Tap",
    "LongPress",
    "Swipe",
    "TextSearch",
    "SystemKey",
    "InputText",
    "Delay",
    "Condition",
    "LaunchApp",
    "CloseApp",
    "ToggleAirplaneMode",
    "StepAction",
    "Task",
    "new_step_id",
    "sort_steps",
    "step_sort_key",
]
