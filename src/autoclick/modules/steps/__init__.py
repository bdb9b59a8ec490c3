"""
任务与步骤模型
"""
from .models import (
    Condition,
    Delay,
    InputText,
    LaunchApp,
    CloseApp,
    LongPress,
    StepAction,
    Swipe,
    SystemKey,
    Tap,
    Task,
    TextSearch,
    ToggleAirplaneMode,
    new_step_id,
    sort_steps,
)

__all__ = [
    "Condition",
    "Delay",
    "InputText",
    "LaunchApp",
    "CloseApp",
    "LongPress",
    "StepAction",
    "Swipe",
    "SystemKey",
    "Tap",
    "Task",
    "TextSearch",
    "ToggleAirplaneMode",
    "new_step_id",
    "sort_steps",
]
