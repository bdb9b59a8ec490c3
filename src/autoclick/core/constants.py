"""
常量和枚举定义
"""
from enum import Enum


class ExecutionStatus(str, Enum):
    """执行状态"""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        return self in (ExecutionStatus.RUNNING, ExecutionStatus.PAUSED)

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.STOPPED,
        )


class StepType(str, Enum):
    """步骤类型"""
    TAP = "tap"
    LONG_PRESS = "long_press"
    SWIPE = "swipe"
    TEXT_SEARCH = "text_search"
    SYSTEM_KEY = "system_key"
    INPUT_TEXT = "input_text"
    DELAY = "delay"
    CONDITION = "condition"
    LAUNCH_APP = "launch_app"
    CLOSE_APP = "close_app"
    TOGGLE_AIRPLANE_MODE = "toggle_airplane_mode"


class SystemKeyAction(str, Enum):
    """系统按键动作"""
    BACK = "back"
    HOME = "home"
    RECENTS = "recents"
    NOTIFICATIONS = "notifications"
    QUICK_SETTINGS = "quick_settings"
    POWER_DIALOG = "power_dialog"
    LOCK_SCREEN = "lock_screen"


class PredicateKind(str, Enum):
    """条件步骤的判定类型"""
    TEXT_EXISTS = "text_exists"


# 限制
MAX_TASK_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_REPEAT_COUNT = 999
MAX_REPEAT_DELAY_MS = 3_600_000  # 1小时
MAX_STEP_DELAY_MS = 3_600_000  # 1小时

# 默认值
DEFAULT_LONG_PRESS_MS = 500
DEFAULT_SWIPE_MS = 300

# 各类型步骤的预估执行耗时（毫秒），不含步骤自身的时长参数
STEP_EXPECTED_MS = {
    StepType.TAP: 100,
    StepType.SYSTEM_KEY: 100,
    StepType.LONG_PRESS: 0,
    StepType.SWIPE: 0,
    StepType.TEXT_SEARCH: 1000,
    StepType.CONDITION: 1000,
    StepType.INPUT_TEXT: 200,
    StepType.LAUNCH_APP: 2000,
    StepType.CLOSE_APP: 500,
    StepType.TOGGLE_AIRPLANE_MODE: 500,
    StepType.DELAY: 0,
}
DEFAULT_STEP_EXPECTED_MS = 50
