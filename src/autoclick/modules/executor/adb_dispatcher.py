"""
ADB 动作调度器

把步骤翻译为 adb 命令在 Android 设备上执行。
所有阻塞的 adb 调用通过 run_in_device_io 提交到设备专属的单线程池，
保证同一设备上的命令串行且不阻塞事件循环。
"""
from __future__ import annotations

import asyncio
import functools
import re
import xml.etree.ElementTree as ET
from typing import Optional, Tuple

from ...core.config import settings
from ...core.constants import PredicateKind, SystemKeyAction
from ...core.logger import logger
from ...core.thread_pool import run_in_device_io
from ..emu.adb import Adb, AdbError
from ..steps.models import StepAction
from .dispatcher import ActionDispatcher
from .types import StepOutcome

_BOUNDS_RE = re.compile(r"\[(\d+),(\d+)\]\[(\d+),(\d+)\]")

# Android KeyEvent 键码
_KEYCODES = {
    SystemKeyAction.BACK: 4,
    SystemKeyAction.HOME: 3,
    SystemKeyAction.RECENTS: 187,
    SystemKeyAction.LOCK_SCREEN: 223,
}
KEYCODE_POWER = 26


def find_text_center(xml_text: str, text: str) -> Optional[Tuple[int, int]]:
    """在 uiautomator 导出的 XML 中查找包含 text 的节点，返回其中心坐标"""
    root = ET.fromstring(xml_text)
    for node in root.iter("node"):
        label = node.get("text") or ""
        desc = node.get("content-desc") or ""
        if text not in label and text not in desc:
            continue
        m = _BOUNDS_RE.fullmatch(node.get("bounds") or "")
        if not m:
            continue
        x1, y1, x2, y2 = (int(v) for v in m.groups())
        return (x1 + x2) // 2, (y1 + y2) // 2
    return None


class AdbDispatcher(ActionDispatcher):
    """通过 adb 执行步骤

    Args:
        adb: Adb 实例，默认按 settings.adb_path 创建
        addr: 设备地址，默认 settings.adb_addr
    """

    def __init__(self, adb: Optional[Adb] = None, addr: Optional[str] = None) -> None:
        self.adb = adb or Adb(settings.adb_path)
        self.addr = addr or settings.adb_addr
        self.logger = logger.bind(module="AdbDispatcher", device=self.addr)

    async def _run(self, func, *args):
        return await run_in_device_io(self.addr, func, *args)

    async def perform(self, step: StepAction) -> StepOutcome:
        handler = getattr(self, f"_do_{step.type.value}", None)
        if handler is None:
            return StepOutcome.fail(f"不支持的步骤类型: {step.type.value}")
        try:
            return await handler(step.kind)
        except AdbError as e:
            self.logger.warning(f"步骤 {step.id} ADB 错误: {e}")
            return StepOutcome.fail(f"ADB 错误: {e}")
        except ET.ParseError as e:
            self.logger.warning(f"步骤 {step.id} 界面层级解析失败: {e}")
            return StepOutcome.fail(f"界面层级解析失败: {e}")

    async def _find_text(self, text: str) -> Optional[Tuple[int, int]]:
        xml_text = await self._run(self.adb.dump_ui, self.addr)
        return find_text_center(xml_text, text)

    # ── 各类型步骤 ──

    async def _do_tap(self, kind) -> StepOutcome:
        await self._run(self.adb.tap, self.addr, kind.x, kind.y)
        return StepOutcome.ok()

    async def _do_long_press(self, kind) -> StepOutcome:
        await self._run(self.adb.long_press, self.addr, kind.x, kind.y, kind.duration_ms)
        return StepOutcome.ok()

    async def _do_swipe(self, kind) -> StepOutcome:
        await self._run(self.adb.swipe, self.addr, kind.x1, kind.y1, kind.x2, kind.y2, kind.duration_ms)
        return StepOutcome.ok()

    async def _do_text_search(self, kind) -> StepOutcome:
        pos = await self._find_text(kind.text)
        if pos is None:
            return StepOutcome.fail(f"未找到文字: {kind.text}")
        if kind.click_if_found:
            await self._run(self.adb.tap, self.addr, *pos)
        return StepOutcome.ok(f"找到文字 {kind.text} @ {pos}", value=True)

    async def _do_system_key(self, kind) -> StepOutcome:
        action = kind.action
        if action in _KEYCODES:
            await self._run(self.adb.keyevent, self.addr, _KEYCODES[action])
        elif action is SystemKeyAction.POWER_DIALOG:
            await self._run(functools.partial(self.adb.keyevent, self.addr, KEYCODE_POWER, longpress=True))
        elif action is SystemKeyAction.NOTIFICATIONS:
            await self._run(self.adb.expand_statusbar, self.addr, "notifications")
        elif action is SystemKeyAction.QUICK_SETTINGS:
            await self._run(self.adb.expand_statusbar, self.addr, "settings")
        else:
            return StepOutcome.fail(f"不支持的系统按键: {action.value}")
        return StepOutcome.ok()

    async def _do_input_text(self, kind) -> StepOutcome:
        await self._run(self.adb.input_text, self.addr, kind.text)
        return StepOutcome.ok()

    async def _do_delay(self, kind) -> StepOutcome:
        await asyncio.sleep(kind.duration_ms / 1000)
        return StepOutcome.ok()

    async def _do_condition(self, kind) -> StepOutcome:
        if kind.predicate is PredicateKind.TEXT_EXISTS:
            matched = await self._find_text(kind.params["text"]) is not None
            return StepOutcome.ok(f"条件 {kind.predicate.value}={matched}", value=matched)
        return StepOutcome.fail(f"不支持的条件类型: {kind.predicate.value}")

    async def _do_launch_app(self, kind) -> StepOutcome:
        await self._run(self.adb.start_app_monkey, self.addr, kind.package)
        return StepOutcome.ok()

    async def _do_close_app(self, kind) -> StepOutcome:
        await self._run(self.adb.force_stop, self.addr, kind.package)
        return StepOutcome.ok()

    async def _do_toggle_airplane_mode(self, kind) -> StepOutcome:
        current = await self._run(self.adb.get_airplane_mode, self.addr)
        await self._run(self.adb.set_airplane_mode, self.addr, not current)
        return StepOutcome.ok(f"飞行模式: {'关闭' if current else '开启'}")


__all__ = ["AdbDispatcher", "find_text_center"]
