"""
ADB 适配封装

基于 settings.adb_path，提供步骤执行所需的基础操作：
- connect(addr) / devices()
- tap / swipe / long_press
- keyevent / expand_statusbar
- input_text
- start_app_monkey / force_stop
- dump_ui(addr) -> 界面层级 XML
- get_airplane_mode / set_airplane_mode
"""
from __future__ import annotations

import subprocess
from typing import List, Tuple


class AdbError(RuntimeError):
    pass


# input text 中需要转义的 shell 特殊字符
_TEXT_SPECIAL = set("()<>|;&*\\~\"'`$")


def escape_input_text(text: str) -> str:
    """转义 `input text` 参数：空格写作 %s，shell 特殊字符加反斜杠"""
    out = []
    for ch in text:
        if ch == " ":
            out.append("%s")
        elif ch in _TEXT_SPECIAL:
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


class Adb:
    def __init__(self, adb_path: str = "adb") -> None:
        self.adb = adb_path

    def _run(self, args: List[str], timeout: float = 10.0) -> subprocess.CompletedProcess:
        try:
            cp = subprocess.run(
                [self.adb, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise AdbError(f"找不到 ADB 可执行文件: {self.adb}") from e
        except subprocess.TimeoutExpired as e:
            raise AdbError(f"ADB 命令超时: {' '.join(args)}") from e
        return cp

    def _check(self, cp: subprocess.CompletedProcess) -> str:
        if cp.returncode != 0:
            raise AdbError((cp.stderr or b"").decode(errors="ignore").strip() or f"returncode={cp.returncode}")
        return (cp.stdout or b"").decode(errors="ignore")

    def connect(self, addr: str, timeout: float = 10.0) -> bool:
        cp = self._run(["connect", addr], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore").lower()
        return cp.returncode == 0 and ("connected" in out or "already" in out)

    def devices(self, timeout: float = 10.0) -> List[str]:
        cp = self._run(["devices"], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore").splitlines()
        result = []
        for line in out:
            line = line.strip()
            if not line or line.lower().startswith("list of devices"):
                continue
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "device":
                result.append(parts[0])
        return result

    def shell(self, addr: str, cmd: str, timeout: float = 10.0) -> Tuple[int, str]:
        """执行 adb shell 命令，返回 (returncode, output)"""
        cp = self._run(["-s", addr, "shell", cmd], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore")
        return cp.returncode, out

    def tap(self, addr: str, x: int, y: int, timeout: float = 10.0) -> None:
        self._check(self._run(["-s", addr, "shell", "input", "tap", str(x), str(y)], timeout=timeout))

    def swipe(self, addr: str, x1: int, y1: int, x2: int, y2: int, dur_ms: int = 300, timeout: float = 10.0) -> None:
        self._check(self._run(
            ["-s", addr, "shell", "input", "swipe", str(x1), str(y1), str(x2), str(y2), str(dur_ms)],
            timeout=timeout,
        ))

    def long_press(self, addr: str, x: int, y: int, dur_ms: int = 500, timeout: float = 10.0) -> None:
        # 原地滑动即长按
        self.swipe(addr, x, y, x, y, dur_ms, timeout=timeout + dur_ms / 1000)

    def keyevent(self, addr: str, code: int, longpress: bool = False, timeout: float = 10.0) -> None:
        args = ["-s", addr, "shell", "input", "keyevent"]
        if longpress:
            args.append("--longpress")
        args.append(str(code))
        self._check(self._run(args, timeout=timeout))

    def expand_statusbar(self, addr: str, panel: str = "notifications", timeout: float = 10.0) -> None:
        """展开通知栏（notifications）或快捷设置（settings）"""
        self._check(self._run(["-s", addr, "shell", "cmd", "statusbar", f"expand-{panel}"], timeout=timeout))

    def input_text(self, addr: str, text: str, timeout: float = 15.0) -> None:
        self._check(self._run(["-s", addr, "shell", "input", "text", escape_input_text(text)], timeout=timeout))

    def start_app_monkey(self, addr: str, pkg: str, timeout: float = 10.0) -> None:
        cp = self._run([
            "-s", addr, "shell", "monkey",
            "-p", pkg,
            "-c", "android.intent.category.LAUNCHER",
            "1"
        ], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore").lower() + (cp.stderr or b"").decode(errors="ignore").lower()
        # monkey 返回码可能为 0 但未真正注入事件，检测不到 "events injected" 则尝试 am start
        if cp.returncode != 0 or ("events injected" not in out):
            cp2 = self._run([
                "-s", addr, "shell", "am", "start",
                "-a", "android.intent.action.MAIN",
                "-c", "android.intent.category.LAUNCHER",
                pkg
            ], timeout=timeout)
            self._check(cp2)

    def force_stop(self, addr: str, pkg: str, timeout: float = 10.0) -> None:
        self._check(self._run(["-s", addr, "shell", "am", "force-stop", pkg], timeout=timeout))

    def dump_ui(self, addr: str, timeout: float = 20.0) -> str:
        """通过 uiautomator 导出当前界面层级 XML"""
        out = self._check(self._run(["-s", addr, "exec-out", "uiautomator", "dump", "/dev/tty"], timeout=timeout))
        # 输出末尾附带 "UI hierchary dumped to: /dev/tty"
        end = out.rfind(">")
        start = out.find("<")
        if start < 0 or end < 0:
            raise AdbError(f"界面层级导出失败: {out.strip()[:200]}")
        return out[start:end + 1]

    def get_airplane_mode(self, addr: str, timeout: float = 10.0) -> bool:
        out = self._check(self._run(["-s", addr, "shell", "settings", "get", "global", "airplane_mode_on"], timeout=timeout))
        return out.strip() == "1"

    def set_airplane_mode(self, addr: str, enabled: bool, timeout: float = 10.0) -> None:
        state = "enable" if enabled else "disable"
        out = self._check(self._run(["-s", addr, "shell", "cmd", "connectivity", "airplane-mode", state], timeout=timeout))
        if "security" in out.lower() or "permission" in out.lower():
            raise AdbError(f"无权限切换飞行模式: {out.strip()}")
