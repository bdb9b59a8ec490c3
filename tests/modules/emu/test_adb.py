import subprocess
from types import SimpleNamespace

import pytest

from autoclick.modules.emu import adb as adb_module
from autoclick.modules.emu.adb import Adb, AdbError, escape_input_text


class FakeRun:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        if isinstance(self.results[0], BaseException):
            raise self.results.pop(0)
        returncode, stdout, stderr = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture()
def fake_run(monkeypatch):
    def install(*results):
        runner = FakeRun(*results)
        monkeypatch.setattr(adb_module.subprocess, "run", runner)
        return runner

    return install


def test_escape_input_text():
    assert escape_input_text("hello world") == "hello%sworld"
    assert escape_input_text("a&b(c)") == "a\\&b\\(c\\)"
    assert escape_input_text("中文") == "中文"


def test_tap_and_keyevent_arguments(fake_run):
    runner = fake_run((0, b"", b""))
    adb = Adb("adb-bin")

    adb.tap("dev", 5, 6)
    adb.keyevent("dev", 26, longpress=True)
    adb.long_press("dev", 1, 2, 700)

    assert runner.calls == [
        ["adb-bin", "-s", "dev", "shell", "input", "tap", "5", "6"],
        ["adb-bin", "-s", "dev", "shell", "input", "keyevent", "--longpress", "26"],
        ["adb-bin", "-s", "dev", "shell", "input", "swipe", "1", "2", "1", "2", "700"],
    ]


def test_nonzero_return_code_raises(fake_run):
    fake_run((1, b"", b"error: device offline"))

    with pytest.raises(AdbError, match="device offline"):
        Adb().force_stop("dev", "com.example.app")


def test_missing_binary_and_timeout_raise_adb_error(fake_run):
    fake_run(FileNotFoundError("adb"))
    with pytest.raises(AdbError, match="找不到"):
        Adb("missing-adb").tap("dev", 1, 1)

    fake_run(subprocess.TimeoutExpired(cmd="adb", timeout=1))
    with pytest.raises(AdbError, match="超时"):
        Adb().tap("dev", 1, 1)


def test_dump_ui_strips_trailer(fake_run):
    xml = "<?xml version='1.0' ?><hierarchy><node text='a' /></hierarchy>"
    fake_run((0, (xml + "UI hierchary dumped to: /dev/tty\n").encode(), b""))

    assert Adb().dump_ui("dev") == xml


def test_dump_ui_without_xml_raises(fake_run):
    fake_run((0, b"ERROR: null root node returned by UiTestAutomationBridge.\n", b""))

    with pytest.raises(AdbError):
        Adb().dump_ui("dev")


def test_airplane_mode_read_and_write(fake_run):
    runner = fake_run((0, b"1\n", b""), (0, b"", b""))
    adb = Adb()

    assert adb.get_airplane_mode("dev") is True
    adb.set_airplane_mode("dev", False)
    assert runner.calls[-1][-3:] == ["connectivity", "airplane-mode", "disable"]


def test_monkey_falls_back_to_am_start(fake_run):
    runner = fake_run((0, b"args: [-p, com.example.app]", b""), (0, b"Starting: Intent", b""))

    Adb().start_app_monkey("dev", "com.example.app")

    assert runner.calls[1][4:6] == ["am", "start"]


def test_devices_parses_attached_list(fake_run):
    fake_run((0, b"List of devices attached\n127.0.0.1:5555\tdevice\nemulator-5554\toffline\n", b""))

    assert Adb().devices() == ["127.0.0.1:5555"]
