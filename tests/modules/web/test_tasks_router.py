import asyncio
import json

import pytest
from fastapi import HTTPException

from autoclick.modules.steps.loader import TaskFileLoader
from autoclick.modules.web.routers import tasks as tasks_router

PAYLOAD = {
    "id": 77,
    "name": "签到",
    "repeat_count": 2,
    "execution_count": 9,
    "steps": [
        {"id": 1, "type": "launch_app", "order": 0, "params": {"package": "com.example.app"}},
        {"id": 2, "type": "tap", "order": 1, "delay_ms": 500, "params": {"x": 10, "y": 20}},
    ],
}


def _import(session_factory, payload=PAYLOAD):
    return asyncio.run(tasks_router.import_task(payload=payload, session_factory=session_factory))


def test_import_creates_fresh_task(session_factory):
    view = _import(session_factory)

    assert view["id"] != 77
    assert view["execution_count"] == 0
    assert view["step_count"] == 2
    assert view["estimated_duration_ms"] >= 500

    listing = asyncio.run(tasks_router.list_tasks(enabled_only=False, session_factory=session_factory))
    assert listing["total"] == 1
    assert listing["tasks"][0]["name"] == "签到"


def test_import_invalid_payload_returns_400(session_factory):
    with pytest.raises(HTTPException) as exc:
        _import(session_factory, {"name": "空任务", "steps": []})
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        _import(session_factory, {"name": "坏步骤", "steps": [{"type": "teleport"}]})
    assert exc.value.status_code == 400

    for bad in ({"repeat_count": "many"}, {"steps": [dict(PAYLOAD["steps"][1], order="abc")]}):
        with pytest.raises(HTTPException) as exc:
            _import(session_factory, dict(PAYLOAD, **bad))
        assert exc.value.status_code == 400


def test_get_and_delete_task(session_factory):
    task_id = _import(session_factory)["id"]

    detail = asyncio.run(tasks_router.get_task(task_id, session_factory=session_factory))
    assert [s["type"] for s in detail["steps"]] == ["launch_app", "tap"]

    result = asyncio.run(tasks_router.delete_task(task_id, session_factory=session_factory))
    assert result == {"deleted": True, "task_id": task_id}

    for call in (tasks_router.get_task, tasks_router.delete_task):
        with pytest.raises(HTTPException) as exc:
            asyncio.run(call(task_id, session_factory=session_factory))
        assert exc.value.status_code == 404


def test_export_without_stats_and_to_file(session_factory, tmp_path):
    task_id = _import(session_factory)["id"]
    loader = TaskFileLoader(str(tmp_path))

    result = asyncio.run(
        tasks_router.export_task(task_id, to_file=True, loader=loader, session_factory=session_factory)
    )

    assert "execution_count" not in result["task"]
    written = json.loads((tmp_path / "签到.json").read_text(encoding="utf-8"))
    assert written["name"] == "签到"
    assert result["path"].endswith("签到.json")


def test_import_task_file(session_factory, tmp_path):
    (tmp_path / "daily.json").write_text(json.dumps(PAYLOAD, ensure_ascii=False), encoding="utf-8")
    loader = TaskFileLoader(str(tmp_path))

    files = asyncio.run(tasks_router.list_task_files(loader=loader))
    assert files["files"] == ["daily"]

    view = asyncio.run(tasks_router.import_task_file("daily", loader=loader, session_factory=session_factory))
    assert view["name"] == "签到"
    assert view["repeat_count"] == 2

    with pytest.raises(HTTPException) as exc:
        asyncio.run(tasks_router.import_task_file("missing", loader=loader, session_factory=session_factory))
    assert exc.value.status_code == 404
