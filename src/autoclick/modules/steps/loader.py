"""
任务文件加载器

从目录加载 YAML / JSON 格式的任务定义，校验并缓存。
支持热重载：通过文件修改时间检测变更，自动重新加载。
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ...core.logger import logger
from ..executor.errors import ValidationError
from .models import Task
from .serializer import dumps_task, task_from_dict

_SUFFIXES = (".yaml", ".yml", ".json")


def _file_stem(name: str) -> str:
    """任务名转文件名：只保留最后一级，禁止跳出任务目录"""
    stem = Path(str(name).replace("\\", "/")).name.strip()
    if stem in ("", ".", ".."):
        raise ValidationError(f"非法任务文件名: {name!r}")
    return stem


@dataclass
class _CacheEntry:
    task: Task
    mtime: float


class TaskFileLoader:
    """任务文件加载器"""

    def __init__(self, base_dir: str = "assets/tasks"):
        self._base_dir = Path(base_dir)
        self._cache: Dict[str, _CacheEntry] = {}
        self._log = logger.bind(module="TaskFileLoader")

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _find(self, task_name: str) -> Optional[Path]:
        try:
            task_name = _file_stem(task_name)
        except ValidationError:
            return None
        for suffix in _SUFFIXES:
            path = self._base_dir / f"{task_name}{suffix}"
            if path.exists():
                return path
        return None

    def load(self, task_name: str) -> Optional[Task]:
        """加载指定任务文件。

        Args:
            task_name: 任务文件名（不含扩展名），依次查找 .yaml/.yml/.json

        Returns:
            解析后的 Task，文件不存在或校验失败返回 None
        """
        file_path = self._find(task_name)
        if file_path is None:
            self._log.warning(f"任务文件不存在: {self._base_dir / task_name}")
            return None

        current_mtime = os.path.getmtime(file_path)
        cached = self._cache.get(task_name)

        # 缓存命中且文件未修改
        if cached and cached.mtime == current_mtime:
            return cached.task

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                if file_path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)

            if not isinstance(data, dict):
                self._log.error(f"任务文件格式错误（非对象）: {file_path}")
                return None

            task = task_from_dict(data)
            task.validate()

            self._cache[task_name] = _CacheEntry(task=task, mtime=current_mtime)
            self._log.info(f"任务文件已加载: {file_path}")
            return task

        except (yaml.YAMLError, json.JSONDecodeError) as e:
            self._log.error(f"任务文件解析失败: {file_path}: {e}")
            return None
        except ValidationError as e:
            self._log.error(f"任务文件校验失败 [{task_name}]: {e}")
            return None

    def list_names(self) -> List[str]:
        if not self._base_dir.is_dir():
            return []
        names = {
            p.stem for p in self._base_dir.iterdir()
            if p.is_file() and p.suffix in _SUFFIXES
        }
        return sorted(names)

    def load_all(self) -> List[Task]:
        tasks = []
        for name in self.list_names():
            task = self.load(name)
            if task is not None:
                tasks.append(task)
        return tasks

    def export(self, task: Task, task_name: Optional[str] = None) -> Path:
        """以 JSON 格式导出任务，返回写入路径"""
        self._base_dir.mkdir(parents=True, exist_ok=True)
        name = _file_stem(task_name or task.name)
        path = self._base_dir / f"{name}.json"
        if self._base_dir.resolve() not in path.resolve().parents:
            raise ValidationError(f"导出路径超出任务目录: {path}")
        path.write_text(dumps_task(task), encoding="utf-8")
        self._cache.pop(name, None)
        self._log.info(f"任务已导出: {path}")
        return path


__all__ = ["TaskFileLoader"]
