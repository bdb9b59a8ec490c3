"""
日志配置模块
"""
import logging
import sys
from pathlib import Path
from typing import Dict

from loguru import logger

from .config import settings

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
_TASK_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"

_ACCESS_LOGGER = "uvicorn.access"
_BRIDGED_LOGGERS = ("uvicorn", "uvicorn.error", _ACCESS_LOGGER, "fastapi")

_configured = False
_task_sinks: Dict[str, int] = {}


class InterceptHandler(logging.Handler):
    """将标准库 logging 的记录转发到 loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(stdlib_logger=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def _is_access_record(record) -> bool:
    return record["extra"].get("stdlib_logger") == _ACCESS_LOGGER


def _not_access_record(record) -> bool:
    return not _is_access_record(record)


def _console_stream():
    for stream in (sys.stdout, sys.stderr, sys.__stdout__, sys.__stderr__):
        if stream is not None:
            return stream
    return None


def _bridge_stdlib_logging() -> None:
    handler = InterceptHandler()
    for name in _BRIDGED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.propagate = False
        std_logger.setLevel(logging.INFO)


def setup_logger(force: bool = False):
    """配置日志系统

    Args:
        force: 已配置过时是否强制重建所有 sink
    """
    global _configured
    if _configured and not force:
        return logger

    # 移除默认处理器及之前注册的 sink
    logger.remove()
    _task_sinks.clear()

    log_dir = Path(settings.log_path)
    log_dir.mkdir(parents=True, exist_ok=True)
    enqueue = settings.log_enqueue_enabled
    missing_console = False

    # 控制台输出
    if settings.log_console_enabled:
        stream = _console_stream()
        if stream is None:
            missing_console = True
        else:
            logger.add(
                stream,
                level=settings.log_level,
                format=_CONSOLE_FORMAT,
                filter=_not_access_record,
                enqueue=enqueue,
            )

    # 文件输出 - 全局日志
    logger.add(
        log_dir / "app_{time:YYYY-MM-DD}.log",
        level=settings.log_level,
        format=_FILE_FORMAT,
        rotation=settings.log_rotation,
        retention=f"{settings.log_retention_days} days",
        encoding="utf-8",
        serialize=settings.log_file_format == "json",
        filter=_not_access_record,
        enqueue=enqueue,
    )

    # 错误日志单独记录
    logger.add(
        log_dir / "error_{time:YYYY-MM-DD}.log",
        level="ERROR",
        format=_FILE_FORMAT,
        rotation=settings.log_rotation,
        retention=f"{settings.log_retention_days * 2} days",
        encoding="utf-8",
        enqueue=enqueue,
    )

    # HTTP 访问日志与应用日志分离
    if settings.log_access_enabled:
        access_dir = Path(settings.log_access_path) if settings.log_access_path else log_dir
        access_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            access_dir / "access_{time:YYYY-MM-DD}.log",
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {message}",
            rotation=settings.log_rotation,
            retention=f"{settings.log_retention_days} days",
            encoding="utf-8",
            filter=_is_access_record,
            enqueue=enqueue,
        )

    _bridge_stdlib_logging()
    _configured = True

    if missing_console:
        logger.warning("未检测到可用控制台输出流，已仅启用文件日志")

    return logger


def get_task_logger(task_id):
    """获取任务专用日志器（同一任务复用同一个文件 sink）"""
    key = str(task_id)
    task_logger = logger.bind(task_id=key)
    if key in _task_sinks:
        return task_logger

    log_dir = Path(settings.log_path) / "tasks"
    log_dir.mkdir(parents=True, exist_ok=True)

    _task_sinks[key] = logger.add(
        log_dir / f"task_{key}_{{time:YYYY-MM-DD}}.log",
        level=settings.log_level,
        format=_TASK_FORMAT,
        rotation=settings.log_rotation,
        retention=f"{settings.log_retention_days} days",
        encoding="utf-8",
        filter=lambda record: record["extra"].get("task_id") == key,
        enqueue=settings.log_enqueue_enabled,
    )
    return task_logger


# 初始化日志系统
logger = setup_logger()
