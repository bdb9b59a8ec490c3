"""
全局线程池管理

提供统一的 ThreadPoolExecutor 实例，供设备调度器和数据库写入等
需要将阻塞操作 offload 到线程的模块使用。

- I/O 池：同步 DB 写入等 I/O 密集操作
- 设备 I/O 池：每台设备一个单线程池，保证同一设备上的 adb 命令串行
"""
from __future__ import annotations

import asyncio
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

from .config import settings
from .logger import logger

_io_pool: Optional[ThreadPoolExecutor] = None
_device_io_pools: Dict[str, ThreadPoolExecutor] = {}
_device_io_inflight: Dict[str, int] = {}
_device_io_lock = threading.Lock()
_io_pool_lock = threading.Lock()


def _auto_io_pool_size() -> int:
    """根据 CPU 核数自动计算 I/O 线程池大小。

    规则: max(4, cpu_count)，上限 16。
    """
    cpu = os.cpu_count() or 4
    return min(max(4, cpu), 16)


def get_io_pool() -> ThreadPoolExecutor:
    """获取共享 I/O 线程池。"""
    global _io_pool
    with _io_pool_lock:
        if _io_pool is None:
            size = settings.io_thread_pool_size
            if size <= 0:
                size = _auto_io_pool_size()
            _io_pool = ThreadPoolExecutor(
                max_workers=size,
                thread_name_prefix="io",
            )
            logger.info("I/O 线程池已创建: max_workers={}", size)
        return _io_pool


def get_device_io_pool(io_key: str) -> ThreadPoolExecutor:
    """获取指定设备的单线程 I/O 池。"""
    key = str(io_key or "").strip()
    if not key:
        return get_io_pool()

    with _device_io_lock:
        pool = _device_io_pools.get(key)
        if pool is None:
            index = len(_device_io_pools) + 1
            pool = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=f"device-io-{index}",
            )
            _device_io_pools[key] = pool
            logger.info("设备 I/O 线程池已创建: io_key={}", key)
        return pool


async def run_in_io(func, *args):
    """在 I/O 线程池中执行同步函数并 await 结果。"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(get_io_pool(), func, *args)


async def run_in_device_io(io_key: str, func, *args):
    """在指定设备单线程 I/O 池中执行同步函数并 await 结果。"""
    key = str(io_key or "").strip()
    if not key:
        return await run_in_io(func, *args)

    loop = asyncio.get_running_loop()
    pool = get_device_io_pool(key)

    with _device_io_lock:
        _device_io_inflight[key] = _device_io_inflight.get(key, 0) + 1

    try:
        return await loop.run_in_executor(pool, func, *args)
    finally:
        with _device_io_lock:
            current = _device_io_inflight.get(key, 0)
            if current <= 1:
                _device_io_inflight.pop(key, None)
            else:
                _device_io_inflight[key] = current - 1


def device_io_pool_stats() -> dict:
    """返回设备 I/O 池统计。"""
    with _device_io_lock:
        return {
            "pool_count": len(_device_io_pools),
            "active_keys": len(_device_io_inflight),
        }


def shutdown_pools() -> None:
    """关闭所有线程池（在 app shutdown 时调用）。"""
    global _io_pool
    with _io_pool_lock:
        if _io_pool:
            _io_pool.shutdown(wait=False)
            _io_pool = None
    with _device_io_lock:
        for pool in _device_io_pools.values():
            pool.shutdown(wait=False)
        _device_io_pools.clear()
        _device_io_inflight.clear()
    logger.info("线程池已关闭")
