"""
Engine host: runs an ExecutionEngine on a dedicated event-loop thread.

The engine mutates its state only on its own loop. Callers on other threads
(web handlers, CLI) go through the host, which marshals every call onto that
loop with ``asyncio.run_coroutine_threadsafe`` and blocks for the result.
"""
from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, Optional

from ...core.logger import logger
from ..steps.models import Task
from .engine import ExecutionEngine
from .errors import ExecutionError
from .types import ExecutionSummary


class EngineHost:
    """Owns one engine and the loop thread it runs on."""

    def __init__(self, engine: Optional[ExecutionEngine] = None, *, call_timeout: float = 10.0) -> None:
        self.engine = engine or ExecutionEngine()
        self.call_timeout = call_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.logger = logger.bind(module="EngineHost")

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_alive():
                return
            self._loop = asyncio.new_event_loop()
            ready = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(ready,),
                name="engine-loop",
                daemon=True,
            )
            self._thread.start()
            ready.wait()
        self.logger.info("Engine loop thread started")

    def _run_loop(self, ready: threading.Event) -> None:
        loop = self._loop
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop any active run, then stop the loop and join the thread."""
        with self._lock:
            if not self.is_alive():
                return
            try:
                self.call(self.engine.stop)
            except Exception as exc:
                self.logger.warning(f"Stopping engine on shutdown failed: {exc}")
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=timeout)
            self._thread = None
        self.logger.info("Engine loop thread stopped")

    def call(self, func, *args, **kwargs) -> Any:
        """Run a synchronous engine method on the engine loop and return its result."""
        if not self.is_alive():
            raise RuntimeError("EngineHost is not started")
        if threading.current_thread() is self._thread:
            # already on the engine loop, e.g. an observer calling stop()
            return func(*args, **kwargs)

        async def _invoke():
            return func(*args, **kwargs)

        future = asyncio.run_coroutine_threadsafe(_invoke(), self._loop)
        return future.result(timeout=self.call_timeout)

    # ── engine operations ──

    def execute(self, task: Task, **kwargs) -> bool:
        return self.call(self.engine.execute, task, **kwargs)

    def try_execute(self, task: Task, **kwargs) -> Optional[ExecutionError]:
        """Start a run; return the rejection error, or None when it started."""

        def _start():
            if self.engine.execute(task, **kwargs):
                return None
            return self.engine.last_error

        return self.call(_start)

    def pause(self) -> bool:
        return self.call(self.engine.pause)

    def resume(self) -> bool:
        return self.call(self.engine.resume)

    def stop(self) -> bool:
        return self.call(self.engine.stop)

    def wait(self, timeout: Optional[float] = None) -> Optional[ExecutionSummary]:
        """Block until the current run reaches a terminal state."""
        if not self.is_alive():
            raise RuntimeError("EngineHost is not started")
        future = asyncio.run_coroutine_threadsafe(self.engine.wait(), self._loop)
        return future.result(timeout=timeout)

    def snapshot(self) -> Dict[str, Any]:
        return self.call(self._snapshot)

    def _snapshot(self) -> Dict[str, Any]:
        engine = self.engine
        task = engine.task
        state = engine.state
        step = engine.current_step()
        return {
            "status": engine.status().value,
            "task_id": task.id if task else None,
            "task_name": task.name if task else None,
            "progress": engine.progress(),
            "current_step_id": step.id if step else None,
            "current_step": step.summary() if step else None,
            "iteration": state.current_repeat_iteration if state else 0,
            "repeat_count": task.repeat_count if task else 0,
            "successful_steps": state.successful_step_count if state else 0,
            "last_error": str(engine.last_error) if engine.last_error else None,
            "last_summary": engine.last_summary.to_dict() if engine.last_summary else None,
        }


__all__ = ["EngineHost"]
