"""
主程序入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .core.logger import logger
from .core.config import settings
from .core.thread_pool import device_io_pool_stats, shutdown_pools
from .db import init_db
from .modules.executor.adb_dispatcher import AdbDispatcher
from .modules.executor.engine import ExecutionEngine
from .modules.executor.host import EngineHost
from .modules.executor.observer import CompositeObserver, LoggingObserver
from .modules.executor.recorder import RunRecorder
from .modules.web import register_routers

# 创建FastAPI应用
app = FastAPI(
    title="AutoClick 自动化执行服务",
    description="UI 自动化任务执行引擎",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:9000",
        "http://127.0.0.1:9000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_routers(app)


def create_executor() -> EngineHost:
    """组装执行引擎：ADB 调度器 + 日志/持久化观察者"""
    observer = CompositeObserver([LoggingObserver(), RunRecorder()])
    engine = ExecutionEngine(AdbDispatcher(), observer)
    return EngineHost(engine)


@app.on_event("startup")
async def startup():
    """应用启动事件"""
    logger.info("应用启动中...")
    init_db()
    logger.info("数据库初始化完成")

    host = create_executor()
    host.start()
    app.state.executor = host
    logger.info("执行器启动完成")

    logger.info(f"应用启动完成，监听 {settings.api_host}:{settings.api_port}")


@app.on_event("shutdown")
async def shutdown():
    """应用关闭事件"""
    logger.info("应用关闭中...")
    host = getattr(app.state, "executor", None)
    if host is not None:
        host.shutdown()
    shutdown_pools()
    logger.info("应用关闭完成")


@app.get("/")
async def root():
    """根路径"""
    return {"message": "AutoClick API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """健康检查"""
    host = getattr(app.state, "executor", None)
    return {
        "status": "healthy",
        "executor": host.is_alive() if host is not None else False,
        "device_io": device_io_pool_stats(),
    }


def run() -> None:
    """命令行入口：启动 uvicorn"""
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
