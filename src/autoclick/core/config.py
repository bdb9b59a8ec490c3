"""
核心配置模块
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """系统配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # 数据库
    database_url: str = Field(default="sqlite:///./autoclick.db")

    # 设备
    adb_path: str = Field(default="adb")
    adb_addr: str = Field(default="127.0.0.1:5555")

    # 任务文件目录（导入/导出）
    tasks_dir: str = Field(default="assets/tasks")

    # Web服务
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=9001)

    # 日志
    log_level: str = Field(default="INFO")
    log_path: str = Field(default="./logs")
    log_retention_days: int = Field(default=3)
    log_console_enabled: bool = Field(default=True)
    log_enqueue_enabled: bool = Field(default=False)
    log_file_format: str = Field(default="text")  # text|json
    log_access_enabled: bool = Field(default=True)
    log_access_path: str = Field(default="")
    log_rotation: str = Field(default="00:00")

    # 线程池（<=0 表示自动）
    io_thread_pool_size: int = Field(default=0)

    # 执行引擎
    step_timeout_grace_ms: int = Field(default=5000)

    # 执行日志保留策略
    execution_log_max_entries: int = Field(default=1000)
    execution_log_max_age_days: int = Field(default=30)


# 全局配置实例
settings = Settings()
