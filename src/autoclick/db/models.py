"""
数据库模型定义
"""
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text
from .base import Base


class TaskRecord(Base):
    """任务表（步骤以 JSON 存储）"""
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(String(500), default="")
    steps = Column(JSON, default=list)
    repeat_count = Column(Integer, default=1)
    repeat_delay_ms = Column(Integer, default=0)
    enabled = Column(Boolean, default=True)
    execution_count = Column(Integer, default=0)
    success_count = Column(Integer, default=0)
    last_executed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ExecutionLog(Base):
    """执行日志表（每次执行结束写入一行）"""
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, nullable=True, index=True)
    task_name = Column(String(100), default="")
    status = Column(String(20), nullable=False, index=True)  # completed|failed|stopped
    success = Column(Boolean, default=False)
    steps_completed = Column(Integer, default=0)
    duration_ms = Column(Integer, default=0)
    step_id = Column(String(64), nullable=True)
    message = Column(Text, nullable=False, default="")
    error = Column(Text, nullable=True)
    ts = Column(DateTime, default=datetime.utcnow, index=True)
