"""
数据库基础配置
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from ..core.config import settings


def make_engine(database_url: str):
    """按数据库类型创建引擎

    SQLite:
      - check_same_thread=False: 允许跨线程使用（I/O 线程池写入必需）
      - timeout=30: busy_timeout 30秒，避免并发写入时 "database is locked"
      - 内存库使用 StaticPool，所有会话共享同一连接
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url)
    connect_args = {"check_same_thread": False, "timeout": 30}
    if ":memory:" in database_url:
        eng = create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
    else:
        eng = create_engine(database_url, connect_args=connect_args, pool_size=5, max_overflow=5)
        event.listen(eng, "connect", _set_sqlite_pragma)
    return eng


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """对每个新 SQLite 连接启用 WAL 模式和优化参数。"""
    cursor = dbapi_conn.cursor()
    # WAL 模式：允许并发读+单写
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# 创建数据库引擎
engine = make_engine(settings.database_url)

# 创建会话工厂
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 创建基类
Base = declarative_base()


def get_session_factory():
    """获取会话工厂（供需要自行管理会话的存储函数使用）"""
    return SessionLocal
