import pytest
from sqlalchemy.orm import sessionmaker

from autoclick.db import init_db
from autoclick.db.base import make_engine


@pytest.fixture()
def session_factory():
    """内存 SQLite 会话工厂"""
    engine = make_engine("sqlite:///:memory:")
    init_db(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()
