import os
import sys

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# 将 backend 目录添加到 sys.path 中，便于按项目方式导入
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from app.db.init_db import init_db
from app.services.cache_storage import CacheStorage

TEST_ORIGIN = "http://localhost:8000"


@pytest.fixture
def session_factory():
    """内存 SQLite，所有连接共享同一个数据库"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def cache_storage(session_factory) -> CacheStorage:
    return CacheStorage(session_factory, namespace="adultech", origin=TEST_ORIGIN)


class FakeSite:
    """模拟站点源：记录请求次数，可以切换为离线"""

    def __init__(self, failing_paths=()):
        self.online = True
        self.failing_paths = set(failing_paths)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.online:
            raise httpx.ConnectError("network unreachable", request=request)
        path = request.url.path
        if path in self.failing_paths:
            return httpx.Response(404, text="not found")
        if path == "/placeholder.svg":
            return httpx.Response(200, content=b"<svg/>", headers={"Content-Type": "image/svg+xml"})
        return httpx.Response(200, text=f"page {path}", headers={"Content-Type": "text/html"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()
