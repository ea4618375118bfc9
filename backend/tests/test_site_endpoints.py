#!/usr/bin/env python3
"""
站点源接口测试

验证外壳资源与离线配置接口，并让缓存 Worker 通过 ASGITransport 从真实应用预缓存外壳。
"""

import asyncio
import os
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

# 将 backend 目录添加到 sys.path 中，便于按项目方式导入
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from app.core.config import settings
from app.main import app
from app.services.cache_worker import CacheWorker, RequestDestination
from conftest import TEST_ORIGIN


def _run(coro):
    """兼容无 pytest-asyncio 的环境，直接运行协程。"""
    return asyncio.run(coro)


@pytest.fixture(scope="module")
def client():
    """初始化 FastAPI 测试客户端（不触发 lifespan，避免创建数据库文件）"""
    return TestClient(app)


class TestShellResources:
    @pytest.mark.parametrize("path", ["/", "/cursos", "/preguntas", "/contacto"])
    def test_pages(self, client: TestClient, path):
        response = client.get(path)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert settings.PROJECT_NAME in response.text

    def test_manifest(self, client: TestClient):
        response = client.get("/manifest.json")
        assert response.status_code == 200
        manifest = response.json()
        assert manifest["name"] == settings.PROJECT_NAME
        assert manifest["start_url"] == "/"

    def test_images(self, client: TestClient):
        placeholder = client.get("/placeholder.svg")
        assert placeholder.status_code == 200
        assert placeholder.headers["content-type"].startswith("image/svg+xml")

        logo = client.get("/images/adultech-logo.png")
        assert logo.status_code == 200
        assert logo.content.startswith(b"\x89PNG")


def test_offline_config(client: TestClient):
    response = client.get(f"{settings.API_V1_STR}/offline/config")
    assert response.status_code == 200
    body = response.json()
    assert body["code"] == 200
    assert body["data"]["static_cache"] == f"{settings.STORAGE_NAMESPACE}-static-{settings.CACHE_VERSION}"
    assert body["data"]["dynamic_cache"] == f"{settings.STORAGE_NAMESPACE}-dynamic-{settings.CACHE_VERSION}"
    assert body["data"]["shell_resources"] == settings.SHELL_RESOURCES


def test_worker_precaches_real_shell(cache_storage):
    """Worker 通过 ASGITransport 从应用本身安装全部外壳资源，之后离线也能打开页面"""
    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=TEST_ORIGIN) as network:
            worker = CacheWorker(cache_storage, network)
            await worker.install()
        return worker

    worker = _run(scenario())
    cached = cache_storage.open(worker.static_generation).keys()
    assert len(cached) == len(settings.SHELL_RESOURCES)
    assert cache_storage.match("/placeholder.svg").headers["content-type"].startswith("image/svg+xml")

    async def offline_navigation():
        def unreachable(request):
            raise httpx.ConnectError("offline", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable)) as offline:
            worker.client = offline
            return await worker.handle_fetch(httpx.Request("GET", f"{TEST_ORIGIN}/cursos/3"), RequestDestination.DOCUMENT)

    response = _run(offline_navigation())
    assert response.status_code == 200
    assert "Inicio" in response.text
