#!/usr/bin/env python3
"""
离线缓存存储测试

使用内存 SQLite 验证缓存代的创建、读写、删除以及全有或全无的预填充。
"""

import asyncio
import os
import sys

import httpx
import pytest

# 将 backend 目录添加到 sys.path 中，便于按项目方式导入
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from app.services.cache_storage import (
    CacheGeneration,
    CacheInstallError,
    CacheStorage,
    GenerationKind,
)
from conftest import TEST_ORIGIN, FakeSite

STATIC_V1 = CacheGeneration("adultech", GenerationKind.STATIC, "v1")
DYNAMIC_V1 = CacheGeneration("adultech", GenerationKind.DYNAMIC, "v1")
STATIC_V2 = CacheGeneration("adultech", GenerationKind.STATIC, "v2")


def _run(coro):
    """兼容无 pytest-asyncio 的环境，直接运行协程。"""
    return asyncio.run(coro)


def test_generation_name():
    assert STATIC_V1.name == "adultech-static-v1"
    assert DYNAMIC_V1.name == "adultech-dynamic-v1"
    # 按字段比较，而不是按名称子串
    assert STATIC_V1 != STATIC_V2
    assert STATIC_V1 == CacheGeneration("adultech", GenerationKind.STATIC, "v1")


def test_resolve_url(cache_storage: CacheStorage):
    assert cache_storage.resolve_url("/cursos") == f"{TEST_ORIGIN}/cursos"
    assert cache_storage.resolve_url("/cursos?page=2#top") == f"{TEST_ORIGIN}/cursos?page=2"
    assert cache_storage.resolve_url(httpx.Request("GET", f"{TEST_ORIGIN}/")) == f"{TEST_ORIGIN}/"


def test_put_and_match(cache_storage: CacheStorage):
    cache = cache_storage.open(DYNAMIC_V1)
    cache.put("/api/cursos/1", httpx.Response(200, json={"id": 1}))

    response = cache.match(f"{TEST_ORIGIN}/api/cursos/1")
    assert response is not None
    assert response.status_code == 200
    assert response.json() == {"id": 1}
    assert cache.match("/api/cursos/2") is None


def test_put_overwrites_same_url(cache_storage: CacheStorage):
    cache = cache_storage.open(DYNAMIC_V1)
    cache.put("/api/cursos/1", httpx.Response(200, json={"version": 1}))
    cache.put("/api/cursos/1", httpx.Response(200, json={"version": 2}))

    assert cache.keys() == [f"{TEST_ORIGIN}/api/cursos/1"]
    assert cache.match("/api/cursos/1").json() == {"version": 2}


def test_open_is_idempotent_and_keys_keep_creation_order(cache_storage: CacheStorage):
    first = cache_storage.open(STATIC_V1)
    cache_storage.open(DYNAMIC_V1)
    again = cache_storage.open(STATIC_V1)

    assert first.bucket_id == again.bucket_id
    assert cache_storage.keys() == [STATIC_V1, DYNAMIC_V1]
    assert cache_storage.has(DYNAMIC_V1) is True
    assert cache_storage.has(STATIC_V2) is False


def test_delete_generation_removes_entries(cache_storage: CacheStorage):
    cache_storage.open(STATIC_V1).put("/", httpx.Response(200, text="home"))

    assert cache_storage.delete(STATIC_V1) is True
    assert cache_storage.delete(STATIC_V1) is False
    assert cache_storage.keys() == []
    assert cache_storage.match("/") is None


def test_delete_entry(cache_storage: CacheStorage):
    cache = cache_storage.open(DYNAMIC_V1)
    cache.put("/a", httpx.Response(200, text="a"))
    assert cache.delete("/a") is True
    assert cache.delete("/a") is False


def test_match_searches_all_generations(cache_storage: CacheStorage):
    cache_storage.open(STATIC_V1).put("/", httpx.Response(200, text="home"))
    cache_storage.open(DYNAMIC_V1).put("/api/cursos/3", httpx.Response(200, text="course"))

    assert cache_storage.match("/").text == "home"
    assert cache_storage.match("/api/cursos/3").text == "course"


def test_cached_entries_survive_new_storage_instance(session_factory):
    """缓存持久化在数据库中，重新创建存储对象后依然可读"""
    CacheStorage(session_factory, "adultech", TEST_ORIGIN).open(DYNAMIC_V1).put(
        "/api/cursos/5", httpx.Response(200, json={"id": 5})
    )
    reopened = CacheStorage(session_factory, "adultech", TEST_ORIGIN)
    assert reopened.match("/api/cursos/5").json() == {"id": 5}


def test_namespaces_are_isolated(session_factory):
    CacheStorage(session_factory, "adultech", TEST_ORIGIN).open(STATIC_V1)
    other = CacheStorage(session_factory, "other", TEST_ORIGIN)
    assert other.keys() == []


def test_add_all_stores_every_resource(cache_storage: CacheStorage, site: FakeSite):
    async def scenario():
        async with site.client() as client:
            await cache_storage.open(STATIC_V1).add_all(["/", "/placeholder.svg"], client.send)

    _run(scenario())
    cache = cache_storage.open(STATIC_V1)
    assert cache.keys() == [f"{TEST_ORIGIN}/", f"{TEST_ORIGIN}/placeholder.svg"]
    assert cache.match("/placeholder.svg").content == b"<svg/>"


def test_add_all_is_all_or_nothing(cache_storage: CacheStorage):
    site = FakeSite(failing_paths={"/manifest.json"})

    async def scenario():
        async with site.client() as client:
            await cache_storage.open(STATIC_V1).add_all(["/", "/manifest.json"], client.send)

    with pytest.raises(CacheInstallError):
        _run(scenario())
    assert cache_storage.open(STATIC_V1).keys() == []


def test_add_all_network_error(cache_storage: CacheStorage, site: FakeSite):
    site.online = False

    async def scenario():
        async with site.client() as client:
            await cache_storage.open(STATIC_V1).add_all(["/"], client.send)

    with pytest.raises(CacheInstallError):
        _run(scenario())
