from typing import Optional

import httpx
import redis
import redis.asyncio as aioredis

from app.core.config import settings
from app.core.connectivity import ConnectivityMonitor
from app.core.storage import InMemoryStorage, KeyValueStorage, RedisStorage
from app.db.database import SessionLocal
from app.services.cache_storage import CacheStorage
from app.services.cache_worker import CacheWorker
from app.services.offline_controller import OfflineCacheController
from app.services.progress_store import ProgressStore
from app.services.worker_container import ServiceWorkerContainer


_redis_client_instance = None

def get_redis_client() -> redis.Redis:
    """
    获取 Redis 客户端单例实例
    """
    global _redis_client_instance
    if _redis_client_instance is None:
        # 存储值是 JSON 字符串，直接解码为 str
        _redis_client_instance = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True
        )
    return _redis_client_instance


def get_aioredis() -> aioredis.Redis:
    """
    获取异步 Redis 客户端，供订阅器使用（每次重连创建新连接）
    """
    return aioredis.from_url(settings.REDIS_URL)


# --- 进度存储 ---

_progress_storage_instance: Optional[KeyValueStorage] = None

def get_progress_storage() -> KeyValueStorage:
    """
    获取进度使用的键值存储（单例）

    启用 Redis 转发时使用 Redis，多个进程共享同一份进度；否则使用进程内存储。
    """
    global _progress_storage_instance
    if _progress_storage_instance is None:
        if settings.ENABLE_REDIS_RELAY:
            _progress_storage_instance = RedisStorage(get_redis_client())
        else:
            _progress_storage_instance = InMemoryStorage()
    return _progress_storage_instance


def get_progress_store() -> ProgressStore:
    return ProgressStore(storage=get_progress_storage(), namespace=settings.STORAGE_NAMESPACE)


# --- 离线缓存 ---

def get_cache_storage() -> CacheStorage:
    return CacheStorage(SessionLocal, namespace=settings.STORAGE_NAMESPACE, origin=settings.ORIGIN)


def create_cache_worker(client: Optional[httpx.AsyncClient] = None) -> CacheWorker:
    """
    创建缓存 Worker 实例，注入所有依赖
    """
    if client is None:
        client = httpx.AsyncClient(timeout=settings.NETWORK_TIMEOUT_SECONDS)
    return CacheWorker(caches=get_cache_storage(), client=client, version=settings.CACHE_VERSION)


_worker_container_instance = None

def get_worker_container() -> ServiceWorkerContainer:
    """
    获取站点源共享的 Worker 容器（单例模式）
    """
    global _worker_container_instance
    if _worker_container_instance is None:
        _worker_container_instance = ServiceWorkerContainer()
    return _worker_container_instance


def create_offline_controller(client: Optional[httpx.AsyncClient] = None) -> OfflineCacheController:
    """
    创建页面侧的离线缓存控制器：共享站点源的 Worker 容器，每次注册创建新的 Worker
    """
    return OfflineCacheController(
        container=get_worker_container(),
        connectivity=ConnectivityMonitor(),
        worker_factory=lambda: create_cache_worker(client),
        timeout=settings.MESSAGE_TIMEOUT_SECONDS,
    )
