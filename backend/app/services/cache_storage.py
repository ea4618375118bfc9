# backend/app/services/cache_storage.py
"""
离线缓存存储（对应浏览器的 Cache Storage）

缓存按"缓存代"分桶：静态代在 Worker 安装时预填充应用外壳资源，
动态代保存写穿透得到的内容以及用户主动下载的课程数据。
所有缓存代都持久化在数据库中，进程重启后依然可用。
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Union

import httpx
from sqlalchemy.orm import Session, sessionmaker

from app.crud.crud_offline_cache import cache_bucket, cache_entry
from app.models.offline_cache import CacheBucket, CacheEntry
from app.schemas.offline import CacheBucketCreate, CacheEntryCreate

logger = logging.getLogger(__name__)

RequestLike = Union[httpx.Request, httpx.URL, str]
Fetcher = Callable[[httpx.Request], Awaitable[httpx.Response]]


class CacheInstallError(Exception):
    """预填充缓存失败（全有或全无）"""


class GenerationKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class CacheGeneration:
    """缓存代的结构化标识，激活时按字段比较"""
    namespace: str
    kind: GenerationKind
    version: str

    @property
    def name(self) -> str:
        return f"{self.namespace}-{self.kind.value}-{self.version}"

    @classmethod
    def from_bucket(cls, bucket: CacheBucket) -> "CacheGeneration":
        return cls(namespace=bucket.namespace, kind=GenerationKind(bucket.kind), version=bucket.version)


def _entry_to_response(entry: CacheEntry) -> httpx.Response:
    return httpx.Response(
        status_code=entry.status_code,
        headers=entry.headers or {},
        content=entry.body or b"",
        request=httpx.Request("GET", entry.url),
    )


class Cache:
    """单个缓存代的句柄"""

    def __init__(self, storage: "CacheStorage", generation: CacheGeneration, bucket_id: int):
        self._storage = storage
        self.generation = generation
        self.bucket_id = bucket_id

    def put(self, request: RequestLike, response: httpx.Response) -> None:
        """
        保存一对请求/响应，相同URL覆盖旧条目

        Args:
            request: 请求、URL或路径（相对路径按站点源解析）
            response: 已读取内容的响应
        """
        url = self._storage.resolve_url(request)
        headers = {key: value for key, value in response.headers.items()
                   if key.lower() not in ("content-length", "content-encoding", "transfer-encoding")}
        with self._storage.session() as db:
            cache_entry.upsert(db, obj_in=CacheEntryCreate(
                bucket_id=self.bucket_id,
                url=url,
                status_code=response.status_code,
                headers=headers,
                body=response.content,
            ))

    def match(self, request: RequestLike) -> Optional[httpx.Response]:
        url = self._storage.resolve_url(request)
        with self._storage.session() as db:
            entry = cache_entry.get_by_url(db, bucket_id=self.bucket_id, url=url)
            return _entry_to_response(entry) if entry is not None else None

    def keys(self) -> List[str]:
        with self._storage.session() as db:
            return [entry.url for entry in cache_entry.list_by_bucket(db, bucket_id=self.bucket_id)]

    def delete(self, request: RequestLike) -> bool:
        url = self._storage.resolve_url(request)
        with self._storage.session() as db:
            entry = cache_entry.get_by_url(db, bucket_id=self.bucket_id, url=url)
            if entry is None:
                return False
            cache_entry.remove(db, obj_id=entry.id)
            return True

    async def add_all(self, requests: Iterable[RequestLike], fetch: Fetcher) -> None:
        """
        获取全部资源并写入缓存：任一资源失败时不写入任何内容

        Raises:
            CacheInstallError: 任一请求失败或返回非2xx状态
        """
        fetched = []
        for request in requests:
            url = self._storage.resolve_url(request)
            try:
                response = await fetch(httpx.Request("GET", url))
            except httpx.HTTPError as e:
                raise CacheInstallError(f"Request for {url} failed: {e}") from e
            if not response.is_success:
                raise CacheInstallError(f"Request for {url} returned status {response.status_code}")
            fetched.append((url, response))

        for url, response in fetched:
            self.put(url, response)


class CacheStorage:
    """
    一个站点源下所有缓存代的集合

    Attributes:
        namespace: 缓存代所属的命名空间
        origin: 站点源，用于把相对路径解析成绝对URL
    """

    def __init__(self, session_factory: sessionmaker, namespace: str, origin: str):
        self._session_factory = session_factory
        self.namespace = namespace
        self.origin = httpx.URL(origin)

    def session(self) -> Session:
        return self._session_factory()

    def resolve_url(self, request: RequestLike) -> str:
        if isinstance(request, httpx.Request):
            url = request.url
        else:
            url = self.origin.join(str(request))
        # 规范化为 scheme://host[:port]/path?query，忽略片段
        return f"{url.scheme}://{url.netloc.decode('ascii')}{url.raw_path.decode('ascii')}"

    def open(self, generation: CacheGeneration) -> Cache:
        """打开缓存代，不存在时创建"""
        with self.session() as db:
            bucket = cache_bucket.get_or_create(db, obj_in=CacheBucketCreate(
                namespace=generation.namespace,
                kind=generation.kind.value,
                version=generation.version,
            ))
            return Cache(self, generation, bucket.id)

    def has(self, generation: CacheGeneration) -> bool:
        with self.session() as db:
            return self._get_bucket(db, generation) is not None

    def keys(self) -> List[CacheGeneration]:
        """按创建顺序列出所有缓存代"""
        with self.session() as db:
            return [CacheGeneration.from_bucket(bucket)
                    for bucket in cache_bucket.list_by_namespace(db, namespace=self.namespace)]

    def delete(self, generation: CacheGeneration) -> bool:
        with self.session() as db:
            bucket = self._get_bucket(db, generation)
            if bucket is None:
                return False
            cache_bucket.remove(db, obj_id=bucket.id)
            return True

    def match(self, request: RequestLike) -> Optional[httpx.Response]:
        """在所有缓存代中查找请求，返回第一个命中的响应"""
        url = self.resolve_url(request)
        with self.session() as db:
            for bucket in cache_bucket.list_by_namespace(db, namespace=self.namespace):
                entry = cache_entry.get_by_url(db, bucket_id=bucket.id, url=url)
                if entry is not None:
                    return _entry_to_response(entry)
        return None

    def _get_bucket(self, db: Session, generation: CacheGeneration) -> Optional[CacheBucket]:
        return cache_bucket.get_by_generation(
            db,
            namespace=generation.namespace,
            kind=generation.kind.value,
            version=generation.version,
        )
