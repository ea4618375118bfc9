from typing import List, Optional
from sqlalchemy.orm import Session
from app.crud.base import CRUDBase, SortDirection
from app.models.offline_cache import CacheBucket, CacheEntry
from app.schemas.offline import CacheBucketCreate, CacheEntryCreate, CacheEntryUpdate


class CRUDCacheBucket(CRUDBase[CacheBucket, CacheBucketCreate, CacheBucketCreate]):
    def get_by_generation(self, db: Session, *, namespace: str, kind: str, version: str) -> Optional[CacheBucket]:
        return self.get_first(db, filter_conditions={"namespace": namespace, "kind": kind, "version": version})

    def get_or_create(self, db: Session, *, obj_in: CacheBucketCreate) -> CacheBucket:
        """
        打开一个缓存代，不存在时创建
        """
        bucket = self.get_by_generation(db, namespace=obj_in.namespace, kind=obj_in.kind, version=obj_in.version)
        if bucket is None:
            bucket = self.create(db, obj_in=obj_in)
        return bucket

    def list_by_namespace(self, db: Session, *, namespace: str) -> List[CacheBucket]:
        """按创建顺序列出一个命名空间下的所有缓存代"""
        return self.get_multi(
            db,
            limit=None,
            filter_conditions={"namespace": namespace},
            sort_by=[("id", SortDirection.ASC)]
        )


class CRUDCacheEntry(CRUDBase[CacheEntry, CacheEntryCreate, CacheEntryUpdate]):
    def get_by_url(self, db: Session, *, bucket_id: int, url: str) -> Optional[CacheEntry]:
        return self.get_first(db, filter_conditions={"bucket_id": bucket_id, "url": url})

    def upsert(self, db: Session, *, obj_in: CacheEntryCreate) -> CacheEntry:
        """
        写入一个缓存条目；同一缓存代中相同URL的条目被覆盖，不会重复
        """
        existing = self.get_by_url(db, bucket_id=obj_in.bucket_id, url=obj_in.url)
        if existing is None:
            return self.create(db, obj_in=obj_in)
        return self.update(
            db,
            db_obj=existing,
            obj_in=CacheEntryUpdate(status_code=obj_in.status_code, headers=obj_in.headers, body=obj_in.body)
        )

    def list_by_bucket(self, db: Session, *, bucket_id: int) -> List[CacheEntry]:
        return self.get_multi(
            db,
            limit=None,
            filter_conditions={"bucket_id": bucket_id},
            sort_by=[("id", SortDirection.ASC)]
        )


# 实例化并暴露给服务层使用
cache_bucket = CRUDCacheBucket(CacheBucket)
cache_entry = CRUDCacheEntry(CacheEntry)
