from sqlalchemy import Column, Integer, String, DateTime, JSON, LargeBinary, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, UTC
from app.db.base_class import Base


class CacheBucket(Base):
    """缓存代模型

    一个带版本的缓存桶（静态或动态）。缓存代的身份由 namespace、kind、version
    三个字段共同确定，激活新版本时按字段比较，而不是匹配名称字符串。

    Attributes:
        id: 自增ID
        namespace: 站点命名空间，例如 'adultech'
        kind: 'static' 或 'dynamic'
        version: 版本标签，例如 'v1'
        created_at: 创建时间
    """
    __tablename__ = "cache_buckets"
    __table_args__ = (UniqueConstraint("namespace", "kind", "version", name="uq_cache_bucket_generation"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace = Column(String, index=True, nullable=False)
    kind = Column(String, nullable=False)
    version = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    entries = relationship("CacheEntry", back_populates="bucket", cascade="all, delete-orphan")


class CacheEntry(Base):
    """缓存条目模型

    缓存桶中的一对请求/响应，请求以绝对URL作为键，同一个桶内URL唯一。
    """
    __tablename__ = "cache_entries"
    __table_args__ = (UniqueConstraint("bucket_id", "url", name="uq_cache_entry_url"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    bucket_id = Column(Integer, ForeignKey("cache_buckets.id", ondelete="CASCADE"), index=True, nullable=False)
    url = Column(String, nullable=False)
    status_code = Column(Integer, nullable=False, default=200)
    headers = Column(JSON, nullable=False, default=dict)
    body = Column(LargeBinary, nullable=False, default=b"")
    stored_at = Column(DateTime, default=lambda: datetime.now(UTC))

    bucket = relationship("CacheBucket", back_populates="entries")
