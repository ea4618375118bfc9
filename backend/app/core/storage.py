# backend/app/core/storage.py
"""
持久化键值存储能力

进度存储通过注入的 KeyValueStorage 读写数据，而不是直接访问全局对象，
测试中使用 InMemoryStorage，部署时可以换成 RedisStorage。

同源的所有上下文（标签页）共享同一个 StorageEventBus，写入方在写入后
派发一次合成的 storage 事件，使所有监听同一个键的上下文立即更新。
"""
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

StorageListener = Callable[["StorageEvent"], None]


class StorageUnavailableError(Exception):
    """存储不可用或超出配额"""


@dataclass(frozen=True)
class StorageEvent:
    """storage 事件：被修改的键与新的序列化值（删除时为 None）"""
    key: Optional[str]
    new_value: Optional[str]
    source: Optional[str] = None


class StorageEventBus:
    """同源上下文之间的 storage 事件分发器"""

    def __init__(self):
        self._listeners: List[StorageListener] = []

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        """注册监听器，返回取消注册的函数"""
        self._listeners.append(listener)

        def remove() -> None:
            self.remove_listener(listener)

        return remove

    def remove_listener(self, listener: StorageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event: StorageEvent) -> None:
        # 单个监听器出错不影响其他上下文收到事件
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.error(f"storage 监听器处理事件失败: key={event.key}", exc_info=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class KeyValueStorage:
    """
    按源隔离的持久化键值存储接口。

    Attributes:
        events: 同源共享的事件总线
    """

    def __init__(self, events: Optional[StorageEventBus] = None):
        self.events = events or StorageEventBus()

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class InMemoryStorage(KeyValueStorage):
    """进程内存储，可选字节配额用于模拟 quota exceeded"""

    def __init__(self, events: Optional[StorageEventBus] = None, quota_bytes: Optional[int] = None):
        super().__init__(events)
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise StorageUnavailableError(f"Quota exceeded while writing '{key}'")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class RedisStorage(KeyValueStorage):
    """
    基于 Redis 的键值存储。

    每次写入都会在 "<channel_prefix><key>" 频道上发布一条消息，
    其他进程中的 redis_subscriber 收到后把它转成本地 storage 事件，
    相当于浏览器只在其他标签页触发的原生 storage 事件。
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        events: Optional[StorageEventBus] = None,
        channel_prefix: str = "storage:",
    ):
        super().__init__(events)
        self.redis_client = redis_client
        self.channel_prefix = channel_prefix
        # 用于在订阅端过滤掉自己发布的消息
        self.instance_id = uuid.uuid4().hex

    def get_item(self, key: str) -> Optional[str]:
        try:
            value = self.redis_client.get(key)
        except redis.RedisError as e:
            raise StorageUnavailableError(str(e)) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set_item(self, key: str, value: str) -> None:
        try:
            self.redis_client.set(key, value)
        except redis.RedisError as e:
            raise StorageUnavailableError(str(e)) from e
        self._publish(key, value)

    def remove_item(self, key: str) -> None:
        try:
            self.redis_client.delete(key)
        except redis.RedisError as e:
            raise StorageUnavailableError(str(e)) from e
        self._publish(key, None)

    def keys(self) -> List[str]:
        try:
            raw_keys = self.redis_client.keys("*")
        except redis.RedisError as e:
            raise StorageUnavailableError(str(e)) from e
        return [k.decode("utf-8") if isinstance(k, bytes) else k for k in raw_keys]

    def _publish(self, key: str, value: Optional[str]) -> None:
        payload = json.dumps({"key": key, "newValue": value, "source": self.instance_id})
        try:
            self.redis_client.publish(f"{self.channel_prefix}{key}", payload)
        except redis.RedisError:
            # 通知是尽力而为的，数据已经写入
            logger.warning(f"发布 storage 事件失败: key={key}", exc_info=True)
