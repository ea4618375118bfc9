# backend/app/core/redis_subscriber.py
import asyncio
import json
import logging
from typing import Any, Dict

from app.config.dependency_injection import get_aioredis
from app.core.storage import RedisStorage, StorageEvent

logger = logging.getLogger(__name__)

RESTART_DELAY_SECONDS = 5


def relay_message(storage: RedisStorage, message: Dict[str, Any]) -> bool:
    """
    把一条 Redis 模式订阅消息转换成本地 storage 事件。

    Returns:
        bool: 是否派发了事件
    """
    # 只处理模式消息
    if message.get("type") != "pmessage":
        return False

    channel = message.get("channel")
    if isinstance(channel, bytes):
        channel = channel.decode()
    raw_data = message.get("data")
    if isinstance(raw_data, bytes):
        raw_data = raw_data.decode()

    try:
        payload = json.loads(raw_data)
    except (TypeError, json.JSONDecodeError):
        logger.warning(f"收到非JSON消息: {raw_data} (channel={channel})")
        return False

    # 自己发布的消息已经在本进程内派发过
    if payload.get("source") == storage.instance_id:
        return False

    key = payload.get("key") or str(channel)[len(storage.channel_prefix):]
    storage.events.dispatch(StorageEvent(key=key, new_value=payload.get("newValue"), source=payload.get("source")))
    return True


async def redis_subscriber(storage: RedisStorage):
    """订阅 "storage:*"，把其他进程的写入转发给本进程的监听器；崩溃后自动重启"""
    while True:
        try:
            redis = get_aioredis()
            pubsub = redis.pubsub()
            await pubsub.psubscribe(f"{storage.channel_prefix}*")
            logger.info(f"已订阅 {storage.channel_prefix}*")

            async for message in pubsub.listen():
                try:
                    relay_message(storage, message)
                except Exception:
                    logger.error("处理消息出错", exc_info=True)

        except asyncio.CancelledError:
            raise
        except Exception:
            logger.critical("Redis 订阅器崩溃", exc_info=True)
            await asyncio.sleep(RESTART_DELAY_SECONDS)
