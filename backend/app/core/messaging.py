# backend/app/core/messaging.py
"""
点对点异步消息通道

页面与后台缓存 Worker 之间没有共享内存，只能通过消息通信。
MessageChannel 创建一对互相连接的端口：一端留在调用方等待应答，
另一端随请求一起转交给 Worker，Worker 通过它回复恰好一次。
"""
import asyncio
import json
from typing import Any, Optional


class DataCloneError(Exception):
    """消息数据无法被结构化复制（不可序列化）"""


def structured_clone(data: Any) -> Any:
    """复制一份消息数据，确保两个上下文之间不共享可变对象"""
    try:
        return json.loads(json.dumps(data))
    except (TypeError, ValueError) as e:
        raise DataCloneError(f"Message could not be cloned: {e}") from e


class MessagePort:
    """消息通道的一端"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._peer: Optional["MessagePort"] = None
        self.closed = False

    def post_message(self, data: Any) -> None:
        """向对端发送消息；任意一端已关闭时消息被丢弃"""
        peer = self._peer
        if self.closed or peer is None or peer.closed:
            return
        peer._queue.put_nowait(structured_clone(data))

    async def receive(self, timeout: Optional[float] = None) -> Any:
        """
        等待下一条消息。

        Raises:
            asyncio.TimeoutError: 超时仍未收到消息
        """
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        self.closed = True


class MessageChannel:
    """一对互相连接的端口"""

    def __init__(self):
        self.port1 = MessagePort()
        self.port2 = MessagePort()
        self.port1._peer = self.port2
        self.port2._peer = self.port1
