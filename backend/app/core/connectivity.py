# backend/app/core/connectivity.py
import logging
from typing import Callable, Dict, List, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"


class ConnectivityMonitor:
    """
    网络连接状态信号源

    相当于浏览器的 navigator.onLine 以及 online / offline 事件：
    状态变化时同步通知所有监听器，不做轮询。
    """

    def __init__(self, on_line: bool = True):
        self._on_line = on_line
        self._listeners: Dict[str, List[Callable[[], None]]] = {ONLINE: [], OFFLINE: []}

    @property
    def on_line(self) -> bool:
        return self._on_line

    def add_listener(self, event_type: str, listener: Callable[[], None]) -> None:
        if event_type not in self._listeners:
            raise ValueError(f"Unknown connectivity event: {event_type}")
        self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener: Callable[[], None]) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def set_online(self, on_line: bool) -> None:
        """更新连接状态，只有真正发生变化时才派发事件"""
        if on_line == self._on_line:
            return
        self._on_line = on_line
        event_type = ONLINE if on_line else OFFLINE
        logger.info(f"连接状态变化: {event_type}")
        for listener in list(self._listeners[event_type]):
            listener()

    async def probe(self, url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> bool:
        """
        主动探测一次网络是否可用，并据此更新状态

        Args:
            url: 探测地址，默认使用配置中的 CONNECTIVITY_PROBE_URL
            client: 可选的 httpx 客户端（测试时可注入 MockTransport）

        Returns:
            bool: 探测结果
        """
        target = url or settings.CONNECTIVITY_PROBE_URL
        owns_client = client is None
        client = client or httpx.AsyncClient(timeout=3)
        try:
            await client.get(target)
            reachable = True
        except httpx.HTTPError:
            reachable = False
        finally:
            if owns_client:
                await client.aclose()
        self.set_online(reachable)
        return reachable
