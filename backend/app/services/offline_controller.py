# backend/app/services/offline_controller.py
"""
离线缓存控制器

页面代码与后台缓存 Worker 之间唯一的接触点：提供连接状态、注册 Worker，
并通过"每次调用一个私有消息通道"的请求/应答协议请求缓存课程。
所有失败路径都返回 False 或空列表，不会把异常抛给页面。
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from app.core.config import settings
from app.core.connectivity import OFFLINE, ONLINE, ConnectivityMonitor
from app.core.messaging import DataCloneError, MessageChannel
from app.schemas.offline import CacheCourseMessage, CachedCoursesReply, GetCachedCoursesMessage
from app.services.cache_worker import CacheWorker
from app.services.worker_container import ServiceWorkerContainer

logger = logging.getLogger(__name__)


class OfflineCacheController:
    """
    Attributes:
        is_online: None 表示挂载前尚未确定，之后为 True / False
        is_worker_ready: Worker 注册成功后才为 True
        is_mounted: 挂载完成前其他状态都不应被使用
    """

    def __init__(
        self,
        container: ServiceWorkerContainer,
        connectivity: ConnectivityMonitor,
        worker_factory: Optional[Callable[[], CacheWorker]] = None,
        timeout: float = settings.MESSAGE_TIMEOUT_SECONDS,
    ):
        self.container = container
        self.connectivity = connectivity
        self.worker_factory = worker_factory
        self.timeout = timeout

        self.is_online: Optional[bool] = None
        self.is_worker_ready = False
        self.is_mounted = False
        self.update_available = False

    async def mount(self) -> None:
        """读取初始连接状态，绑定连接事件，并注册后台 Worker"""
        self.is_mounted = True
        self.is_online = self.connectivity.on_line
        self.connectivity.add_listener(ONLINE, self._handle_online)
        self.connectivity.add_listener(OFFLINE, self._handle_offline)
        self.container.attach_client()

        if not self.container.supported or self.worker_factory is None:
            return
        try:
            registration = await self.container.register(self.worker_factory())
        except Exception as e:
            logger.error(f"注册 Service Worker 失败: {e}", exc_info=True)
            return
        logger.info("Service Worker 注册成功")
        self.is_worker_ready = True
        registration.on_update_found(self._handle_update_found)

    async def unmount(self) -> None:
        self.connectivity.remove_listener(ONLINE, self._handle_online)
        self.connectivity.remove_listener(OFFLINE, self._handle_offline)
        self.is_mounted = False
        await self.container.detach_client()

    def _handle_online(self) -> None:
        self.is_online = True

    def _handle_offline(self) -> None:
        self.is_online = False

    def _handle_update_found(self, worker: CacheWorker) -> None:
        self.update_available = True

    async def cache_course(self, course_id: int, course_data: Any) -> bool:
        """
        请求 Worker 把一个课程的数据缓存到动态缓存代

        Returns:
            bool: Worker 回复成功时为 True；Worker 未就绪、超时或出错时为 False
        """
        if not self.is_worker_ready or self.container.controller is None:
            logger.warning("Service Worker 尚未就绪")
            return False

        try:
            message = CacheCourseMessage(course_id=course_id, course_data=course_data).to_wire()
        except ValueError as e:
            # ValidationError 与序列化错误都是 ValueError
            logger.error(f"课程数据无法发送: {e}")
            return False
        reply = await self._request(message)
        if not isinstance(reply, dict):
            return False
        return reply.get("success") is True

    async def get_cached_course_ids(self) -> List[int]:
        """询问 Worker 动态缓存中有哪些课程；失败时返回空列表"""
        if not self.is_worker_ready or self.container.controller is None:
            return []

        reply = await self._request(GetCachedCoursesMessage().to_wire())
        if reply is None:
            return []
        try:
            return CachedCoursesReply.model_validate(reply).course_ids
        except ValidationError:
            logger.warning(f"收到无效的缓存课程列表: {reply}")
            return []

    async def is_course_cached(self, course_id: int) -> bool:
        return course_id in await self.get_cached_course_ids()

    async def _request(self, message: Dict[str, Any]) -> Optional[Any]:
        """通过私有通道发送一条请求并等待唯一的回复；超时返回 None"""
        controller = self.container.controller
        if controller is None:
            return None
        channel = MessageChannel()
        try:
            controller.post_message(message, [channel.port2])
            return await channel.port1.receive(timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Service Worker 在 {self.timeout}s 内没有回复: {message.get('type')}")
            return None
        except DataCloneError as e:
            logger.error(f"消息无法发送给 Service Worker: {e}")
            return None
        finally:
            channel.port1.close()
