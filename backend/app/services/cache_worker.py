# backend/app/services/cache_worker.py
"""
后台缓存 Worker

独立于任何单个页面运行：拦截同源 GET 请求并采用"缓存优先、再走网络"的策略，
网络成功时把响应写入缓存；同时响应页面通过消息通道发来的课程缓存请求，
并在激活新版本时清理旧版本的缓存代。

生命周期：parsed -> installing -> installed(waiting) -> activating -> activated，
安装失败或被新版本取代时进入 redundant。
"""
import asyncio
import json
import logging
import re
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Set, TypeVar

import httpx

from app.core.config import settings
from app.core.messaging import MessagePort, structured_clone
from app.schemas.offline import (
    CacheCourseMessage,
    CacheCourseReply,
    CachedCoursesReply,
    MessageType,
)
from app.services.cache_storage import CacheGeneration, CacheInstallError, CacheStorage, GenerationKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkerState(str, Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class RequestDestination(str, Enum):
    """请求目标类型，决定网络失败时的回退策略"""
    DOCUMENT = "document"
    IMAGE = "image"
    OTHER = ""


class CacheWorker:
    def __init__(
        self,
        caches: CacheStorage,
        client: httpx.AsyncClient,
        *,
        version: str = settings.CACHE_VERSION,
        shell_resources: Optional[Sequence[str]] = None,
        home_path: str = settings.OFFLINE_HOME_PATH,
        placeholder_path: str = settings.OFFLINE_PLACEHOLDER_PATH,
        course_prefix: str = settings.COURSE_CACHE_PREFIX,
        auto_skip_waiting: bool = True,
    ):
        """
        Args:
            caches: 站点源的缓存存储
            client: 访问网络使用的 httpx 客户端
            version: 缓存代版本，静态代与动态代共用
            shell_resources: 安装时预缓存的应用外壳路径
            home_path: 页面导航离线时的回退页面
            placeholder_path: 图片离线时的占位图
            course_prefix: 课程缓存键的虚拟路径前缀
            auto_skip_waiting: 安装完成后是否立即跳过等待（不等旧版本释放页面）
        """
        self.caches = caches
        self.client = client
        self.version = version
        self.shell_resources = list(shell_resources if shell_resources is not None else settings.SHELL_RESOURCES)
        self.home_path = home_path
        self.placeholder_path = placeholder_path
        self.course_prefix = course_prefix
        self.auto_skip_waiting = auto_skip_waiting
        self._course_key_pattern = re.compile(re.escape(course_prefix) + r"(\d+)")

        self.static_generation = CacheGeneration(caches.namespace, GenerationKind.STATIC, version)
        self.dynamic_generation = CacheGeneration(caches.namespace, GenerationKind.DYNAMIC, version)

        self.state = WorkerState.PARSED
        self.skip_waiting_requested = False
        self._pending_tasks: Set[asyncio.Task] = set()
        self._db_lock = asyncio.Lock()

    # --- 生命周期 ---

    async def install(self) -> None:
        """
        打开静态缓存代并预填充全部外壳资源；任一资源失败则安装失败，Worker 被丢弃

        Raises:
            CacheInstallError: 预填充失败
        """
        self.state = WorkerState.INSTALLING
        logger.info(f"Service Worker: 安装中 ({self.static_generation.name})")
        existed = self.caches.has(self.static_generation)
        try:
            cache = self.caches.open(self.static_generation)
            await cache.add_all(self.shell_resources, self._network_fetch)
        except Exception as e:
            self.state = WorkerState.REDUNDANT
            if not existed:
                # 不留下空的当前版本缓存代
                self.caches.delete(self.static_generation)
            logger.error(f"Service Worker: 安装失败: {e}", exc_info=True)
            if isinstance(e, CacheInstallError):
                raise
            raise CacheInstallError(str(e)) from e

        self.state = WorkerState.INSTALLED
        logger.info("Service Worker: 安装完成")
        if self.auto_skip_waiting:
            self.skip_waiting()

    def skip_waiting(self) -> None:
        self.skip_waiting_requested = True

    async def activate(self) -> List[CacheGeneration]:
        """
        删除所有与当前静态/动态缓存代不一致的旧缓存代

        Returns:
            List[CacheGeneration]: 被删除的缓存代
        """
        self.state = WorkerState.ACTIVATING
        logger.info("Service Worker: 激活中")
        current = {self.static_generation, self.dynamic_generation}
        removed = []
        for generation in self.caches.keys():
            if generation not in current:
                logger.info(f"Service Worker: 删除旧缓存: {generation.name}")
                self.caches.delete(generation)
                removed.append(generation)
        self.state = WorkerState.ACTIVATED
        logger.info("Service Worker: 激活完成")
        return removed

    # --- 请求拦截 ---

    async def handle_fetch(
        self,
        request: httpx.Request,
        destination: RequestDestination = RequestDestination.OTHER,
    ) -> httpx.Response:
        """
        处理一次被拦截的请求

        只处理同源 GET 请求，其他请求直接透传到网络。
        缓存命中时立即返回缓存，不做新鲜度检查；未命中时走网络并写穿透缓存；
        网络失败时页面导航回退到首页外壳，图片回退到占位图，其他请求原样抛出错误。

        Raises:
            httpx.HTTPError: 网络失败且没有可用的回退
        """
        if request.method != "GET" or not self._is_same_origin(request.url):
            return await self._network_fetch(request)

        cached = await self._run_db(self.caches.match, request)
        if cached is not None:
            logger.debug(f"Service Worker: 从缓存返回: {request.url}")
            return cached

        try:
            response = await self._network_fetch(request)
        except httpx.HTTPError:
            fallback = await self._run_db(self._offline_fallback, destination)
            if fallback is not None:
                return fallback
            raise

        if self._is_cacheable(response):
            generation = self.static_generation if request.url.path in self.shell_resources else self.dynamic_generation
            try:
                await self._run_db(self._store, generation, request, response)
                logger.debug(f"Service Worker: 已缓存: {request.url}")
            except Exception:
                # 缓存写入失败不影响本次响应
                logger.error(f"Service Worker: 缓存写入失败: {request.url}", exc_info=True)
        return response

    def _store(self, generation: CacheGeneration, request: httpx.Request, response: httpx.Response) -> None:
        self.caches.open(generation).put(request, response)

    def _offline_fallback(self, destination: RequestDestination) -> Optional[httpx.Response]:
        if destination == RequestDestination.DOCUMENT:
            return self.caches.match(self.home_path)
        if destination == RequestDestination.IMAGE:
            return self.caches.match(self.placeholder_path)
        return None

    def _is_same_origin(self, url: httpx.URL) -> bool:
        origin = self.caches.origin
        return (url.scheme, url.host, url.port) == (origin.scheme, origin.host, origin.port)

    def _is_cacheable(self, response: httpx.Response) -> bool:
        # 只缓存 200 且最终仍是同源的响应（相当于 basic 类型）
        if response.status_code != 200:
            return False
        try:
            final_url = response.request.url
        except RuntimeError:
            return False
        return self._is_same_origin(final_url)

    async def _network_fetch(self, request: httpx.Request) -> httpx.Response:
        return await self.client.send(request)

    async def _run_db(self, func: Callable[..., T], *args: Any) -> T:
        """在线程中执行同步的数据库操作，不阻塞事件循环；同一个 Worker 的数据库操作串行执行"""
        async with self._db_lock:
            return await asyncio.to_thread(func, *args)

    # --- 消息协议 ---

    def post_message(self, data: Any, ports: Sequence[MessagePort] = ()) -> asyncio.Task:
        """
        向 Worker 投递一条消息（不等待处理结果）

        Raises:
            DataCloneError: 消息数据不可序列化
        """
        message = structured_clone(data)
        task = asyncio.get_running_loop().create_task(self.handle_message(message, list(ports)))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return task

    async def handle_message(self, data: Any, ports: Sequence[MessagePort] = ()) -> None:
        """处理一条消息，通过第一个端口回复；任何失败都只体现在回复中"""
        message_type = data.get("type") if isinstance(data, dict) else None
        if message_type == MessageType.CACHE_COURSE.value:
            reply = await self._run_db(self._cache_course, data)
        elif message_type == MessageType.GET_CACHED_COURSES.value:
            reply = await self._run_db(self._cached_courses)
        else:
            logger.debug(f"Service Worker: 忽略未知消息: {message_type}")
            return

        if not ports:
            logger.warning(f"Service Worker: 消息 {message_type} 没有回复端口")
            return
        ports[0].post_message(reply.to_wire())

    def course_cache_key(self, course_id: int) -> str:
        return f"{self.course_prefix}{course_id}"

    def _cache_course(self, data: dict) -> CacheCourseReply:
        try:
            message = CacheCourseMessage.model_validate(data)
            body = json.dumps(message.course_data).encode("utf-8")
            response = httpx.Response(200, headers={"Content-Type": "application/json"}, content=body)
            self.caches.open(self.dynamic_generation).put(self.course_cache_key(message.course_id), response)
        except Exception as e:
            logger.error(f"Service Worker: 缓存课程失败: {e}", exc_info=True)
            return CacheCourseReply(success=False, error=str(e))

        logger.info(f"Service Worker: 课程已缓存: {message.course_id}")
        return CacheCourseReply(success=True, course_id=message.course_id)

    def _cached_courses(self) -> CachedCoursesReply:
        try:
            keys = self.caches.open(self.dynamic_generation).keys()
        except Exception:
            logger.error("Service Worker: 读取动态缓存失败", exc_info=True)
            return CachedCoursesReply(course_ids=[])

        course_ids = []
        for key in keys:
            match = self._course_key_pattern.fullmatch(httpx.URL(key).path)
            # 带查询参数的同一课程路径只计一次
            if match and int(match.group(1)) not in course_ids:
                course_ids.append(int(match.group(1)))
        return CachedCoursesReply(course_ids=course_ids)
