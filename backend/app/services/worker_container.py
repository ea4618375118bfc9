# backend/app/services/worker_container.py
import logging
from typing import Callable, List, Optional

from app.services.cache_storage import CacheInstallError
from app.services.cache_worker import CacheWorker, WorkerState

logger = logging.getLogger(__name__)


class WorkerUnsupportedError(Exception):
    """运行环境不支持后台 Worker"""


class ServiceWorkerRegistration:
    """一个站点源的 Worker 注册信息：正在安装、等待中与已激活的 Worker"""

    def __init__(self):
        self.installing: Optional[CacheWorker] = None
        self.waiting: Optional[CacheWorker] = None
        self.active: Optional[CacheWorker] = None
        self._update_listeners: List[Callable[[CacheWorker], None]] = []

    def on_update_found(self, listener: Callable[[CacheWorker], None]) -> None:
        """新版本安装完成且旧版本仍在控制页面时通知"""
        self._update_listeners.append(listener)

    def _notify_update(self, worker: CacheWorker) -> None:
        for listener in list(self._update_listeners):
            try:
                listener(worker)
            except Exception:
                logger.error("处理 Worker 更新通知失败", exc_info=True)


class ServiceWorkerContainer:
    """
    页面侧的 Worker 容器（相当于 navigator.serviceWorker）

    同一个站点源的所有页面共享一个容器。新版本 Worker 安装完成后，
    只有在没有页面被旧版本控制、或者收到 skip waiting 时才会激活。
    """

    def __init__(self, supported: bool = True):
        self.supported = supported
        self.registration: Optional[ServiceWorkerRegistration] = None
        self.controller: Optional[CacheWorker] = None
        self.client_count = 0

    async def register(self, worker: CacheWorker) -> ServiceWorkerRegistration:
        """
        注册并安装一个 Worker

        已激活的 Worker 版本相同时直接返回现有注册，不重新安装。

        Raises:
            WorkerUnsupportedError: 环境不支持 Worker
            CacheInstallError: 安装失败，Worker 被丢弃
        """
        if not self.supported:
            raise WorkerUnsupportedError("Service workers are not supported in this environment")

        registration = self.registration or ServiceWorkerRegistration()
        self.registration = registration
        active = registration.active
        if active is not None and active.version == worker.version and active.state == WorkerState.ACTIVATED:
            return registration

        registration.installing = worker
        try:
            await worker.install()
        except CacheInstallError:
            registration.installing = None
            raise
        registration.installing = None

        if registration.waiting is not None and registration.waiting is not worker:
            registration.waiting.state = WorkerState.REDUNDANT
        registration.waiting = worker

        if active is not None and self.controller is not None:
            logger.info("发现新版本的 Service Worker")
            registration._notify_update(worker)

        await self._try_activate()
        return registration

    async def skip_waiting(self) -> None:
        """让等待中的 Worker 立即激活"""
        if self.registration is not None and self.registration.waiting is not None:
            self.registration.waiting.skip_waiting()
            await self._try_activate()

    def attach_client(self) -> None:
        self.client_count += 1

    async def detach_client(self) -> None:
        self.client_count = max(0, self.client_count - 1)
        if self.client_count == 0:
            # 没有页面被旧版本控制时，等待中的 Worker 可以激活
            await self._try_activate()

    async def _try_activate(self) -> None:
        registration = self.registration
        if registration is None or registration.waiting is None:
            return
        worker = registration.waiting
        old = registration.active
        if old is not None and self.client_count > 0 and not worker.skip_waiting_requested:
            logger.info("Service Worker: 等待旧版本释放页面")
            return

        registration.waiting = None
        if old is not None:
            old.state = WorkerState.REDUNDANT
        registration.active = worker
        await worker.activate()
        # clients.claim()：立即控制已打开的页面
        self.controller = worker
