# backend/app/services/offline_indicator.py
"""
离线与进度相关的界面协作者

只负责把控制器和进度存储的状态转换成界面需要的文案与提示，不包含布局和样式。
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel

from app.core.connectivity import OFFLINE, ONLINE, ConnectivityMonitor
from app.schemas.progress import CourseProgressSummary
from app.services.offline_controller import OfflineCacheController
from app.services.progress_store import CourseProgress, ProgressStore, build_summary

logger = logging.getLogger(__name__)

OFFLINE_BANNER_MESSAGE = "📡 Sin conexión - Los cursos descargados siguen disponibles"


class Notice(BaseModel):
    """提示消息（toast）"""
    level: str
    message: str


class ConnectionStatus(BaseModel):
    title: str
    description: str
    badge: str


CHECKING_STATUS = ConnectionStatus(
    title="Verificando conexión...",
    description="Cargando estado de conexión",
    badge="Verificando...",
)
ONLINE_STATUS = ConnectionStatus(
    title="Conectado a Internet",
    description="Puedes acceder a todo el contenido",
    badge="En línea",
)
OFFLINE_STATUS = ConnectionStatus(
    title="Sin conexión a Internet",
    description="Solo contenido descargado disponible",
    badge="Fuera de línea",
)


class OfflineIndicator:
    """连接状态与课程下载按钮"""

    def __init__(self, controller: OfflineCacheController, course_id: Optional[int] = None, course_data: Any = None):
        self.controller = controller
        self.course_id = course_id
        self.course_data = course_data
        self.is_downloading = False
        self.is_offline_available = False

    def status(self) -> ConnectionStatus:
        # 挂载前不显示真实状态，避免服务端渲染与客户端状态不一致
        if not self.controller.is_mounted or self.controller.is_online is None:
            return CHECKING_STATUS
        return ONLINE_STATUS if self.controller.is_online else OFFLINE_STATUS

    @property
    def can_download(self) -> bool:
        return (self.course_id is not None and not self.is_offline_available
                and not self.is_downloading and self.controller.is_worker_ready)

    async def refresh(self) -> bool:
        if self.course_id is not None:
            self.is_offline_available = await self.controller.is_course_cached(self.course_id)
        return self.is_offline_available

    async def download_course(self) -> Notice:
        if self.course_id is None or self.course_data is None:
            return Notice(level="error", message="No se puede descargar el curso")

        self.is_downloading = True
        try:
            success = await self.controller.cache_course(self.course_id, self.course_data)
        finally:
            self.is_downloading = False

        if success:
            self.is_offline_available = True
            return Notice(level="success", message="¡Curso descargado! Ya puedes acceder sin internet")
        return Notice(level="error", message="Error al descargar el curso")


class CourseProgressIndicator:
    """课程列表中的进度条，跟随 storage 事件实时更新"""

    def __init__(self, store: ProgressStore, course_id: int, total_steps: int):
        self.store = store
        self.course_id = course_id
        self.total_steps = total_steps
        self.completed_steps = store.completed_count(course_id)
        self._unsubscribe: Optional[Callable[[], None]] = store.subscribe(course_id, self._handle_progress)

    def _handle_progress(self, progress: CourseProgress) -> None:
        self.completed_steps = len(progress)

    def summary(self) -> CourseProgressSummary:
        return build_summary(self.course_id, self.completed_steps, self.total_steps)

    def label(self) -> str:
        if self.total_steps == 0:
            return "Sin pasos definidos"
        summary = self.summary()
        status = "Completado" if summary.is_complete else f"{round(summary.percentage)}%"
        return f"Progreso: {summary.completed_steps}/{summary.total_steps} pasos · {status}"

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class OfflineBanner:
    """断网时显示的临时横幅，恢复连接或若干秒后自动隐藏"""

    def __init__(self, connectivity: ConnectivityMonitor, hide_after: float = 5.0):
        self.connectivity = connectivity
        self.hide_after = hide_after
        self.visible = False
        self._hide_handle: Optional[asyncio.TimerHandle] = None
        connectivity.add_listener(ONLINE, self._handle_online)
        connectivity.add_listener(OFFLINE, self._handle_offline)

    @property
    def message(self) -> Optional[str]:
        return OFFLINE_BANNER_MESSAGE if self.visible else None

    def _handle_online(self) -> None:
        self._cancel_timer()
        self.visible = False

    def _handle_offline(self) -> None:
        self.visible = True
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 没有事件循环时横幅保持显示，直到恢复连接
            return
        self._hide_handle = loop.call_later(self.hide_after, self.hide)

    def hide(self) -> None:
        self._cancel_timer()
        self.visible = False

    def _cancel_timer(self) -> None:
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None

    def close(self) -> None:
        self._cancel_timer()
        self.connectivity.remove_listener(ONLINE, self._handle_online)
        self.connectivity.remove_listener(OFFLINE, self._handle_offline)
