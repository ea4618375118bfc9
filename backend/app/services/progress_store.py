# backend/app/services/progress_store.py
"""
课程进度存储

以课程为单位记录已完成的步骤，持久化在注入的键值存储中：
键为 "<namespace>-curso-<id>-progress"，值为 {"<step_id>": true} 形式的 JSON。
每次修改后派发一次合成的 storage 事件，让同源的所有上下文立即看到新状态。
持久化存储是唯一的事实来源，多个标签页之间以最后一次写入为准，不做合并。
"""
import json
import logging
from typing import Callable, Dict, Iterable, Optional

from app.core.config import settings
from app.core.storage import KeyValueStorage, StorageEvent, StorageUnavailableError
from app.schemas.progress import CourseProgressSummary, ProgressUpdate

logger = logging.getLogger(__name__)

RESET_CONFIRMATION_MESSAGE = "¿Estás seguro de que quieres reiniciar el progreso de este curso?"

CourseProgress = Dict[int, bool]
Confirm = Callable[[str], bool]


def parse_progress(raw: Optional[str]) -> CourseProgress:
    """
    解析序列化的进度映射

    无法解析的值视为空映射；单个无效条目被跳过，值为 false 的条目视为未完成。
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"无法解析的课程进度: {raw!r}")
        return {}
    if not isinstance(data, dict):
        return {}

    progress: CourseProgress = {}
    for step_id, completed in data.items():
        try:
            step = int(step_id)
        except (TypeError, ValueError):
            continue
        if completed is True:
            progress[step] = True
    return progress


def serialize_progress(progress: CourseProgress) -> str:
    return json.dumps({str(step_id): True for step_id, completed in sorted(progress.items()) if completed})


def build_summary(course_id: int, completed_steps: int, total_steps: int) -> CourseProgressSummary:
    completed = min(completed_steps, total_steps) if total_steps > 0 else 0
    percentage = (completed / total_steps) * 100 if total_steps > 0 else 0.0
    return CourseProgressSummary(
        course_id=course_id,
        completed_steps=completed,
        total_steps=total_steps,
        percentage=percentage,
        is_complete=total_steps > 0 and completed == total_steps,
    )


class ProgressStore:
    """
    Attributes:
        storage: 同源共享的持久化键值存储
        namespace: 存储键前缀
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        namespace: str = settings.STORAGE_NAMESPACE,
        confirm: Optional[Confirm] = None,
    ):
        self.storage = storage
        self.namespace = namespace
        self.confirm = confirm

    def storage_key(self, course_id: int) -> str:
        return f"{self.namespace}-curso-{course_id}-progress"

    def load(self, course_id: int) -> CourseProgress:
        """读取课程进度；不存在、无法解析或存储不可用时返回空映射"""
        try:
            raw = self.storage.get_item(self.storage_key(course_id))
        except StorageUnavailableError:
            logger.warning(f"存储不可用，课程 {course_id} 的进度按空处理", exc_info=True)
            return {}
        return parse_progress(raw)

    def toggle_step(self, course_id: int, step_id: int) -> ProgressUpdate:
        """
        切换一个步骤的完成状态，并一次性写回整个课程的映射

        Returns:
            ProgressUpdate: 修改后的映射；persisted 为 False 表示写入失败，本地视图仍以新状态为准。
                读取失败时不做任何修改，返回空映射且 persisted 为 False
        """
        try:
            progress = parse_progress(self.storage.get_item(self.storage_key(course_id)))
        except StorageUnavailableError:
            # 读不到现有映射时不能写回，否则会覆盖其他已完成的步骤
            logger.error(f"读取课程 {course_id} 的进度失败，放弃本次修改", exc_info=True)
            return ProgressUpdate(course_id=course_id, progress={}, persisted=False)

        if progress.get(step_id):
            # 未完成用"键不存在"表示，而不是 false
            del progress[step_id]
        else:
            progress[step_id] = True
        return self._write(course_id, progress)

    def reset_course(self, course_id: int, confirm: Optional[Confirm] = None) -> Optional[ProgressUpdate]:
        """
        清空一个课程的全部进度，必须先得到用户确认

        Args:
            course_id: 课程ID
            confirm: 确认函数，优先于构造时传入的函数；都没有时视为未确认

        Returns:
            Optional[ProgressUpdate]: 用户取消时返回 None
        """
        confirm = confirm or self.confirm
        if confirm is None or not confirm(RESET_CONFIRMATION_MESSAGE):
            return None
        logger.info(f"重置课程 {course_id} 的进度")
        return self._write(course_id, {})

    def is_fully_complete(self, course_id: int, all_step_ids: Iterable[int]) -> bool:
        """所有步骤都已完成时为 True；没有步骤的课程永远不算完成"""
        step_ids = list(all_step_ids)
        if not step_ids:
            return False
        progress = self.load(course_id)
        return all(progress.get(step_id) is True for step_id in step_ids)

    def completed_count(self, course_id: int) -> int:
        return len(self.load(course_id))

    def summary(self, course_id: int, total_steps: int) -> CourseProgressSummary:
        return build_summary(course_id, self.completed_count(course_id), total_steps)

    def subscribe(self, course_id: int, callback: Callable[[CourseProgress], None]) -> Callable[[], None]:
        """
        监听一个课程的进度变化，回调收到事件中携带的新值，不再回读存储

        Returns:
            Callable[[], None]: 取消监听的函数
        """
        key = self.storage_key(course_id)

        def handle_storage_change(event: StorageEvent) -> None:
            if event.key == key:
                callback(parse_progress(event.new_value))

        return self.storage.events.add_listener(handle_storage_change)

    def _write(self, course_id: int, progress: CourseProgress) -> ProgressUpdate:
        key = self.storage_key(course_id)
        serialized = serialize_progress(progress)
        try:
            self.storage.set_item(key, serialized)
        except StorageUnavailableError:
            logger.error(f"保存课程 {course_id} 的进度失败", exc_info=True)
            return ProgressUpdate(course_id=course_id, progress=progress, persisted=False)

        # 原生 storage 事件只在其他上下文触发，写入方自己补发一次
        self.storage.events.dispatch(StorageEvent(key=key, new_value=serialized))
        return ProgressUpdate(course_id=course_id, progress=progress, persisted=True)
