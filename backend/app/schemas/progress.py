from typing import Dict

from pydantic import BaseModel


class ProgressUpdate(BaseModel):
    """
    一次进度修改的结果

    Attributes:
        course_id: 课程ID
        progress: 修改后的完成映射 {step_id: True}
        persisted: 是否成功写入持久化存储；失败时本地视图仍然更新
    """
    course_id: int
    progress: Dict[int, bool]
    persisted: bool


class CourseProgressSummary(BaseModel):
    """课程进度概览，用于进度条展示"""
    course_id: int
    completed_steps: int
    total_steps: int
    percentage: float
    is_complete: bool
