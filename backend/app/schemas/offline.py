from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageType(str, Enum):
    """页面发给后台缓存 Worker 的消息类型"""
    CACHE_COURSE = "CACHE_COURSE"
    GET_CACHED_COURSES = "GET_CACHED_COURSES"


class WorkerMessage(BaseModel):
    """Worker 消息基础模型，线上字段使用 camelCase"""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class CacheCourseMessage(WorkerMessage):
    """
    请求 Worker 缓存一个课程的完整数据

    Attributes:
        course_id: 课程ID
        course_data: 课程数据（元数据 + 步骤），对缓存层不透明
    """
    type: Literal["CACHE_COURSE"] = MessageType.CACHE_COURSE.value
    course_id: int = Field(alias="courseId")
    course_data: Any = Field(alias="courseData")


class GetCachedCoursesMessage(WorkerMessage):
    """请求 Worker 列出动态缓存中的课程ID"""
    type: Literal["GET_CACHED_COURSES"] = MessageType.GET_CACHED_COURSES.value


class CacheCourseReply(WorkerMessage):
    success: bool
    course_id: Optional[int] = Field(default=None, alias="courseId")
    error: Optional[str] = None


class CachedCoursesReply(WorkerMessage):
    course_ids: List[int] = Field(default_factory=list, alias="courseIds")


# 缓存代持久化使用的输入模型
class CacheBucketCreate(BaseModel):
    namespace: str
    kind: str
    version: str


class CacheEntryCreate(BaseModel):
    bucket_id: int
    url: str
    status_code: int = 200
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""


class CacheEntryUpdate(BaseModel):
    status_code: Optional[int] = None
    headers: Optional[Dict[str, str]] = None
    body: Optional[bytes] = None


class OfflineConfig(BaseModel):
    """描述当前生效的离线缓存配置"""
    version: str
    static_cache: str
    dynamic_cache: str
    shell_resources: List[str]
    course_cache_prefix: str
