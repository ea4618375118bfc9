# backend/app/schemas/response.py
from pydantic import BaseModel
from typing import Generic, TypeVar, Optional

T = TypeVar('T')
class StandardResponse(BaseModel, Generic[T]):
    """标准响应模型

    站点接口统一使用的响应格式。

    Attributes:
        code: 状态码，默认200表示成功
        message: 响应消息
        data: 数据载荷
    """
    code: int = 200
    message: str = 'success'
    data: Optional[T] = None
