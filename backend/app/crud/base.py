from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy import asc, desc
from sqlalchemy.orm import Session

# 导入SQLAlchemy模型基类
from app.db.base_class import Base

# 定义泛型类型变量
ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        """
        通用的增删改查对象。

        **参数**

        * `model`: SQLAlchemy模型类
        """
        self.model = model

    def _filtered(self, db: Session, filter_conditions: Optional[Dict[str, Any]]):
        query = db.query(self.model)
        if filter_conditions:
            for field, value in filter_conditions.items():
                if hasattr(self.model, field):
                    # 简单相等筛选
                    query = query.filter(getattr(self.model, field) == value)
        return query

    def get_first(self, db: Session, *, filter_conditions: Dict[str, Any]) -> Optional[ModelType]:
        """获取第一个满足筛选条件的记录"""
        return self._filtered(db, filter_conditions).first()

    def get_multi(
        self,
        db: Session,
        *,
        skip: int = 0,
        limit: Optional[int] = 100,
        filter_conditions: Optional[Dict[str, Any]] = None,
        sort_by: Optional[Union[str, List[Tuple[str, SortDirection]]]] = None
    ) -> List[ModelType]:
        """
        获取多个记录（支持分页、筛选和排序）。

        Args:
            db: 数据库会话
            skip: 跳过的记录数
            limit: 返回的记录数限制，None 表示不限制
            filter_conditions: 筛选条件字典，例如 {"bucket_id": 1}
            sort_by: 排序字段，可以是单个字段名字符串或字段-方向元组列表

        Returns:
            List[ModelType]: 记录列表
        """
        query = self._filtered(db, filter_conditions)

        if sort_by:
            if isinstance(sort_by, str):
                query = query.order_by(asc(getattr(self.model, sort_by)))
            else:
                for field, direction in sort_by:
                    if hasattr(self.model, field):
                        column = getattr(self.model, field)
                        query = query.order_by(desc(column) if direction == SortDirection.DESC else asc(column))

        query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def create(self, db: Session, *, obj_in: CreateSchemaType) -> ModelType:
        """创建一个新的记录"""
        db_obj = self.model(**obj_in.model_dump())
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    @staticmethod
    def update(
        db: Session,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        """
        更新一个已存在的记录，只写入显式设置的字段。
        """
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def remove(self, db: Session, *, obj_id: int) -> Optional[ModelType]:
        """删除一个记录，不存在时返回None"""
        obj = db.get(self.model, obj_id)
        if obj:
            db.delete(obj)
            db.commit()
        return obj
